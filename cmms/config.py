from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./cmms.db"

    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = 7

    bootstrap_admin_name: str = "Admin"
    bootstrap_admin_email: str = "admin@cmms.local"
    bootstrap_admin_password: str = "admin123"
    default_user_password: str = "changeme"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", case_sensitive=False)


settings = Settings()
