import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOGGER_PREFIX = "cmms"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure the ``cmms`` logger once; later calls only adjust the level."""
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate console handlers
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger(_LOGGER_PREFIX)
    return base.getChild(name) if name else base
