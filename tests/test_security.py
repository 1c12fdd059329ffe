from datetime import datetime, timedelta, timezone

import jwt
import pytest

from cmms.config import Settings
from cmms.errors import InvalidToken, Unauthenticated
from cmms.security import Identity, PasswordHasher, decode_token, identity_from_header, issue_token

SETTINGS = Settings(_env_file=None, jwt_secret="unit-test-secret")
JO = Identity(id="u_jo", name="Jo", email="jo@cmms.local", role="tech")


def test_password_hasher_round_trip() -> None:
    hasher = PasswordHasher()
    stored = hasher.hash("s3cret")
    assert stored != "s3cret"
    assert hasher.verify("s3cret", stored)
    assert not hasher.verify("wrong", stored)


def test_token_carries_identity_snapshot() -> None:
    token = issue_token(JO, SETTINGS)
    assert decode_token(token, SETTINGS) == JO
    assert identity_from_header(f"Bearer {token}", SETTINGS) == JO


def test_token_expires_after_ttl() -> None:
    issued = datetime.now(timezone.utc) - timedelta(days=SETTINGS.token_ttl_days, seconds=1)
    token = issue_token(JO, SETTINGS, now=issued)
    with pytest.raises(InvalidToken):
        decode_token(token, SETTINGS)


def test_tampered_token_is_rejected() -> None:
    token = issue_token(JO, SETTINGS)
    other = Settings(_env_file=None, jwt_secret="another-secret")
    with pytest.raises(InvalidToken):
        decode_token(token, other)


def test_token_missing_claims_is_rejected() -> None:
    token = jwt.encode(
        {"sub": "u_jo", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        SETTINGS.jwt_secret,
        algorithm=SETTINGS.jwt_algorithm,
    )
    with pytest.raises(InvalidToken):
        decode_token(token, SETTINGS)


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer "])
def test_missing_bearer_is_unauthenticated(header) -> None:
    with pytest.raises(Unauthenticated):
        identity_from_header(header, SETTINGS)
