"""Tests for the HS256 identity tokens."""

import jwt
import pytest

from t4g.auth.jwt import create_access_token, verify_token
from t4g.config import get_settings


def test_round_trip_user():
    payload = verify_token(create_access_token(42))
    assert payload["sub"] == "42"
    assert payload["type"] == "user"
    assert payload["iss"] == "t4g"


def test_round_trip_tenant():
    assert verify_token(create_access_token(7, "tenant"))["type"] == "tenant"


def test_tampered_signature_rejected():
    token = create_access_token(1)
    with pytest.raises(jwt.InvalidTokenError):
        verify_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))


def test_wrong_issuer_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "1", "type": "user", "exp": 4_102_444_800, "iss": "someone-else"},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(jwt.InvalidIssuerError):
        verify_token(token)


def test_unknown_actor_type_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "1", "type": "admin", "exp": 4_102_444_800, "iss": settings.jwt_issuer},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(jwt.InvalidTokenError):
        verify_token(token)


def test_missing_expiry_rejected():
    settings = get_settings()
    token = jwt.encode({"sub": "1", "type": "user", "iss": settings.jwt_issuer}, settings.jwt_secret, algorithm="HS256")
    with pytest.raises(jwt.MissingRequiredClaimError):
        verify_token(token)
