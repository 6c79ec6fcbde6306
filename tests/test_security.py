import time

import jwt
import pytest

from wellness_messaging import config
from wellness_messaging.utils.security import user_from_token


def _encode(claims, secret=None):
    return jwt.encode(claims, secret or config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def test_valid_token_yields_user(token_for):
    user = user_from_token(token_for(100, "ana"))

    assert user.user_id == 100
    assert user.username == "ana"


def test_expired_token(token_for):
    with pytest.raises(jwt.ExpiredSignatureError):
        user_from_token(token_for(100, expires_in=-10))


def test_token_without_user_id():
    token = _encode({"sub": "ana", "exp": int(time.time()) + 60})

    with pytest.raises(jwt.InvalidTokenError):
        user_from_token(token)


def test_token_without_expiry():
    token = _encode({"sub": "ana", "userId": 100})

    with pytest.raises(jwt.MissingRequiredClaimError):
        user_from_token(token)


def test_token_signed_with_another_secret():
    token = _encode({"sub": "ana", "userId": 100, "exp": int(time.time()) + 60}, secret="someone-else")

    with pytest.raises(jwt.InvalidSignatureError):
        user_from_token(token)
