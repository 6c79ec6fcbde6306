from typing import Any, Dict

import jwt
from pydantic import ValidationError

from wellness_messaging.config import JWT_ALGORITHM, JWT_SECRET
from wellness_messaging.schemas.user import CurrentUser, TokenPayload


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises jwt.InvalidTokenError on failure."""
    return jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[JWT_ALGORITHM],
        options={"require": ["exp"]},
    )


def user_from_token(token: str) -> CurrentUser:
    claims = decode_access_token(token)
    try:
        payload = TokenPayload.model_validate(claims)
    except ValidationError as exc:
        raise jwt.InvalidTokenError("Token is missing the userId claim") from exc
    return CurrentUser(user_id=payload.user_id, username=payload.sub)
