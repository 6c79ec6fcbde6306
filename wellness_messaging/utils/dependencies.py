import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from wellness_messaging.exceptions import ForbiddenError
from wellness_messaging.schemas.user import CurrentUser
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.utils.request_context import bearer_token_var
from wellness_messaging.utils.security import user_from_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> CurrentUser:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        user = user_from_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")
    bearer_token_var.set(credentials.credentials)
    return user


def get_chat_service(connection: HTTPConnection) -> ChatService:
    return connection.app.state.chat_service


def ensure_acting_as(current_user: CurrentUser, user_id: int, detail: str) -> None:
    """Callers may only act as themselves."""
    if current_user.user_id != user_id:
        logger.warning("Security alert: user %s tried to act as user %s", current_user.user_id, user_id)
        raise ForbiddenError(detail)
