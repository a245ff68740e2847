import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.config import settings
from studyflow.database import get_db
from studyflow.exceptions import UnauthorizedError
from studyflow.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


async def authenticate_token(db: AsyncSession, token: str | None) -> User:
    """Resolve an access token to its user. Any failure is an ``UnauthorizedError``."""
    if not token:
        raise UnauthorizedError("Missing bearer token")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc

    if payload.get("type") != "access":
        raise UnauthorizedError("Not an access token")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise UnauthorizedError("Invalid token subject") from exc

    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("Unknown user")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    return await authenticate_token(db, credentials.credentials if credentials else None)


def get_redis(request: Request):
    return request.app.state.redis
