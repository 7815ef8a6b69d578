# src/assocpay/api/dependencies/authentication.py

from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from pydantic import BaseModel, ConfigDict
from jose import JWTError

from assocpay.models import User
from assocpay.dao.identity.user_dao import UserDao
from assocpay.db.session import get_db
from assocpay.core.security import decode_token, verify_admin_api_key

class AuthContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)
    user: User
    token: Optional[str] = None

async def get_auth_context_from_token(token: str, db: AsyncSession) -> AuthContext:
    """
    Decodes a JWT, fetches the user, and builds an AuthContext.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_uuid = payload.get("sub")
    if user_uuid is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = await UserDao(db).get_by_uuid(user_uuid)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"User with UUID {user_uuid} not found.")
    return AuthContext(user=user, token=token)

async def get_auth(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> AuthContext:
    """
    The single entry point for user authentication.
    The bearer token is extracted into request.state by the auth middleware.
    """
    token = getattr(request.state, "token", None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials were not provided."
        )
    return await get_auth_context_from_token(token, db)

async def require_admin_api_key(request: Request) -> None:
    """Guards administrative endpoints with the shared Api-Key header."""
    api_key_value = getattr(request.state, "api_key", None)
    if not verify_admin_api_key(api_key_value):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="A valid admin API key is required.")

AdminApiKeyDep = Depends(require_admin_api_key)
