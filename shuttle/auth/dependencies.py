from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
import jwt

from shuttle.auth.schemas import SessionContext
from shuttle.auth.utils import decode_access_token
from shuttle.config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")

def get_session_context(token: str = Depends(oauth2_scheme)) -> SessionContext:
    """Resolve the bearer token into the caller's session context"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        return SessionContext(
            user_id=payload["sub"],
            role=payload.get("role", "student"),
            student_id=payload.get("student_id"),
        )
    except (jwt.PyJWTError, KeyError, ValidationError):
        raise credentials_exception

def require_admin(context: SessionContext = Depends(get_session_context)) -> SessionContext:
    """Require an admin role for access"""
    if not context.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return context
