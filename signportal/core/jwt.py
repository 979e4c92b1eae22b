# signportal/core/jwt.py

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt, ExpiredSignatureError
from fastapi import HTTPException, status

from signportal.core.config import settings
from signportal.utils.logger import get_logger

logger = get_logger(__name__)

# --- JWT Token Management ---

def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
):
    """Create an access token"""
    try:
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
        to_encode.update({"exp": expire})
        if settings.auth_audience and "aud" not in to_encode:
            to_encode["aud"] = settings.auth_audience
        if settings.auth_issuer and "iss" not in to_encode:
            to_encode["iss"] = settings.auth_issuer
        encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
        return encoded_jwt
    except Exception as e:
        logger.error("Error creating access token", error_message=str(e))
        raise e


def verify_token(token: str) -> dict:
    """
    Verify a session token issued by the identity provider.
    Raises a 401 HTTPException for expired or otherwise invalid tokens.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"verify_aud": bool(settings.auth_audience)},
        )
        return payload
    except ExpiredSignatureError as ese:
        logger.warning("Token has expired.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from ese
    except JWTError as e:
        logger.warning("Error verifying token", error_message=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
