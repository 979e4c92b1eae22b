# signportal/users/utils.py

from typing import Optional

from fastapi import HTTPException, status, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from signportal.core.db import get_db
from signportal.core.jwt import verify_token
from signportal.users.repository import UserRepository
from signportal.users.models import User
from signportal.utils.logger import get_logger

logger = get_logger(__name__)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    """
    Resolve the verified token claims to a local user, creating the user on
    first successful authentication.
    """
    payload = verify_token(token)
    email = payload.get("email") or payload.get("sub")
    if not email or "@" not in email:
        logger.error("Token payload carries no email claim")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials."
        )

    name = payload.get("name") or payload.get("preferred_username")
    return UserRepository(db).get_or_create(email=email, name=name)


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from the bearer token.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - please sign in",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _user_from_token(token, db)


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    Like get_current_user but yields None for anonymous callers.
    An invalid token is still rejected.
    """
    if not token:
        return None
    return _user_from_token(token, db)
