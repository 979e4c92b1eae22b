# signportal/users/repository.py

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from signportal.users.models import User
from signportal.utils.logger import get_logger

logger = get_logger(__name__)


class UserRepository:
    """
    Data Access Layer for the User model.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address (case-insensitive)."""
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Fetch a user by ID."""
        return self.db.get(User, user_id)

    def create(self, user: User) -> User:
        """Create a new user."""
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update(self, user: User) -> User:
        """Update an existing user."""
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_or_create(self, email: str, name: Optional[str] = None) -> User:
        """
        Return the local user for an authenticated identity, creating it on
        first sight and refreshing the display name when it changed.
        """
        user = self.get_user_by_email(email)
        if user is None:
            try:
                return self.create(User(email=email, name=name))
            except IntegrityError:
                # A concurrent first sign-in inserted the same email
                self.db.rollback()
                logger.info("User created concurrently, fetching existing", email=email)
                user = self.get_user_by_email(email)
                if user is None:
                    raise
        if name and user.name != name:
            user.name = name
            return self.update(user)
        return user
