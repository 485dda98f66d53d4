"""
User Service - accounts that sign in to the API
"""
from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Session, joinedload

from obraledger.models import User, UserRole
from obraledger.core.security import get_password_hash, verify_password


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_with_relations(self, username: str) -> Optional[User]:
        return self.db.query(User)\
            .options(joinedload(User.organization))\
            .filter(User.username == username)\
            .first()

    def create(
        self,
        username: str,
        email: str,
        password: str,
        organization_id: int,
        role: str = UserRole.VIEWER.value,
        full_name: Optional[str] = None,
        is_superuser: bool = False
    ) -> User:
        user = User(
            username=username,
            email=email,
            hashed_password=get_password_hash(password),
            full_name=full_name,
            role=role.value if hasattr(role, "value") else role,
            organization_id=organization_id,
            is_superuser=is_superuser,
            is_active=True
        )
        self.db.add(user)
        self.db.flush()
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.get_by_username(username)
        if not user:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    def record_login(self, user: User) -> None:
        user.last_login = datetime.utcnow()
        self.db.flush()
