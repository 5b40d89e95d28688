import logging
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_password, verify_password
from app.domain.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


class AuthService:
    @staticmethod
    def authenticate(db: Session, *, username: str, password: str) -> User | None:
        normalized_username = username.strip()
        user = db.execute(select(User).where(User.username == normalized_username)).scalar_one_or_none()
        if not user:
            return None
        if user.status != UserStatus.ACTIVE.value:
            return None
        if not verify_password(password, user.password_hash):
            return None

        user.last_login = datetime.now(UTC)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def ensure_default_admin(db: Session) -> User | None:
        """Create the bootstrap admin when the users table is empty."""
        user_count = db.execute(select(func.count(User.id))).scalar_one()
        if user_count:
            return None

        try:
            admin = User(
                username=settings.default_admin_username,
                password_hash=hash_password(settings.default_admin_password),
                role=UserRole.ADMIN.value,
                status=UserStatus.ACTIVE.value,
            )
            db.add(admin)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(admin)
        logger.warning("default_admin_created username=%s", admin.username)
        return admin
