from collections.abc import Callable, Generator
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.user import User, UserRole
from app.services.policy import AssignmentPolicy, policy_from_settings

security = HTTPBearer()
logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    try:
        user_id = decode_token(credentials.credentials).get("sub")
    except JWTError as exc:
        raise _unauthorized() from exc
    if user_id is None:
        raise _unauthorized()

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    """Dependency that admits only the given roles.

    Faculty-level routes pass ``head_of_faculty``; chair-level routes add
    ``chair_head`` and ``coc``.
    """
    allowed_roles = frozenset(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            logger.info("Denied %s (%s): needs one of %s", current_user.email, current_user.role.value,
                        sorted(role.value for role in allowed_roles))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


def get_assignment_policy(settings: Settings = Depends(get_settings)) -> AssignmentPolicy:
    """Fresh engine configuration for each request."""
    return policy_from_settings(settings)
