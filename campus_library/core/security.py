"""Session identity and role checks.

The caller's identity is resolved once per request from the signed session
cookie and handed explicitly to every operation that needs it.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from campus_library.core.database import get_db
from campus_library.core.errors import UnauthorizedError, ForbiddenError
from campus_library.models import models

logger = logging.getLogger("elibrary.security")

SESSION_USER_KEY = "user_id"


@dataclass(frozen=True)
class Identity:
    id: int
    name: str
    email: str
    role: models.Role

    @property
    def is_staff(self) -> bool:
        return self.role in models.STAFF_ROLES

    @classmethod
    def from_user(cls, user: models.User) -> "Identity":
        return cls(id=user.id, name=user.name, email=user.email, role=models.Role(user.role))


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def authorize(identity: Optional[Identity], allowed_roles: Iterable[models.Role]) -> Identity:
    """Let ``identity`` through if its role is in ``allowed_roles``.

    Raises UnauthorizedError when there is no identity at all, before the
    role is looked at, and ForbiddenError when the role is not allowed.
    """
    if identity is None:
        raise UnauthorizedError("Unauthorized: not authenticated")
    if identity.role not in set(allowed_roles):
        raise ForbiddenError("Forbidden: insufficient role")
    return identity


def login_session(request: Request, user: models.User) -> Identity:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    return Identity.from_user(user)


def logout_session(request: Request) -> None:
    request.session.clear()


def get_optional_identity(request: Request, db: Session = Depends(get_db)) -> Optional[Identity]:
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is None:
        return None
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        # account removed while the session was alive
        logger.info("Dropping session of missing user id=%s", user_id)
        request.session.clear()
        return None
    return Identity.from_user(user)


def get_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    return authorize(identity, models.Role)


def require_roles(*roles: models.Role):
    def dependency(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
        return authorize(identity, roles)
    return dependency


require_staff = require_roles(*models.STAFF_ROLES)
require_admin = require_roles(models.Role.ADMIN)
