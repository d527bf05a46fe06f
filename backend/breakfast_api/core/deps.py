from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.errors import AuthError, ForbiddenError, NotFoundError
from breakfast_api.core.roles import Role
from breakfast_api.core.security import user_id_from_token
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.user import User


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Not authenticated")
    user_id = user_id_from_token(authorization.split(" ", 1)[1])
    if user_id is None:
        raise AuthError("Invalid token")
    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
    if not user:
        raise AuthError("User not found")
    return user


def require_roles(*roles: Role):
    allowed = {r.value for r in roles}

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError("Insufficient role")
        return user

    return checker


require_admin = require_roles(Role.admin)
require_outlet = require_roles(Role.outlet)
require_outlet_or_admin = require_roles(Role.outlet, Role.admin)


def is_admin(user: User) -> bool:
    return user.role == Role.admin.value


def get_outlet_or_404(db: Session, outlet_id: int) -> Outlet:
    outlet = db.query(Outlet).filter(Outlet.id == outlet_id).first()
    if not outlet:
        raise NotFoundError("Outlet not found")
    return outlet


def ensure_outlet_access(db: Session, user: User, outlet_id: int) -> Outlet:
    """Outlet owners may act on their own outlet; admins on any."""
    outlet = get_outlet_or_404(db, outlet_id)
    if is_admin(user):
        return outlet
    if user.role != Role.outlet.value or outlet.owner_id != user.id:
        raise ForbiddenError("You can only access your own outlet")
    return outlet


def ensure_user_access(user: User, user_id: int) -> None:
    if is_admin(user) or user.id == user_id:
        return
    raise ForbiddenError("You can only access your own records")


def get_current_outlet(
    db: Session = Depends(get_db),
    user: User = Depends(require_outlet),
) -> Outlet:
    outlet = (
        db.query(Outlet)
        .filter(Outlet.owner_id == user.id, Outlet.is_active == True)
        .order_by(Outlet.id.asc())
        .first()
    )
    if not outlet:
        raise NotFoundError("No outlet found for this account")
    return outlet
