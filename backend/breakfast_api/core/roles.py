from enum import Enum


class Role(str, Enum):
    user = "user"
    outlet = "outlet"
    admin = "admin"


ALL_ROLES = {Role.user, Role.outlet, Role.admin}
