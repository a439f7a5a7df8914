"""模型集合。"""

from .bindings import RolePolicy, UserRole
from .policy import Policy, PolicyDocumentView
from .role import Role
from .user import User

DOCUMENT_MODELS = (Policy, Role, UserRole, RolePolicy, User)

__all__ = ["Policy", "PolicyDocumentView", "Role", "UserRole", "RolePolicy", "User", "DOCUMENT_MODELS"]
