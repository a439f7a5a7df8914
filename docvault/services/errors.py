"""服务层业务异常。"""

from __future__ import annotations


class IamServiceError(ValueError):
    """IAM 管理操作被拒绝。"""


class NameConflictError(IamServiceError):
    """名称已被占用。"""


class SystemProtectedError(IamServiceError):
    """系统内置的角色或策略不可修改、不可删除。"""


class InUseError(IamServiceError):
    """仍被引用，无法删除。"""
