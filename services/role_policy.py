# File: services/role_policy.py
# 功能：按角色划分的开瓶规则
# 实现：一张角色→规则表，开瓶事务只查一次

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class RolePolicy:
    """
    开瓶规则

    字段说明：
        - require_assignment: 只能开分配给自己的瓶子
        - enforce_exclusivity: 事务内预先检查“这瓶已开过”（数据库唯一约束始终兜底）
        - enforce_daily_limit: 每个自然日最多开一瓶
    """
    require_assignment: bool
    enforce_exclusivity: bool
    enforce_daily_limit: bool


ADMIN_POLICY = RolePolicy(require_assignment=False, enforce_exclusivity=True, enforce_daily_limit=False)
USER_POLICY = RolePolicy(require_assignment=True, enforce_exclusivity=True, enforce_daily_limit=True)

DEFAULT_POLICIES: Dict[str, RolePolicy] = {
    "admin": ADMIN_POLICY,
    "user": USER_POLICY,
}


class RolePolicyTable:
    """角色规则表，可在构造时覆盖默认规则"""

    def __init__(self, overrides: Optional[Dict[str, RolePolicy]] = None):
        self._policies = dict(DEFAULT_POLICIES)
        if overrides:
            self._policies.update(overrides)

    def for_user(self, user) -> RolePolicy:
        # 未知角色一律按最严格的普通用户处理
        return self._policies.get(user.role, USER_POLICY)
