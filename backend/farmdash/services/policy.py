from __future__ import annotations
from typing import Dict, List, Optional
from flask_jwt_extended import get_jwt

from farmdash.constants.permissions import NAV_LINKS, normalize_role
from farmdash.services.context import get_permissions
from farmdash.services.matrix import NO_ACCESS, can_perform


def current_role() -> Optional[str]:
    """Role claim of the verified token, normalised; None when absent or unknown."""
    claims = get_jwt()
    return normalize_role(claims.get('role'))


def has_module_permission(module: str, action: str) -> bool:
    role = current_role()
    if role is None:
        return False
    return get_permissions().can(role, module, action)


def permissions_for_role(role: Optional[str]) -> Dict[str, Dict[str, bool]]:
    """Row of the current matrix for ``role``; every module denied when the role is unknown."""
    matrix = get_permissions().snapshot()
    if role is None or role not in matrix.roles:
        return {module: NO_ACCESS.to_dict() for module in matrix.modules}
    return {module: caps.to_dict() for module, caps in matrix.row(role).items()}


def visible_nav_links(role: Optional[str]) -> List[Dict[str, str]]:
    matrix = get_permissions().snapshot()
    if role is None:
        return []
    return [dict(link) for link in NAV_LINKS if can_perform(matrix, role, link['module'], 'view')]
