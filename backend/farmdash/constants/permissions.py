"""Central enum-like definitions for roles, modules and actions.
Extend cautiously; the permission store and issued tokens reference these strings verbatim.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

ROLES: Tuple[str, ...] = ('Admin', 'FarmManager', 'Accountant', 'Sales', 'Worker')

# Display labels used by the dashboard (older tokens may still carry the label)
ROLE_LABELS: Dict[str, str] = {
    'Admin': 'Admin',
    'FarmManager': 'Farm Manager',
    'Accountant': 'Accountant',
    'Sales': 'Sales',
    'Worker': 'Worker',
}

# Shown beside each role in the permission editor
ROLE_DESCRIPTIONS: Dict[str, str] = {
    'Admin': 'Full access to every part of the system, including user management and settings.',
    'FarmManager': 'Sees the farm overview and manages production and staff, without detailed payroll data.',
    'Accountant': 'Manages all accounting and finance data and can create and view financial reports.',
    'Sales': 'Works in the sales module, managing orders and customer records.',
    'Worker': 'Sees only assigned tasks and records their own work.',
}

MODULES: Tuple[str, ...] = (
    'dashboard',
    'production',
    'hr',
    'accounting',
    'sales',
    'investment',
    'reports',
    'admin',
    'inventory',
)

ACTIONS: Tuple[str, ...] = ('view', 'create', 'edit', 'delete')

# Sidebar navigation; kept apart from MODULES so routes and permission buckets can diverge.
NAV_LINKS: List[Dict[str, str]] = [
    {'module': 'dashboard', 'name': 'Dashboard', 'href': '#/'},
    {'module': 'production', 'name': 'Production & IoT', 'href': '#/production'},
    {'module': 'inventory', 'name': 'Inventory', 'href': '#/inventory'},
    {'module': 'hr', 'name': 'Human Resources', 'href': '#/hr'},
    {'module': 'accounting', 'name': 'Farm Accounting', 'href': '#/accounting'},
    {'module': 'sales', 'name': 'Sales & CRM', 'href': '#/sales'},
    {'module': 'investment', 'name': 'Investment & Risk', 'href': '#/investment'},
    {'module': 'reports', 'name': 'Reports', 'href': '#/reports'},
    {'module': 'admin', 'name': 'Administration', 'href': '#/admin'},
]

_LABEL_TO_ROLE = {label: role for role, label in ROLE_LABELS.items()}


def normalize_role(value) -> Optional[str]:
    """Map a role identifier or display label to its identifier; None when unknown."""
    if not isinstance(value, str):
        return None
    if value in ROLES:
        return value
    return _LABEL_TO_ROLE.get(value.strip())


__all__ = ['ROLES', 'ROLE_LABELS', 'MODULES', 'ACTIONS', 'NAV_LINKS', 'normalize_role']
