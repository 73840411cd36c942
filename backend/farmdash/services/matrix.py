"""Role x module permission matrix.

A ``PermissionMatrix`` maps every (role, module) pair it was built for to a
``CapabilitySet`` of four independent flags. Matrices are immutable once built;
changing policy means building a new matrix and swapping the reference held by
``farmdash.services.context.PermissionContext``.

Usage:
    matrix = build_default_matrix(MODULES)
    can_perform(matrix, 'Worker', 'production', 'create')   # True
    can_perform(matrix, 'NotARole', 'sales', 'view')        # False (default deny)
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import hashlib
import json
import logging

from farmdash.constants.permissions import ROLES, MODULES, ACTIONS
from farmdash.errors import UnknownKey, ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilitySet:
    view: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False

    def allows(self, action: str) -> bool:
        if action not in ACTIONS:
            return False
        return getattr(self, action)

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CapabilitySet':
        problems = capability_problems(data)
        if problems:
            raise ValidationError(problems)
        return cls(**{a: data[a] for a in ACTIONS})


ALL_ACCESS = CapabilitySet(view=True, create=True, edit=True, delete=True)
READ_ONLY = CapabilitySet(view=True)
NO_ACCESS = CapabilitySet()
CREATE_EDIT_VIEW = CapabilitySet(view=True, create=True, edit=True)

# role -> (default, [(modules, capabilities), ...]); exceptions apply in order, last match wins
DEFAULT_POLICY: Dict[str, Tuple[CapabilitySet, List[Tuple[Tuple[str, ...], CapabilitySet]]]] = {
    'Admin': (ALL_ACCESS, []),
    'FarmManager': (ALL_ACCESS, [
        (('admin',), NO_ACCESS),
        (('accounting',), READ_ONLY),
    ]),
    'Accountant': (NO_ACCESS, [
        (('accounting', 'reports'), ALL_ACCESS),
        (('dashboard', 'sales', 'inventory'), READ_ONLY),
    ]),
    'Sales': (NO_ACCESS, [
        (('sales',), ALL_ACCESS),
        (('dashboard', 'reports', 'inventory'), READ_ONLY),
    ]),
    'Worker': (NO_ACCESS, [
        (('production',), CREATE_EDIT_VIEW),
        (('dashboard', 'inventory'), READ_ONLY),
    ]),
}


def default_capabilities(role: str, module: str) -> CapabilitySet:
    """Capabilities the built-in policy grants ``role`` on ``module``."""
    default, exceptions = DEFAULT_POLICY.get(role, (NO_ACCESS, []))
    caps = default
    for modules, override in exceptions:
        if module in modules:
            caps = override
    return caps


def capability_problems(data, where: str = '') -> List[str]:
    prefix = f"{where}: " if where else ''
    if not isinstance(data, Mapping):
        return [f"{prefix}capabilities must be an object"]
    problems = []
    for action in ACTIONS:
        if action not in data:
            problems.append(f"{prefix}missing action '{action}'")
        elif not isinstance(data[action], bool):
            problems.append(f"{prefix}'{action}' must be boolean")
    for extra in sorted(k for k in data if k not in ACTIONS):
        problems.append(f"{prefix}unknown action '{extra}'")
    return problems


class PermissionMatrix:
    """Immutable (role, module) -> CapabilitySet mapping with O(1) lookups."""

    __slots__ = ('_cells', 'roles', 'modules')

    def __init__(self, cells: Mapping[str, Mapping[str, CapabilitySet]], roles: Optional[Sequence[str]] = None,
                 modules: Optional[Sequence[str]] = None):
        frozen = {}
        for role, row in cells.items():
            frozen[role] = MappingProxyType(dict(row))
        self._cells = MappingProxyType(frozen)
        self.roles: Tuple[str, ...] = tuple(roles) if roles is not None else tuple(frozen)
        if modules is None:
            seen: Dict[str, None] = {}
            for row in frozen.values():
                for module in row:
                    seen.setdefault(module, None)
            modules = list(seen)
        self.modules: Tuple[str, ...] = tuple(modules)

    def lookup(self, role: str, module: str) -> CapabilitySet:
        if not isinstance(role, str):
            raise UnknownKey('role', role)
        if not isinstance(module, str):
            raise UnknownKey('module', module)
        row = self._cells.get(role)
        if row is None:
            raise UnknownKey('role', role)
        caps = row.get(module)
        if caps is None:
            raise UnknownKey('module', module)
        return caps

    def row(self, role: str) -> Mapping[str, CapabilitySet]:
        if not isinstance(role, str) or role not in self._cells:
            raise UnknownKey('role', role)
        return self._cells[role]

    def cells(self):
        for role, row in self._cells.items():
            for module, caps in row.items():
                yield role, module, caps

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, bool]]]:
        return {role: {module: caps.to_dict() for module, caps in row.items()} for role, row in self._cells.items()}

    def checksum(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def diff(self, other: 'PermissionMatrix') -> List[Dict[str, Any]]:
        """Cell-level changes from ``self`` to ``other`` (cells present in both)."""
        changes = []
        for role, module, before in self.cells():
            try:
                after = other.lookup(role, module)
            except UnknownKey:
                continue
            if before == after:
                continue
            for action in ACTIONS:
                if getattr(before, action) != getattr(after, action):
                    changes.append({
                        'role': role,
                        'module': module,
                        'action': action,
                        'before': getattr(before, action),
                        'after': getattr(after, action),
                    })
        return changes

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], roles: Sequence[str] = ROLES,
                  modules: Sequence[str] = MODULES) -> 'PermissionMatrix':
        """Parse a nested ``{role: {module: {action: bool}}}`` document; strict totality."""
        problems = matrix_problems(data, roles, modules)
        if problems:
            raise ValidationError(problems)
        cells = {
            role: {module: CapabilitySet(**{a: data[role][module][a] for a in ACTIONS}) for module in modules}
            for role in roles
        }
        return cls(cells, roles=roles, modules=modules)

    def __eq__(self, other):
        if not isinstance(other, PermissionMatrix):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.checksum())

    def __repr__(self):
        return f"PermissionMatrix(roles={len(self.roles)}, modules={len(self.modules)})"


def matrix_problems(data, roles: Sequence[str], modules: Sequence[str]) -> List[str]:
    """Every totality / unknown-key problem in a nested matrix document."""
    if isinstance(data, PermissionMatrix):
        data = data.to_dict()
    if not isinstance(data, Mapping):
        return ['permissions must be an object keyed by role']
    problems = []
    for role in data:
        if role not in roles:
            problems.append(f"unknown role '{role}'")
    for role in roles:
        row = data.get(role)
        if row is None:
            problems.append(f"missing role '{role}'")
            continue
        if not isinstance(row, Mapping):
            problems.append(f"{role}: modules must be an object")
            continue
        for module in row:
            if module not in modules:
                problems.append(f"{role}: unknown module '{module}'")
        for module in modules:
            if module not in row:
                problems.append(f"{role}: missing module '{module}'")
            else:
                problems.extend(capability_problems(row[module], f"{role}.{module}"))
    return problems


def build_default_matrix(modules: Iterable[str] = MODULES) -> PermissionMatrix:
    modules = tuple(modules)
    unknown = [m for m in modules if m not in MODULES]
    if unknown:
        raise ValidationError([f"unknown module '{m}'" for m in unknown])
    cells = {role: {module: default_capabilities(role, module) for module in modules} for role in ROLES}
    return PermissionMatrix(cells, roles=ROLES, modules=modules)


def can_perform(matrix: PermissionMatrix, role: str, module: str, action: str) -> bool:
    """Default deny: anything outside the known roles/modules/actions answers False."""
    if not isinstance(action, str) or action not in ACTIONS:
        log.debug('deny unknown action %r', action)
        return False
    try:
        caps = matrix.lookup(role, module)
    except UnknownKey as e:
        log.debug('deny %s', e)
        return False
    return caps.allows(action)


def replace_matrix(current: PermissionMatrix, proposed) -> PermissionMatrix:
    """Validate ``proposed`` against the shape of ``current`` and return it as a fresh matrix.

    Raises ValidationError when ``proposed`` is not total or names unknown keys;
    ``current`` is never modified.
    """
    roles, modules = current.roles, current.modules
    if isinstance(proposed, PermissionMatrix):
        proposed = proposed.to_dict()
    return PermissionMatrix.from_dict(proposed, roles=roles, modules=modules)


__all__ = [
    'CapabilitySet', 'PermissionMatrix', 'ALL_ACCESS', 'READ_ONLY', 'NO_ACCESS', 'CREATE_EDIT_VIEW',
    'DEFAULT_POLICY', 'default_capabilities', 'build_default_matrix', 'can_perform', 'replace_matrix',
    'matrix_problems', 'capability_problems',
]
