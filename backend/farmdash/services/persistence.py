"""SQLAlchemy-backed store for the permission matrix.

The store only ever sees whole matrices: ``save`` replaces every row inside one
transaction, ``load`` reads them all back. Driver errors surface as
``PersistenceError`` after the session is rolled back.
"""
from __future__ import annotations
from typing import Callable, Optional
import logging

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from farmdash.constants.permissions import ROLES, MODULES
from farmdash.errors import PersistenceError
from farmdash.models.authz import RoleModulePermission
from farmdash.services.matrix import CapabilitySet, PermissionMatrix, default_capabilities

log = logging.getLogger(__name__)


class MatrixStore:
    def __init__(self, session_factory: Callable, roles=ROLES, modules=MODULES):
        self.session_factory = session_factory
        self.roles = tuple(roles)
        self.modules = tuple(modules)

    def load(self) -> Optional[PermissionMatrix]:
        """Return the stored matrix, or None when nothing has been saved yet.

        Cells missing from storage (e.g. a module added after the last save) take
        the built-in default; rows naming unknown roles/modules are ignored.
        """
        session = self.session_factory()
        try:
            rows = session.execute(select(RoleModulePermission)).scalars().all()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f'could not load permissions: {e}') from e
        if not rows:
            return None
        stored = {}
        for r in rows:
            if r.role not in self.roles or r.module not in self.modules:
                log.warning('ignoring stored permission for unknown %s/%s', r.role, r.module)
                continue
            stored[(r.role, r.module)] = CapabilitySet(
                view=bool(r.can_view), create=bool(r.can_create), edit=bool(r.can_edit), delete=bool(r.can_delete)
            )
        cells = {
            role: {module: stored.get((role, module), default_capabilities(role, module)) for module in self.modules}
            for role in self.roles
        }
        return PermissionMatrix(cells, roles=self.roles, modules=self.modules)

    @staticmethod
    def write(session, matrix: PermissionMatrix) -> int:
        """Stage a full replacement of the stored rows; the caller commits or rolls back."""
        session.execute(delete(RoleModulePermission))
        count = 0
        for role, module, caps in matrix.cells():
            session.add(RoleModulePermission(
                role=role,
                module=module,
                can_view=caps.view,
                can_create=caps.create,
                can_edit=caps.edit,
                can_delete=caps.delete,
            ))
            count += 1
        return count

    def save(self, matrix: PermissionMatrix) -> int:
        session = self.session_factory()
        try:
            count = self.write(session, matrix)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f'could not save permissions: {e}') from e
        return count


__all__ = ['MatrixStore']
