"""Session-level owner of the current permission matrix.

One ``PermissionContext`` is created per app in ``create_app`` and stored under
``app.extensions['permissions']``. Readers grab the current reference without
locking; writers build the replacement off to the side and swap the reference
under ``_write_lock``, so a reader sees either the old matrix or the new one.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import threading

from flask import current_app

from farmdash.constants.permissions import MODULES
from farmdash.errors import PersistenceError, StaleVersion
from farmdash.services.matrix import PermissionMatrix, build_default_matrix, can_perform, replace_matrix

log = logging.getLogger(__name__)


@dataclass
class CommitResult:
    matrix: PermissionMatrix
    persisted: bool
    warning: Optional[str] = None
    changes: List[Dict[str, Any]] = field(default_factory=list)


class PermissionContext:
    def __init__(self, store=None, modules=MODULES):
        self.store = store
        self.modules = tuple(modules)
        self._write_lock = threading.Lock()
        self._current = build_default_matrix(self.modules)

    @property
    def current(self) -> PermissionMatrix:
        return self._current

    def snapshot(self) -> PermissionMatrix:
        return self._current

    def can(self, role: str, module: str, action: str) -> bool:
        return can_perform(self._current, role, module, action)

    def load(self) -> PermissionMatrix:
        """Install the stored matrix, or the default policy when none is stored or loading fails."""
        default = build_default_matrix(self.modules)
        loaded = None
        if self.store is not None:
            try:
                loaded = self.store.load()
            except PersistenceError as e:
                log.warning('falling back to default permissions: %s', e)
        with self._write_lock:
            self._current = loaded if loaded is not None else default
        log.info('permission matrix loaded (%s)', 'store' if loaded is not None else 'defaults')
        return self._current

    def commit(self, proposed, expected_version=None) -> CommitResult:
        """Validate and install ``proposed``; ValidationError leaves the current matrix in place.

        ``expected_version`` (a checksum, or several) is compared against the
        current matrix under the write lock; a mismatch raises StaleVersion.
        A failed save still installs the new matrix for this process and reports
        ``persisted=False`` with a warning.
        """
        if isinstance(expected_version, str):
            expected_version = (expected_version,)
        persisted = False
        warning = None
        # saves happen under the lock so the store sees commits in swap order
        with self._write_lock:
            previous = self._current
            if expected_version is not None and previous.checksum() not in expected_version:
                raise StaleVersion(expected_version, previous.checksum())
            new = replace_matrix(previous, proposed)
            changes = previous.diff(new)
            self._current = new
            if self.store is not None:
                try:
                    self.store.save(new)
                    persisted = True
                except PersistenceError as e:
                    warning = 'Permissions applied for this session but could not be saved'
                    log.warning('%s: %s', warning, e)
        log.info('permission matrix replaced (%d cell changes, persisted=%s)', len(changes), persisted)
        return CommitResult(matrix=new, persisted=persisted, warning=warning, changes=changes)

    def reset(self) -> CommitResult:
        return self.commit(build_default_matrix(self.modules))


def get_permissions() -> PermissionContext:
    return current_app.extensions['permissions']


__all__ = ['PermissionContext', 'CommitResult', 'get_permissions']
