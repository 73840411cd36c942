"""Error kinds raised by the permission services.

Routes translate these into the standard JSON error shape via ``abort``.
"""
from __future__ import annotations
from typing import Iterable, List


class AuthzError(Exception):
    pass


class UnknownKey(AuthzError, KeyError):
    """Role, module or action outside the closed enumerations."""

    def __init__(self, kind: str, value):
        self.kind = kind
        self.value = value
        super().__init__(f"unknown {kind}: {value!r}")

    def __str__(self):
        return self.args[0]


class ValidationError(AuthzError, ValueError):
    """A proposed matrix is not total or references unknown keys."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__('; '.join(self.problems) or 'invalid permission matrix')


class PersistenceError(AuthzError):
    """Loading or saving the matrix through the store failed."""


class StaleVersion(AuthzError):
    """The matrix changed since the caller read the version it is editing."""

    def __init__(self, expected, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f'permissions changed since version {expected!r}')


__all__ = ['AuthzError', 'UnknownKey', 'ValidationError', 'PersistenceError', 'StaleVersion']
