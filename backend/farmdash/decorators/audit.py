from __future__ import annotations
"""Audit logging decorator for route handlers.

Usage examples:

@audit_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email', 'role'])
def create_user():
    ... return user.to_dict(), 201

@audit_log('PERMISSIONS.REPLACE', entity='PermissionMatrix',
           meta_builder=lambda data, rv, args, kwargs: {'changes': data.get('changes', [])})
def replace_permissions(): ...

Parameters:
  action: required audit action code (e.g. USER.CREATE)
  entity: optional entity label (User, PermissionMatrix)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: keys to project from returned JSON into meta.
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs).
  diff_keys / pre_fetch: snapshot fields before the handler runs and record before/after pairs.

The handler's return value is passed through untouched; audit failures are logged, never raised.
"""

from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from farmdash.services.audit import add_audit
from farmdash import get_db

log = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def _changes(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    out = {}
    for k in keys:
        if k in before and k in after and before[k] != after[k]:
            out[k] = {'before': before[k], 'after': after[k]}
    return out


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data = _extract_payload(rv)
            try:
                if not isinstance(data, dict):
                    add_audit(action, entity)
                else:
                    entity_id = None
                    if entity_id_key and entity_id_key in data:
                        entity_id = data.get(entity_id_key)
                    elif entity_id_arg and entity_id_arg in kwargs:
                        entity_id = kwargs.get(entity_id_arg)
                    meta = {}
                    if meta_builder:
                        meta = meta_builder(data, rv, args, kwargs) or {}
                    elif meta_keys:
                        meta = {k: data.get(k) for k in meta_keys if k in data}
                    if diff_keys and isinstance(before, dict):
                        changes = _changes(before, data, diff_keys)
                        if changes:
                            meta['changes'] = changes
                    add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except SQLAlchemyError:
                log.exception('audit write failed for %s', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer
