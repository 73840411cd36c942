from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity, get_jwt
from farmdash import get_db
from farmdash.constants.permissions import normalize_role
from farmdash.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. PERMISSIONS.REPLACE, USER.CREATE
      entity: optional entity name (PermissionMatrix, User)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    try:
        claims = get_jwt() or {}
        ident = get_jwt_identity()
    except RuntimeError:
        # outside a verified request (seed scripts, direct service calls)
        claims, ident = {}, None
    entry = AuditLog(
        actor=str(ident) if ident is not None else None,
        actor_role=normalize_role(claims.get('role')),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(entry)
    # No commit here; caller's transaction boundary controls durability.
    return entry
