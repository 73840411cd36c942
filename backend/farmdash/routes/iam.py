from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required, get_jwt_identity
from sqlalchemy import select
from farmdash.models.authz import User
from farmdash.models.audit import AuditLog
from farmdash import get_db
from farmdash.constants.permissions import ROLES, ROLE_LABELS, ROLE_DESCRIPTIONS, ACTIONS, normalize_role
from farmdash.errors import StaleVersion, ValidationError
from farmdash.services.context import get_permissions
from farmdash.services.policy import current_role, has_module_permission, permissions_for_role, visible_nav_links
from farmdash.utils.listing import apply_pagination, build_list_payload, if_match_versions, make_etag_response
from farmdash.decorators.audit import audit_log
from farmdash.decorators.auth import require_module_permission

iam_bp = Blueprint('iam', __name__)

USER_STATUSES = ('Active', 'Inactive')
DEFAULT_USER_ROLE = 'Worker'


def _matrix_payload(matrix):
    return {
        'roles': list(matrix.roles),
        'role_labels': {r: ROLE_LABELS.get(r, r) for r in matrix.roles},
        'role_descriptions': {r: ROLE_DESCRIPTIONS.get(r, '') for r in matrix.roles},
        'modules': list(matrix.modules),
        'actions': list(ACTIONS),
        'permissions': matrix.to_dict(),
        'version': matrix.checksum(),
    }


def _commit_payload(result):
    payload = _matrix_payload(result.matrix)
    payload.update({
        'persisted': result.persisted,
        'warning': result.warning,
        'changes': result.changes,
    })
    return payload, 200, {'ETag': f'"{payload["version"]}"'}


def _commit_meta(data, rv, a, kw):
    return {'changes': data.get('changes', []), 'persisted': data.get('persisted')}


# --- Permission matrix ---

@iam_bp.get('/permissions')
@require_module_permission('admin', 'view')
def get_permission_matrix():
    matrix = get_permissions().snapshot()
    payload = _matrix_payload(matrix)
    return make_etag_response(payload, payload['version'])


@iam_bp.put('/permissions')
@require_module_permission('admin', 'edit')
@audit_log('PERMISSIONS.REPLACE', entity='PermissionMatrix', meta_builder=_commit_meta)
def replace_permission_matrix():
    data = request.get_json(silent=True) or {}
    proposed = data.get('permissions')
    if not isinstance(proposed, dict):
        abort(400, description='permissions object required')
    try:
        result = get_permissions().commit(proposed, expected_version=if_match_versions(request.headers.get('If-Match')))
    except StaleVersion:
        abort(412, description='permissions changed since they were loaded')
    except ValidationError as e:
        abort(400, description=str(e))
    return _commit_payload(result)


@iam_bp.post('/permissions/reset')
@require_module_permission('admin', 'edit')
@audit_log('PERMISSIONS.RESET', entity='PermissionMatrix', meta_builder=_commit_meta)
def reset_permission_matrix():
    return _commit_payload(get_permissions().reset())


@iam_bp.get('/permissions/check')
@jwt_required()
def check_permission():
    module = request.args.get('module')
    action = request.args.get('action')
    if not module or not action:
        abort(400, description='module & action required')
    caller_role = current_role()
    requested = request.args.get('role')
    role = caller_role
    if requested is not None:
        role = normalize_role(requested) or requested
        if role != caller_role and not has_module_permission('admin', 'view'):
            abort(403, description='Missing permission: admin.view')
    allowed = role is not None and get_permissions().can(role, module, action)
    return {'role': role, 'module': module, 'action': action, 'allowed': allowed}


@iam_bp.get('/me/permissions')
@jwt_required()
def my_permissions():
    role = current_role()
    return {
        'identity': get_jwt_identity(),
        'role': role,
        'permissions': permissions_for_role(role),
    }


@iam_bp.get('/navigation')
@jwt_required()
def navigation():
    return {'data': visible_nav_links(current_role())}


# --- User Management ---

def _validated_role(value):
    role = normalize_role(value)
    if role is None:
        abort(400, description=f'role must be one of {list(ROLES)}')
    return role


def _validated_text(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        abort(400, description=f'{key} must be a string')
    value = (value or '').strip()
    if not value:
        abort(400, description=f'{key} cannot be empty')
    return value


def _validated_status(value):
    if value not in USER_STATUSES:
        abort(400, description=f'status must be one of {list(USER_STATUSES)}')
    return value


def _prefetch_user(user_id: int):  # helper for audit decorator pre_fetch
    user = get_db().execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    return user.to_dict() if user else {}


@iam_bp.get('/users')
@require_module_permission('admin', 'view')
def list_users():
    session = get_db()
    q = session.query(User)
    role = request.args.get('role')
    if role:
        q = q.filter(User.role==(normalize_role(role) or role))
    status = request.args.get('status')
    if status:
        q = q.filter(User.status==status)
    q, total, limit, offset = apply_pagination(q.order_by(User.id.asc()))
    rows = [u.to_dict() for u in q.all()]
    return build_list_payload(rows, total, limit, offset)


@iam_bp.post('/users')
@require_module_permission('admin', 'create')
@audit_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email', 'role'])
def create_user():
    data = request.get_json(silent=True) or {}
    name = _validated_text(data, 'name')
    email = _validated_text(data, 'email')
    session = get_db()
    if session.execute(select(User).where(User.email==email)).scalar_one_or_none():
        abort(400, description='email in use')
    user = User(
        name=name,
        email=email,
        role=_validated_role(data.get('role', DEFAULT_USER_ROLE)),
        status=_validated_status(data.get('status', 'Active')),
        avatar_url=data.get('avatar_url'),
    )
    session.add(user)
    session.commit()
    return user.to_dict(), 201


@iam_bp.put('/users/<int:user_id>')
@require_module_permission('admin', 'edit')
@audit_log(
    'USER.UPDATE',
    entity='User',
    entity_id_key='id',
    meta_keys=['email'],
    diff_keys=['name', 'email', 'role', 'status'],
    pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')),
)
def update_user(user_id: int):
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    data = request.get_json(silent=True) or {}
    if 'name' in data:
        user.name = _validated_text(data, 'name')
    if 'email' in data:
        new_email = _validated_text(data, 'email')
        existing = session.execute(select(User).where(User.email==new_email, User.id!=user.id)).scalar_one_or_none()
        if existing:
            abort(400, description='email in use')
        user.email = new_email
    if 'role' in data:
        user.role = _validated_role(data['role'])
    if 'status' in data:
        user.status = _validated_status(data['status'])
    if 'avatar_url' in data:
        user.avatar_url = data['avatar_url']
    session.commit()
    return user.to_dict()


@iam_bp.delete('/users/<int:user_id>')
@require_module_permission('admin', 'delete')
@audit_log('USER.DELETE', entity='User', entity_id_arg='user_id', meta_keys=['email'])
def delete_user(user_id: int):
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    email = user.email
    session.delete(user)
    session.commit()
    return {'status': 'deleted', 'email': email}


# --- Audit Log Listing ---
@iam_bp.get('/audit/logs')
@require_module_permission('admin', 'view')
def list_audit_logs():
    session = get_db()
    q = session.query(AuditLog)
    for field in ('action', 'entity', 'entity_id', 'actor'):
        value = request.args.get(field)
        if value:
            q = q.filter(getattr(AuditLog, field)==value)
    q, total, limit, offset = apply_pagination(q.order_by(AuditLog.id.desc()))
    rows = [r.to_dict() for r in q.all()]
    return build_list_payload(rows, total, limit, offset)
