from farmdash import get_db
from farmdash.models.audit import AuditLog
from farmdash.models.authz import User


def _create(client, headers, **fields):
    resp = client.post('/iam/users', json=fields, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_user_crud_flow(client, auth_headers):
    admin = auth_headers('Admin', identity='admin-crud')
    created = _create(client, admin, name='Somchai', email='somchai@farm.test', role='Farm Manager')
    assert created['role'] == 'FarmManager'
    assert created['status'] == 'Active'
    uid = created['id']

    updated = client.put(f'/iam/users/{uid}', json={'role': 'Worker', 'status': 'Inactive'}, headers=admin)
    assert updated.status_code == 200
    assert updated.get_json()['role'] == 'Worker'

    listing = client.get('/iam/users?role=Worker&limit=5', headers=admin).get_json()
    assert any(u['id'] == uid for u in listing['data'])
    assert listing['pagination']['limit'] == 5

    deleted = client.delete(f'/iam/users/{uid}', headers=admin)
    assert deleted.status_code == 200
    assert get_db().query(User).filter_by(id=uid).one_or_none() is None

    session = get_db()
    create_audit = session.query(AuditLog).filter(AuditLog.action=='USER.CREATE', AuditLog.entity_id==str(uid)).one()
    assert create_audit.meta == {'email': 'somchai@farm.test', 'role': 'FarmManager'}
    update_audit = session.query(AuditLog).filter(AuditLog.action=='USER.UPDATE', AuditLog.entity_id==str(uid)).one()
    assert update_audit.meta['changes']['role'] == {'before': 'FarmManager', 'after': 'Worker'}
    assert 'name' not in update_audit.meta['changes']
    delete_audit = session.query(AuditLog).filter(AuditLog.action=='USER.DELETE', AuditLog.entity_id==str(uid)).one()
    assert delete_audit.actor == 'admin-crud'


def test_user_validation(client, auth_headers):
    admin = auth_headers('Admin')
    assert client.post('/iam/users', json={'name': 'NoEmail'}, headers=admin).status_code == 400
    assert client.post('/iam/users', json={'name': 'X', 'email': 'x@farm.test', 'role': 'Janitor'}, headers=admin).status_code == 400
    assert client.post('/iam/users', json={'name': 'X', 'email': 'x@farm.test', 'status': 'Away'}, headers=admin).status_code == 400
    _create(client, admin, name='Dup', email='dup@farm.test')
    assert client.post('/iam/users', json={'name': 'Dup2', 'email': 'dup@farm.test'}, headers=admin).status_code == 400
    assert client.put('/iam/users/999999', json={'name': 'Nobody'}, headers=admin).status_code == 404
    assert client.delete('/iam/users/999999', headers=admin).status_code == 404


def test_user_endpoints_follow_matrix(client, auth_headers, app_instance):
    worker = auth_headers('Worker')
    assert client.get('/iam/users', headers=worker).status_code == 403
    assert client.post('/iam/users', json={'name': 'W', 'email': 'w@farm.test'}, headers=worker).status_code == 403

    # grant Worker create (but not delete) on admin
    ctx = app_instance.extensions['permissions']
    doc = ctx.snapshot().to_dict()
    doc['Worker']['admin'] = {'view': True, 'create': True, 'edit': False, 'delete': False}
    ctx.commit(doc)
    created = _create(client, worker, name='Helper', email='helper@farm.test')
    assert client.delete(f"/iam/users/{created['id']}", headers=worker).status_code == 403
    assert client.put(f"/iam/users/{created['id']}", json={'name': 'H'}, headers=worker).status_code == 403


def test_audit_log_listing(client, auth_headers):
    admin = auth_headers('Admin')
    _create(client, admin, name='Audited', email='audited@farm.test', role='Sales')
    resp = client.get('/iam/audit/logs?action=USER.CREATE&limit=10', headers=admin)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['data']
    assert all(r['action'] == 'USER.CREATE' for r in body['data'])
    assert client.get('/iam/audit/logs', headers=auth_headers('Accountant')).status_code == 403
    assert client.get('/iam/audit/logs?limit=abc', headers=admin).status_code == 400


def test_new_user_defaults_to_worker(client, auth_headers):
    created = _create(client, auth_headers('Admin'), name='NoRole', email='norole@farm.test')
    assert created['role'] == 'Worker'


def test_role_cannot_be_cleared(client, auth_headers):
    admin = auth_headers('Admin')
    uid = _create(client, admin, name='Keeps', email='keeps@farm.test', role='Sales')['id']
    assert client.put(f'/iam/users/{uid}', json={'role': None}, headers=admin).status_code == 400
    assert client.post('/iam/users', json={'name': 'Null', 'email': 'null@farm.test', 'role': None}, headers=admin).status_code == 400
    assert get_db().query(User).filter_by(id=uid).one().role == 'Sales'


def test_update_validates_name_and_email_like_create(client, auth_headers):
    admin = auth_headers('Admin')
    uid = _create(client, admin, name='Trim', email='trim@farm.test')['id']
    assert client.put(f'/iam/users/{uid}', json={'name': '   '}, headers=admin).status_code == 400
    assert client.put(f'/iam/users/{uid}', json={'email': 42}, headers=admin).status_code == 400
    assert client.post('/iam/users', json={'name': ['x'], 'email': 'list@farm.test'}, headers=admin).status_code == 400
    resp = client.put(f'/iam/users/{uid}', json={'name': '  Trimmed  ', 'email': ' trimmed@farm.test '}, headers=admin)
    assert resp.status_code == 200
    assert resp.get_json()['name'] == 'Trimmed'
    assert resp.get_json()['email'] == 'trimmed@farm.test'
