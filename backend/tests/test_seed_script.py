import importlib.util
import os

import pytest
from sqlalchemy import delete

from farmdash import get_db
from farmdash.constants.permissions import ROLES, MODULES
from farmdash.models.authz import RoleModulePermission, User
from farmdash.services.matrix import build_default_matrix

SCRIPT = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'seed_authz.py')


@pytest.fixture(scope='module')
def seed():
    spec = importlib.util.spec_from_file_location('seed_authz', SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_ensure_matrix_is_idempotent(seed):
    session = get_db()
    session.execute(delete(RoleModulePermission))
    session.commit()
    assert seed.ensure_matrix(session) == len(ROLES) * len(MODULES)
    session.commit()
    assert seed.ensure_matrix(session) == 0
    assert seed.ensure_matrix(session, reset=True) == len(ROLES) * len(MODULES)
    session.commit()
    assert seed.stored_matrix_document(session) == build_default_matrix(MODULES).to_dict()


def test_ensure_initial_admin(seed, monkeypatch):
    monkeypatch.setenv('SEED_ADMIN_EMAIL', 'seed-admin@farm.test')
    session = get_db()
    user = seed.ensure_initial_admin(session)
    session.commit()
    assert user.role == 'Admin'
    assert seed.ensure_initial_admin(session) is None
    assert session.query(User).filter_by(email='seed-admin@farm.test').count() == 1


def test_render_matrix(seed):
    grid = seed.render_matrix(build_default_matrix(MODULES).to_dict())
    lines = grid.splitlines()
    assert lines[0].startswith('Role')
    worker = next(l for l in lines if l.startswith('Worker'))
    assert 'VCE-' in worker
    assert seed.format_cell({'view': True, 'create': False, 'edit': False, 'delete': False}) == 'V---'
    assert seed.format_cell(None) == '----'
