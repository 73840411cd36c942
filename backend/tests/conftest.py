import os, sys, pytest
# Ensure backend directory is on path so 'farmdash' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from flask_jwt_extended import create_access_token
from farmdash import create_app


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'PERMISSIONS_AUTO_CREATE_SCHEMA': True,
        'PERMISSIONS_PERSIST': True,
    })
    yield app


@pytest.fixture(autouse=True)
def default_permissions(app_instance):
    # Every test starts from the built-in policy
    app_instance.extensions['permissions'].reset()
    yield app_instance.extensions['permissions']


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def auth_headers(app_instance):
    def make(role, identity='tester'):
        claims = {} if role is None else {'role': role}
        with app_instance.app_context():
            token = create_access_token(identity=identity, additional_claims=claims)
        return {'Authorization': f'Bearer {token}'}
    return make
