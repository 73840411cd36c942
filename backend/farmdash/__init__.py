from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['PERMISSIONS_PERSIST'] = _env_flag('PERMISSIONS_PERSIST', '1')
    app.config['PERMISSIONS_AUTO_CREATE_SCHEMA'] = _env_flag('PERMISSIONS_AUTO_CREATE_SCHEMA', '0')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .models.authz import Base
    from .models import audit  # noqa: F401  registers audit_logs on Base.metadata
    if app.config['PERMISSIONS_AUTO_CREATE_SCHEMA']:
        # bootstrap only; deployed databases are migrated with alembic
        Base.metadata.create_all(db_engine)

    # Permission matrix owned by this app instance
    from .services.context import PermissionContext
    from .services.persistence import MatrixStore
    store = MatrixStore(get_db) if app.config['PERMISSIONS_PERSIST'] else None
    permissions = PermissionContext(store=store)
    app.extensions['permissions'] = permissions
    with app.app_context():
        permissions.load()

    from .routes.iam import iam_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
