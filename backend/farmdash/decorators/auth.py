from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from farmdash.services.policy import has_module_permission


def require_module_permission(module: str, action: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_module_permission(module, action):
                abort(403, description=f'Missing permission: {module}.{action}')
            return fn(*args, **kwargs)
        return wrapper
    return outer
