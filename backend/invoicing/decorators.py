# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .authorization import authenticate_bearer
from .errors import AuthError


def require_auth(f):
    """
    Require a valid access token.

    Sets g.identity (authorization.Identity) for the route. Returns 401 on a
    missing, malformed, tampered or expired token. No database access.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.identity = authenticate_bearer(request.headers.get("Authorization"))
        except AuthError as e:
            current_app.logger.info("Rejected bearer token on %s: %s", request.path, e.reason)
            return jsonify(e.to_dict()), 401
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the authenticated caller to hold one of `roles`. Apply after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = getattr(g, "identity", None)
            if identity is None:
                return jsonify({"error": "Authentication required"}), 401
            if identity.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": [r.value for r in roles],
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
