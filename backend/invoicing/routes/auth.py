# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- register: create a user, then log them in with the same credentials
- login: username + password + requested role -> access/refresh token pair
- refresh-token: single-use rotation of the refresh token
- revoke-token: clear a refresh token (requires a valid access token)
- logout: same as revoke, without requiring an access token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..authorization import get_token_service
from ..decorators import require_auth
from ..errors import AuthError, ValidationError
from ..models import Role
from ..services.push_service import ADMINS_GROUP
from ..services.notification_service import get_push_dispatcher
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _requested_role(data: dict):
    return data.get("role") or data.get("userType") or Role.USER.value


def _token_response(pair, user=None) -> dict:
    body = {
        "accessToken": pair.access_token,
        "refreshToken": pair.refresh_token,
        "accessTokenExpiry": to_utc_z(pair.access_token_expires_at),
        "refreshTokenExpiry": to_utc_z(pair.refresh_token_expires_at),
    }
    if user is not None:
        body["username"] = user.username
        body["role"] = user.role.value
    return body


def _login(username, password, role):
    pair, user = get_token_service().login(username, password, role)
    if user.is_admin:
        get_push_dispatcher().join_group(ADMINS_GROUP, user.id)
    return pair, user


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    role = _requested_role(data)
    current_app.logger.info("Registration attempt - username=%s role=%s", username, role)

    user = get_token_service().register(username, data.get("email"), data.get("password"), role)
    current_app.logger.info("User %s registered with role %s", user.username, user.role.value)

    pair, user = _login(username, data.get("password"), user.role)
    return jsonify(_token_response(pair, user)), 201


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    role = _requested_role(data)
    current_app.logger.info("Login attempt - username=%s role=%s", username, role)

    if Role.parse(role) is None:
        raise ValidationError(
            "Invalid user type. Must be either 'User' or 'Admin'", {"role": "must be User or Admin"}
        )

    try:
        pair, user = _login(username, data.get("password"), role)
    except AuthError as e:
        current_app.logger.warning("Login failed for username=%s: %s", username, e.reason)
        raise

    current_app.logger.info("Login successful for %s (%s)", user.username, user.role.value)
    return jsonify(_token_response(pair, user)), 200


@auth_bp.post("/refresh-token")
def refresh_route():
    data = request.get_json(silent=True) or {}
    try:
        pair, user = get_token_service().refresh(data.get("refreshToken"))
    except AuthError as e:
        current_app.logger.warning("Token refresh failed: %s", e.reason)
        raise

    return jsonify(_token_response(pair, user)), 200


@auth_bp.post("/revoke-token")
@require_auth
def revoke_route():
    data = request.get_json(silent=True) or {}
    if get_token_service().revoke(data.get("refreshToken")):
        current_app.logger.info("Refresh token revoked by user %s", g.identity.user_id)
        return jsonify({"message": "Token revoked successfully"}), 200

    current_app.logger.warning("Failed to revoke token - token not found")
    return jsonify({"error": "Failed to revoke token"}), 400


@auth_bp.post("/logout")
def logout_route():
    data = request.get_json(silent=True) or {}
    get_token_service().revoke(data.get("refreshToken"))
    return jsonify({"message": "Logged out successfully"}), 200
