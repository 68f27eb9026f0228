# Overview: Flask API routes for user lookups used by invoice assignment.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_role
from ..models import Role
from ..services import invoice_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(Role.ADMIN)
def list_users_route():
    """Regular (non-admin) users, for the invoice assignment dropdown."""
    users = invoice_service.list_assignable_users()
    return jsonify([user.to_dict() for user in users])
