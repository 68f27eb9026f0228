# Overview: Authorization guard; derives the caller identity from an access token and owns the single ownership rule.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .errors import AuthError, ForbiddenError
from .models import Role


@dataclass(frozen=True)
class Identity:
    """Caller identity, taken only from validated access-token claims."""
    user_id: int
    username: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def get_token_service():
    return current_app.extensions["token_service"]


def identity_from_claims(claims: dict) -> Identity:
    role = Role.parse(claims.get("role"))
    if role is None:
        raise AuthError(reason="unknown role claim")
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthError(reason="malformed subject claim")
    return Identity(
        user_id=user_id,
        username=claims.get("username") or "",
        email=claims.get("email") or "",
        role=role,
    )


def authenticate_bearer(auth_header: str | None) -> Identity:
    """
    Decode `Authorization: Bearer <token>` into an Identity.

    Fails closed: a missing header, bad signature, wrong issuer/audience or an
    expired token all raise AuthError.
    """
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthError("Authentication required", reason="missing bearer token")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Authentication required", reason="empty bearer token")
    claims = get_token_service().decode_access_token(token)
    return identity_from_claims(claims)


def is_owner(identity: Identity, resource_owner_id: int | None) -> bool:
    return resource_owner_id is not None and resource_owner_id == identity.user_id


def can_act(identity: Identity, resource_owner_id: int | None) -> bool:
    """Admins may act on anything; users only on resources they own."""
    if identity.is_admin:
        return True
    return is_owner(identity, resource_owner_id)


def ensure_can_act(identity: Identity, resource_owner_id: int | None, message: str = "Access denied") -> None:
    if not can_act(identity, resource_owner_id):
        raise ForbiddenError(message)


def ensure_owner(identity: Identity, resource_owner_id: int | None, message: str = "Access denied") -> None:
    """Recipient-only resources (notifications): no admin override."""
    if not is_owner(identity, resource_owner_id):
        raise ForbiddenError(message)
