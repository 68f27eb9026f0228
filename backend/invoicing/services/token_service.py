# Overview: Service-layer operations for authentication tokens; registration, login, rotation and revocation.

"""
Token Service

Access tokens: PyJWT, HS256, short-lived (1 hour), carry the identity id,
username, email and role as claims. Validation is a pure function with no
database access and zero clock-skew leeway.

Refresh tokens: opaque, 48 bytes from `secrets`, valid 7 days. Only the
SHA-256 digest is stored, on the user row. A user holds at most one live
refresh token, so a new login invalidates the refresh capability of any
earlier session.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12), never read back
- Login failures never distinguish "no such user" from "wrong password"
- Rotation is single-use: the swap is a conditional UPDATE on the old digest,
  so two concurrent refreshes presenting the same token cannot both succeed
"""

from __future__ import annotations

import hashlib
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

import bcrypt
import jwt
from sqlalchemy.exc import IntegrityError

from ..errors import AuthError, ConflictError, ValidationError
from ..extensions import db
from ..models import Role, User, casefold_key
from ..time_utils import to_epoch_seconds, utcnow


MIN_PASSWORD_LENGTH = 6
MAX_USERNAME_LENGTH = 100
MAX_EMAIL_LENGTH = 200
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_TOKEN = "Invalid or expired token"

DUPLICATE_USERNAME = ("Username already exists", {"username": "already taken"})
DUPLICATE_EMAIL = ("Email already exists", {"email": "already registered"})


@dataclass(frozen=True)
class TokenSettings:
    """Signing configuration, frozen at startup."""
    secret_key: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_ttl: timedelta = timedelta(hours=1)
    refresh_token_ttl: timedelta = timedelta(days=7)
    bcrypt_rounds: int = 12

    @classmethod
    def from_config(cls, config) -> "TokenSettings":
        return cls(
            secret_key=config["JWT_SECRET_KEY"],
            issuer=config["JWT_ISSUER"],
            audience=config["JWT_AUDIENCE"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_token_ttl=timedelta(minutes=config.get("ACCESS_TOKEN_TTL_MINUTES", 60)),
            refresh_token_ttl=timedelta(days=config.get("REFRESH_TOKEN_TTL_DAYS", 7)),
            bcrypt_rounds=config.get("BCRYPT_ROUNDS", 12),
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed stored hashes count as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_token(token: str) -> str:
    """
    SHA-256 digest for refresh-token storage.

    Refresh tokens are high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _require_text(field: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", {field: "must not be blank"})
    return value


class TokenService:
    """Issues, validates, rotates and revokes session tokens."""

    def __init__(self, settings: TokenSettings):
        self.settings = settings

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str, role) -> User:
        """
        Create a user with a bcrypt password hash.

        Raises:
            ValidationError: blank or overlong fields, malformed email, short password, unknown role
            ConflictError: username or email already taken (any letter casing)
        """
        username = _require_text("username", username).strip()
        email = _require_text("email", email).strip()
        password = _require_text("password", password)

        parsed_role = Role.parse(role)
        if parsed_role is None:
            raise ValidationError(
                "Invalid user type. Must be either 'User' or 'Admin'",
                {"role": "must be User or Admin"},
            )
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(
                "Username is too long", {"username": f"at most {MAX_USERNAME_LENGTH} characters"}
            )
        if len(email) > MAX_EMAIL_LENGTH:
            raise ValidationError("Email is too long", {"email": f"at most {MAX_EMAIL_LENGTH} characters"})
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address", {"email": "must be a valid email address"})
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                {"password": f"minimum length is {MIN_PASSWORD_LENGTH}"},
            )

        username_key = casefold_key(username)
        email_key = casefold_key(email)
        if db.session.query(User.id).filter(User.username_key == username_key).first():
            raise ConflictError(*DUPLICATE_USERNAME)
        if db.session.query(User.id).filter(User.email_key == email_key).first():
            raise ConflictError(*DUPLICATE_EMAIL)

        user = User(
            username=username,
            email=email,
            username_key=username_key,
            email_key=email_key,
            password_hash=hash_password(password, self.settings.bcrypt_rounds),
            role=parsed_role,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent registration claimed the name or email after the checks above.
            db.session.rollback()
            if db.session.query(User.id).filter(User.email_key == email_key).first():
                raise ConflictError(*DUPLICATE_EMAIL)
            raise ConflictError(*DUPLICATE_USERNAME)
        return user

    def login(self, username: str, password: str, requested_role) -> tuple[TokenPair, User]:
        """
        Verify credentials and start a new session.

        Overwrites any previous refresh token on the user record. A role
        mismatch fails without touching the stored refresh-token state.
        """
        _require_text("username", username)
        _require_text("password", password)

        user = (
            db.session.query(User)
            .filter(User.username_key == casefold_key(username))
            .first()
        )
        if user is None or not verify_password(password, user.password_hash):
            raise AuthError(INVALID_CREDENTIALS, reason="invalid credentials")

        if Role.parse(requested_role) != user.role:
            # Credentials were already proven, so naming the cause leaks nothing.
            raise AuthError("Role mismatch", reason="role mismatch")

        refresh_token, refresh_expires_at = self._new_refresh_token()
        user.refresh_token_hash = hash_token(refresh_token)
        user.refresh_token_expires_at = refresh_expires_at
        db.session.commit()

        access_token, access_expires_at = self.issue_access_token(user)
        return TokenPair(access_token, access_expires_at, refresh_token, refresh_expires_at), user

    # ------------------------------------------------------------------
    # Refresh token lifecycle
    # ------------------------------------------------------------------

    def refresh(self, presented_token: str) -> tuple[TokenPair, User]:
        """
        Rotate a refresh token and issue a new access token.

        The presented token is consumed: the stored digest is swapped with a
        conditional UPDATE, so a replay (or a concurrent loser) matches zero
        rows and fails with AuthError.
        """
        if not isinstance(presented_token, str) or not presented_token:
            raise AuthError(INVALID_TOKEN, reason="missing refresh token")

        old_hash = hash_token(presented_token)
        user = db.session.query(User).filter(User.refresh_token_hash == old_hash).first()
        if user is None:
            raise AuthError(INVALID_TOKEN, reason="unknown, rotated or revoked refresh token")

        now = utcnow()
        if user.refresh_token_expires_at is None or user.refresh_token_expires_at <= now:
            raise AuthError(INVALID_TOKEN, reason="refresh token expired")

        new_token, new_expires_at = self._new_refresh_token()
        swapped = (
            db.session.query(User)
            .filter(User.id == user.id, User.refresh_token_hash == old_hash)
            .update(
                {
                    User.refresh_token_hash: hash_token(new_token),
                    User.refresh_token_expires_at: new_expires_at,
                },
                synchronize_session=False,
            )
        )
        if swapped != 1:
            db.session.rollback()
            raise AuthError(INVALID_TOKEN, reason="refresh token already rotated")
        db.session.commit()
        db.session.refresh(user)

        access_token, access_expires_at = self.issue_access_token(user)
        return TokenPair(access_token, access_expires_at, new_token, new_expires_at), user

    def revoke(self, presented_token: str) -> bool:
        """Clear the stored refresh token. Returns False when no user holds it."""
        if not isinstance(presented_token, str) or not presented_token:
            return False

        cleared = (
            db.session.query(User)
            .filter(User.refresh_token_hash == hash_token(presented_token))
            .update(
                {User.refresh_token_hash: None, User.refresh_token_expires_at: None},
                synchronize_session=False,
            )
        )
        db.session.commit()
        return cleared > 0

    def purge_expired_refresh_tokens(self) -> int:
        """Clear refresh-token fields whose expiry has passed. Returns rows touched."""
        cleared = (
            db.session.query(User)
            .filter(User.refresh_token_expires_at.isnot(None), User.refresh_token_expires_at <= utcnow())
            .update(
                {User.refresh_token_hash: None, User.refresh_token_expires_at: None},
                synchronize_session=False,
            )
        )
        db.session.commit()
        return cleared

    # ------------------------------------------------------------------
    # Access tokens (pure)
    # ------------------------------------------------------------------

    def issue_access_token(self, user: User) -> tuple[str, datetime]:
        issued_at = utcnow()
        expires_at = issued_at + self.settings.access_token_ttl
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "role": user.role.value,
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
            "iat": to_epoch_seconds(issued_at),
            "exp": to_epoch_seconds(expires_at),
            "jti": secrets.token_hex(8),
        }
        token = jwt.encode(claims, self.settings.secret_key, algorithm=self.settings.algorithm)
        return token, expires_at

    def decode_access_token(self, token: str) -> dict:
        """
        Validate signature, issuer, audience and expiry with zero leeway.

        Raises AuthError on any failure.
        """
        try:
            return jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                audience=self.settings.audience,
                issuer=self.settings.issuer,
                leeway=0,
                options={"require": ["exp", "iat", "sub", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError(INVALID_TOKEN, reason="access token expired")
        except jwt.InvalidTokenError as exc:
            raise AuthError(INVALID_TOKEN, reason=f"invalid access token: {exc}")

    def _new_refresh_token(self) -> tuple[str, datetime]:
        return generate_refresh_token(), utcnow() + self.settings.refresh_token_ttl
