from __future__ import annotations

import enum
import unicodedata

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class Role(str, enum.Enum):
    """Closed set of roles. Fixed for the lifetime of a user."""
    USER = "User"
    ADMIN = "Admin"

    @classmethod
    def parse(cls, value) -> "Role | None":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return None


def casefold_key(value: str) -> str:
    """Comparison form of a username or email: NFKC, casefolded, trimmed."""
    return unicodedata.normalize("NFKC", value.strip()).casefold()


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Username and email are unique regardless of letter casing. The unique
    constraints sit on username_key / email_key, which hold the form computed
    by casefold_key in Python; SQL lower() only folds ASCII on SQLite.

    The refresh token is never stored in plaintext: only its SHA-256 digest
    and expiry live here, and a user holds at most one live refresh token
    (single session).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), nullable=False)

    username_key = db.Column(db.String(255), nullable=False, unique=True)
    email_key = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(
        db.Enum(Role, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.USER,
    )

    refresh_token_hash = db.Column(db.String(64), nullable=True, unique=True)
    refresh_token_expires_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role.value,
            "createdAt": to_utc_z(self.created_at),
        }

