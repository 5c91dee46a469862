from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


ROLE_ADMIN = "admin"
ROLE_USER = "user"
USER_ROLES = (ROLE_ADMIN, ROLE_USER)


class User(db.Model):
    """
    Staff accounts (cashiers and administrators).

    WHY: Only the bcrypt hash is stored; to_dict never carries it.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'user')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    mobile_number = db.Column(db.String(32), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "mobileNumber": self.mobile_number,
            "role": self.role,
            "createdAt": to_utc_z(self.created_at),
        }
