from ..extensions import db
from flask_login import UserMixin
from .base import TimestampMixin, new_id
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("brand", "consumer", "admin")


class User(db.Model, UserMixin, TimestampMixin):
    __tablename__ = "users"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), default="consumer", nullable=False)

    def set_password(self, raw):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw):
        return check_password_hash(self.password_hash, raw)

    def has_role(self, role):
        # admins can do everything a brand user can
        return self.role == role or self.role == "admin"
