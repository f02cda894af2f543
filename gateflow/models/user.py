# gateflow/models/user.py
from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @classmethod
    def find_by_email(cls, email: str):
        if not email:
            return None
        return cls.query.filter_by(email=email.strip().lower()).first()

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "is_admin": self.is_admin,
            "created_at": isoformat(self.created_at),
        }
