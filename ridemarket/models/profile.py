from datetime import datetime

from ridemarket.extensions import db


class Profile(db.Model):
    __tablename__ = "profiles"

    # Same value as the principal id issued by the identity provider.
    id = db.Column(db.String(64), primary_key=True)

    username = db.Column(db.String(120), nullable=False, default="")
    avatar_url = db.Column(db.String(1024), nullable=True)
    location = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username or "",
            "avatar_url": self.avatar_url,
            "location": self.location,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
