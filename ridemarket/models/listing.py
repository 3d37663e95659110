from datetime import datetime
import uuid

import sqlalchemy as sa

from ridemarket.extensions import db


LISTING_CONDITIONS = ("new", "like_new", "good", "used")


def _new_id() -> str:
    return str(uuid.uuid4())


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)

    # Seller principal id (identity provider subject)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=False, default="", server_default="")

    category = db.Column(db.String(64), nullable=False, index=True)
    subcategory = db.Column(db.String(64), nullable=True, index=True)
    condition = db.Column(db.String(16), nullable=True)
    location = db.Column(db.String(120), nullable=True, index=True)

    price = db.Column(db.Float, nullable=False, default=0.0)

    # Either an absolute URL (legacy rows) or a key inside the listing images bucket.
    image_url = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description or "",
            "category": self.category or "",
            "subcategory": self.subcategory,
            "condition": self.condition,
            "location": self.location,
            "price": float(self.price or 0.0),
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
