from datetime import datetime

from ridemarket.extensions import db


class WishlistEntry(db.Model):
    __tablename__ = "wishlists"
    __table_args__ = (
        db.UniqueConstraint("user_id", "item_id", name="uq_wishlists_user_item"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    # No foreign key: entries outlive deleted listings.
    item_id = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id) if self.id is not None else None,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
