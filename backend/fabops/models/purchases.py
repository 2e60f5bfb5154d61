from __future__ import annotations

from ..extensions import db
from fabops.time_utils import to_utc_z, utcnow


class Purchase(db.Model):
    """
    Supplier purchase.

    LIFECYCLE: pending -> completed (inventory received) -> pending again if
    the completion is reversed; cancelled purchases never touch inventory.
    transport_charge is spread over the lines by weight when completing.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("purchase_number", name="uq_purchases_purchase_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(64), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default="pending")
    transport_charge = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "supplier_name": self.supplier_name,
            "purchase_date": to_utc_z(self.purchase_date),
            "status": self.status,
            "transport_charge": self.transport_charge,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)

    quantity = db.Column(db.Float, nullable=False)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    line_total = db.Column(db.Float, nullable=False, default=0.0)

    # Measured length received; 0 means "not measured, use quantity"
    actual_meter = db.Column(db.Float, nullable=False, default=0.0)

    material = db.relationship("InventoryItem", lazy="joined")

    @property
    def inventory_quantity(self) -> float:
        """Quantity that moves inventory: actual_meter when measured, else quantity."""
        if self.actual_meter and self.actual_meter > 0:
            return self.actual_meter
        return self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "material_id": self.material_id,
            "material_name": self.material.material_name if self.material else None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
            "actual_meter": self.actual_meter,
        }
