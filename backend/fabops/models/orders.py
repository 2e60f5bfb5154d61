from __future__ import annotations

from ..extensions import db
from fabops.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Customer order for a manufactured product.

    `quantity` is the number of finished units; manual component
    consumption is multiplied by it when the order is submitted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)
    company_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    # draft -> submitted
    status = db.Column(db.String(16), nullable=False, default="draft")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    components = db.relationship(
        "OrderComponent",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderComponent.id",
    )

    def to_dict(self, include_components: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "company_name": self.company_name,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at),
        }
        if include_components:
            data["components"] = [c.to_dict() for c in self.components]
        return data


class OrderComponent(db.Model):
    __tablename__ = "order_components"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # part, border, handle, chain, runner, piping, custom
    component_type = db.Column(db.String(32), nullable=False)

    # Dimensions in inches
    length = db.Column(db.Float, nullable=True)
    width = db.Column(db.Float, nullable=True)
    roll_width = db.Column(db.Float, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    material_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=True, index=True)
    material_rate = db.Column(db.Float, nullable=True)

    formula = db.Column(db.String(16), nullable=False, default="standard")
    is_manual_consumption = db.Column(db.Boolean, nullable=False, default=False)

    # Meters. For manual components this is per-unit until the order is
    # submitted; original_consumption keeps that per-unit figure afterwards.
    consumption = db.Column(db.Float, nullable=False, default=0.0)
    original_consumption = db.Column(db.Float, nullable=True)
    component_cost = db.Column(db.Float, nullable=True)

    material = db.relationship("InventoryItem", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<OrderComponent id={self.id} type={self.component_type!r} "
            f"formula={self.formula!r} consumption={self.consumption}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "component_type": self.component_type,
            "length": self.length,
            "width": self.width,
            "roll_width": self.roll_width,
            "quantity": self.quantity,
            "material_id": self.material_id,
            "material_name": self.material.material_name if self.material else None,
            "material_rate": self.material_rate,
            "formula": self.formula,
            "is_manual_consumption": self.is_manual_consumption,
            "consumption": self.consumption,
            "original_consumption": self.original_consumption,
            "component_cost": self.component_cost,
        }


class JobCard(db.Model):
    """Production job for an order; creating one consumes the order's materials."""
    __tablename__ = "job_cards"
    __table_args__ = (
        db.UniqueConstraint("job_number", name="uq_job_cards_job_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_number = db.Column(db.String(64), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # pending, in_progress, completed
    status = db.Column(db.String(16), nullable=False, default="pending")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", backref=db.backref("job_cards", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_number": self.job_number,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
