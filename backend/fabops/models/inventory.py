from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..extensions import db
from fabops.time_utils import to_utc_z, utcnow


class InventoryItem(db.Model):
    """
    Raw material on hand (fabric rolls, webbing, zippers...).

    `quantity` is the only mutable shared value in the system. It must be
    changed through inventory_service.adjust_quantity / set_inventory_quantity,
    which lock the row and write a ledger entry in the same transaction.

    version_id is SQLAlchemy's optimistic lock: a concurrent writer that read
    an older version fails with StaleDataError and is retried.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_material_name", "material_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    material_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="meter")

    quantity = db.Column(db.Float, nullable=False, default=0.0)

    # kg per unit; used to weight transport charges across purchase lines
    conversion_rate = db.Column(db.Float, nullable=True, default=1.0)
    purchase_rate = db.Column(db.Float, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} material_name={self.material_name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_name": self.material_name,
            "unit": self.unit,
            "quantity": self.quantity,
            "conversion_rate": self.conversion_rate,
            "purchase_rate": self.purchase_rate,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


def ledger_lookup_key(material_id: int, *, component_id: int | None = None, component_type: str | None = None) -> tuple[int, str]:
    """Key matching a consumption entry to a component: by id when known, else by type."""
    if component_id is not None:
        return (material_id, f"id:{component_id}")
    return (material_id, f"type:{component_type}")


@dataclass
class LedgerMetadata:
    """
    Typed view of the `metadata` JSON stored on a ledger entry.

    component_type, material_name and unit are always written; component_id
    is absent on entries recorded before per-component tracking, which is
    why reversal falls back to (material_id, component_type).
    """
    material_name: str
    unit: str
    component_type: str | None = None
    component_id: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("material_name", "unit", "component_type", "component_id")

    def lookup_key(self, material_id: int) -> tuple[int, str]:
        return ledger_lookup_key(
            material_id, component_id=self.component_id, component_type=self.component_type
        )

    def to_dict(self) -> dict:
        data = dict(self.extras)
        data["material_name"] = self.material_name
        data["unit"] = self.unit
        if self.component_type is not None:
            data["component_type"] = self.component_type
        if self.component_id is not None:
            data["component_id"] = self.component_id
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "LedgerMetadata":
        data = data or {}
        component_id = data.get("component_id")
        if component_id is not None:
            try:
                component_id = int(component_id)
            except (TypeError, ValueError):
                component_id = None
        return cls(
            material_name=str(data.get("material_name") or "Unknown Material"),
            unit=str(data.get("unit") or ""),
            component_type=data.get("component_type"),
            component_id=component_id,
            extras={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


class InventoryTransactionLog(db.Model):
    """
    Append-only inventory ledger.

    Invariant at write time: new_quantity == previous_quantity + quantity.
    Rows are never updated or deleted by the application.
    """
    __tablename__ = "inventory_transaction_log"
    __table_args__ = (
        db.Index("ix_invlog_reference", "reference_type", "reference_id", "transaction_type"),
        db.Index("ix_invlog_material_date", "material_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # No FK: audit rows outlive deleted materials
    material_id = db.Column(db.Integer, nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)

    # Signed: negative = deduction, positive = addition
    quantity = db.Column(db.Float, nullable=False)
    previous_quantity = db.Column(db.Float, nullable=False)
    new_quantity = db.Column(db.Float, nullable=False)

    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def ledger_metadata(self) -> LedgerMetadata:
        return LedgerMetadata.from_dict(self.meta)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_id": self.material_id,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "metadata": self.meta or {},
            "transaction_date": to_utc_z(self.transaction_date),
        }
