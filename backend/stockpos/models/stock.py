from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from stockpos.time_utils import to_utc_z, utcnow


# Movement kinds recorded in the ledger
MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_SALE = "sale"
MOVEMENT_RETURN = "return"
MOVEMENT_DAMAGED = "damaged"

MOVEMENT_TYPES = (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_DAMAGED,
)

INCREASING_MOVEMENTS = frozenset({MOVEMENT_IN, MOVEMENT_RETURN})
DECREASING_MOVEMENTS = frozenset({MOVEMENT_OUT, MOVEMENT_SALE, MOVEMENT_DAMAGED})

ALERT_ACTIVE = "active"
ALERT_ACKNOWLEDGED = "acknowledged"
ALERT_RESOLVED = "resolved"

ALERT_STATUSES = (ALERT_ACTIVE, ALERT_ACKNOWLEDGED, ALERT_RESOLVED)


@dataclass(frozen=True)
class StockKey:
    """
    Composite (product, variant-or-none) key of a stock line.

    variant_id=None is the base product line. Predicates use IS NULL for that
    case so lookups never depend on NULL comparison semantics of the store.
    """
    product_id: int
    variant_id: int | None = None

    def clause(self, model) -> list:
        if self.variant_id is None:
            variant_clause = model.variant_id.is_(None)
        else:
            variant_clause = model.variant_id == self.variant_id
        return [model.product_id == self.product_id, variant_clause]

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "variant_id": self.variant_id}


class StockLine(db.Model):
    """
    Current quantity for one (product, variant) pair.

    Written only by services/ledger_service.apply_delta so that every
    quantity change is paired with exactly one StockMovement.
    """
    __tablename__ = "stock_lines"
    __table_args__ = (
        # Non-null variants: plain composite uniqueness
        db.UniqueConstraint("product_id", "variant_id", name="uq_stock_lines_product_variant"),
        # Base product line: NULLs never collide in a unique constraint, so a partial index is required
        db.Index(
            "uq_stock_lines_product_base",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NULL"),
            postgresql_where=db.text("variant_id IS NULL"),
        ),
        db.CheckConstraint("quantity >= 0", name="ck_stock_lines_quantity_nonneg"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_stock_lines_reserved_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    last_updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    last_updated_by = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def key(self) -> StockKey:
        return StockKey(self.product_id, self.variant_id)

    @property
    def available_quantity(self) -> int:
        return self.quantity - (self.reserved_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "last_updated_at": to_utc_z(self.last_updated_at),
            "last_updated_by": self.last_updated_by,
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only ledger entry describing one stock change.

    quantity_after = quantity_before + quantity_change always holds, and the
    movements of a stock line replayed from 0 in id order reproduce its
    current quantity.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment', 'sale', 'return', 'damaged')",
            name="ck_stock_movements_type",
        ),
        db.CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_stock_movements_arithmetic",
        ),
        db.CheckConstraint("quantity_after >= 0", name="ck_stock_movements_after_nonneg"),
        db.Index("ix_stock_movements_product_variant_id", "product_id", "variant_id", "id"),
        db.Index("ix_stock_movements_type_created", "movement_type", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)

    movement_type = db.Column(db.String(20), nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    # Links to the document that caused the movement (sale id for 'sale' and 'refund')
    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(20), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "movement_type": self.movement_type,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class LowStockAlert(db.Model):
    """
    Low-stock flag for a stock line.

    LIFECYCLE:
    - active: opened by the alert evaluator when quantity <= min_stock_level
    - resolved: closed automatically when quantity rises above the threshold
    - acknowledged: closed by staff; never reopened, a new breach opens a new row

    At most one active row per (product, variant), enforced by partial indexes.
    """
    __tablename__ = "low_stock_alerts"
    __table_args__ = (
        db.CheckConstraint(
            "alert_status IN ('active', 'acknowledged', 'resolved')",
            name="ck_low_stock_alerts_status",
        ),
        db.Index(
            "uq_low_stock_alerts_active_base",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NULL AND alert_status = 'active'"),
            postgresql_where=db.text("variant_id IS NULL AND alert_status = 'active'"),
        ),
        db.Index(
            "uq_low_stock_alerts_active_variant",
            "product_id",
            "variant_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NOT NULL AND alert_status = 'active'"),
            postgresql_where=db.text("variant_id IS NOT NULL AND alert_status = 'active'"),
        ),
        db.Index("ix_low_stock_alerts_status_created", "alert_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)

    # Snapshots taken at first breach; never rewritten
    current_stock = db.Column(db.Integer, nullable=False)
    min_stock_level = db.Column(db.Integer, nullable=False)

    alert_status = db.Column(db.String(20), nullable=False, default=ALERT_ACTIVE)

    acknowledged_by = db.Column(db.Integer, nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        product = self.product
        variant = self.variant
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": product.name if product else None,
            "sku": product.sku if product else None,
            "variant_name": variant.variant_name if variant else None,
            "variant_value": variant.variant_value if variant else None,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "alert_status": self.alert_status,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": to_utc_z(self.acknowledged_at) if self.acknowledged_at else None,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "created_at": to_utc_z(self.created_at),
        }
