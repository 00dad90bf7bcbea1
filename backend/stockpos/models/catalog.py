from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data.

    Owned by catalog management. The stock core only reads price_cents,
    min_stock_level and is_active; it never mutates a product.

    SKU is required and globally unique. Barcode is optional but unique when
    present (NULLs do not collide under a plain unique constraint).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(50), nullable=False)
    barcode = db.Column(db.String(100), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit_size = db.Column(db.String(50), nullable=False, default="pcs")

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=True)

    # Low-stock threshold: quantity <= min_stock_level raises an alert
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    variants = db.relationship("ProductVariant", back_populates="product", lazy=True, order_by="ProductVariant.id")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "unit_size": self.unit_size,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "min_stock_level": self.min_stock_level,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """Size/colour variation of a product; each variant owns its own stock line."""
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    variant_name = db.Column(db.String(100), nullable=False)   # e.g. "Size"
    variant_value = db.Column(db.String(100), nullable=False)  # e.g. "XL"
    sku_suffix = db.Column(db.String(20), nullable=True)
    price_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_name": self.variant_name,
            "variant_value": self.variant_value,
            "sku_suffix": self.sku_suffix,
            "price_adjustment_cents": self.price_adjustment_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
