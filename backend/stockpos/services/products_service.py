# backend/stockpos/services/products_service.py
"""
Catalog provisioning: just enough product management to give the stock core
its lines.

Every product gets a base stock line (variant_id NULL) at quantity 0 when it
is created; every variant gets its own line. A positive initial_stock is
booked through the ledger engine as an 'in' movement so the ledger still
replays from zero.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import Session

from ..actor import ActorContext
from ..errors import DuplicateError, NotFoundError
from ..extensions import db
from ..models import Product, ProductVariant, StockKey, StockLine
from ..models.stock import MOVEMENT_IN
from .concurrency import run_with_retry, unit_of_work
from .ledger_service import apply_delta, provision_stock_line

PRODUCT_CREATE_FIELDS = {
    "sku", "barcode", "name", "description", "unit_size",
    "price_cents", "cost_cents", "min_stock_level", "is_active",
}
VARIANT_CREATE_FIELDS = {"variant_name", "variant_value", "sku_suffix", "price_adjustment_cents", "is_active"}

INITIAL_STOCK_NOTE = "Initial stock"


def _ensure_unique_identifiers(session: Session, patch: dict) -> None:
    sku = patch.get("sku")
    if sku and session.query(Product.id).filter(Product.sku == sku).first() is not None:
        raise DuplicateError("SKU already exists", details={"sku": sku})

    barcode = patch.get("barcode")
    if barcode and session.query(Product.id).filter(Product.barcode == barcode).first() is not None:
        raise DuplicateError("Barcode already exists", details={"barcode": barcode})


def create_product(patch: dict, actor: ActorContext, initial_stock: int = 0) -> dict:
    """
    Create a product with its base stock line.

    Args:
        patch: validated product fields (see validation.validate_payload)
        actor: staff member the initial stock movement is attributed to
        initial_stock: opening quantity, recorded as an 'in' movement when > 0

    Raises:
        DuplicateError: SKU or barcode already taken
    """
    values = {k: v for k, v in patch.items() if k in PRODUCT_CREATE_FIELDS}

    def _op():
        with unit_of_work() as session:
            _ensure_unique_identifiers(session, values)

            product = Product(**values)
            session.add(product)
            session.flush()

            key = StockKey(product.id)
            line = provision_stock_line(session, key, actor)
            if initial_stock > 0:
                line, _ = apply_delta(
                    session,
                    key,
                    MOVEMENT_IN,
                    initial_stock,
                    actor,
                    min_stock_level=product.min_stock_level,
                    note=INITIAL_STOCK_NOTE,
                )

            result = product.to_dict()
            result["stock"] = line.to_dict()

        current_app.logger.info(
            "Product %s (%s) created by user %s with initial stock %s",
            result["id"], result["sku"], actor.user_id, initial_stock,
        )
        return result

    return run_with_retry(_op)


def create_variant(product_id: int, patch: dict, actor: ActorContext) -> dict:
    """
    Add a variant to a product and provision its stock line at 0.

    Raises:
        NotFoundError: product missing
    """
    values = {k: v for k, v in patch.items() if k in VARIANT_CREATE_FIELDS}

    def _op():
        with unit_of_work() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})

            variant = ProductVariant(product_id=product.id, **values)
            session.add(variant)
            session.flush()

            line = provision_stock_line(session, StockKey(product.id, variant.id), actor)

            result = variant.to_dict()
            result["stock"] = line.to_dict()

        current_app.logger.info(
            "Variant %s of product %s created by user %s", result["id"], product_id, actor.user_id
        )
        return result

    return run_with_retry(_op)


def get_product(product_id: int) -> dict:
    """Product with its variants and every stock line (base first)."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    lines = (
        db.session.query(StockLine)
        .filter(StockLine.product_id == product.id)
        .order_by(StockLine.variant_id.isnot(None), StockLine.variant_id.asc())
        .all()
    )

    data = product.to_dict()
    data["variants"] = [v.to_dict() for v in product.variants]
    data["stock"] = [line.to_dict() for line in lines]
    return data
