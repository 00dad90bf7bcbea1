# Overview: Manual stock corrections (single and bulk) on top of the ledger engine.

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import Session

from ..actor import ActorContext
from ..errors import InvalidRequestError, NotFoundError, StockError
from ..models import Product, ProductVariant, StockKey, StockLine
from ..models.stock import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT
from .concurrency import run_with_retry, unit_of_work
from ..validation import MAX_QUANTITY, parse_optional_id, parse_required_id
from .ledger_service import apply_delta, get_stock_line_for_update
"""
Adjustment rules:

- adjustment_type is one of in / out / adjustment.
- in / out need quantity >= 1; adjustment is an absolute target >= 0. No
  quantity may exceed MAX_QUANTITY.
- Only active products and active variants can be adjusted.
- out clamps at zero instead of failing; the movement records what was
  actually removed.
- Stock lines are provisioned with the product; a missing line is an error,
  never created here.

Bulk failure model (validate-then-commit):
- Items are validated one by one inside a single unit of work. An item that
  fails validation (malformed ids included) or that the ledger engine refuses
  is reported in `failed` and skipped; it never aborts the batch.
- Valid items are applied in order through the ledger engine in the same
  session, so a product listed twice sees its own earlier change.
- The session commits once at the end. A storage failure during the pass
  rolls back every item and surfaces to the caller, so an item is only ever
  reported successful when its movement was committed.
"""

ADJUSTMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)

BULK_DEFAULT_NOTE = "Bulk adjustment"


def validate_adjustment(adjustment_type, quantity) -> None:
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise InvalidRequestError(
            f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}",
            details={"adjustment_type": adjustment_type},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidRequestError("quantity must be an integer", details={"quantity": quantity})
    minimum = 0 if adjustment_type == MOVEMENT_ADJUSTMENT else 1
    if quantity < minimum:
        raise InvalidRequestError(
            f"quantity must be >= {minimum} for {adjustment_type}",
            details={"quantity": quantity},
        )
    if quantity > MAX_QUANTITY:
        raise InvalidRequestError(
            f"quantity cannot exceed {MAX_QUANTITY}",
            details={"quantity": quantity},
        )


def _load_target(session: Session, product_id, variant_id) -> tuple[Product, StockLine]:
    product = session.query(Product).filter_by(id=product_id, is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    if variant_id is not None:
        variant = session.query(ProductVariant).filter_by(
            id=variant_id, product_id=product_id, is_active=True
        ).first()
        if variant is None:
            raise NotFoundError(
                "Product variant not found",
                details={"product_id": product_id, "variant_id": variant_id},
            )

    line = get_stock_line_for_update(session, StockKey(product_id, variant_id))
    if line is None:
        raise NotFoundError(
            "Stock record not found",
            details={"product_id": product_id, "variant_id": variant_id},
        )
    return product, line


def _apply_adjustment(
    session: Session,
    product: Product,
    key: StockKey,
    adjustment_type: str,
    quantity: int,
    actor: ActorContext,
    note: str | None,
):
    return apply_delta(
        session,
        key,
        adjustment_type,
        quantity,
        actor,
        min_stock_level=product.min_stock_level,
        note=note,
    )


def adjust_stock(
    *,
    product_id: int,
    adjustment_type: str,
    quantity: int,
    actor: ActorContext,
    variant_id: int | None = None,
    note: str | None = None,
) -> dict:
    """
    Single manual adjustment. Any failure aborts the whole operation.

    Raises:
        InvalidRequestError: bad type or quantity
        NotFoundError: product or variant inactive/missing, stock line missing
        ConflictError: concurrent writers exhausted every retry
    """
    product_id = parse_required_id(product_id, "product_id")
    variant_id = parse_optional_id(variant_id, "variant_id")
    validate_adjustment(adjustment_type, quantity)
    key = StockKey(product_id, variant_id)

    def _op():
        with unit_of_work() as session:
            product, _ = _load_target(session, product_id, variant_id)
            line, movement = _apply_adjustment(
                session, product, key, adjustment_type, quantity, actor, note
            )
            result = {
                "stock": line.to_dict(),
                "adjustment": {
                    "type": adjustment_type,
                    "quantity_change": movement.quantity_change,
                    "previous_quantity": movement.quantity_before,
                    "new_quantity": movement.quantity_after,
                },
                "movement": movement.to_dict(),
                "is_low_stock": line.quantity <= product.min_stock_level,
            }
            movement_id = movement.id

        current_app.logger.info(
            "Stock adjusted: product %s variant %s %s %s -> %s (movement %s, user %s)",
            product_id, variant_id, adjustment_type,
            result["adjustment"]["previous_quantity"], result["adjustment"]["new_quantity"],
            movement_id, actor.user_id,
        )
        return result

    return run_with_retry(_op)


def bulk_adjust_stock(
    *,
    adjustments: list[dict],
    actor: ActorContext,
    note: str | None = None,
) -> dict:
    """
    Apply many adjustments in one transaction with per-item validation isolation.

    Each adjustment is {product_id, variant_id?, adjustment_type, quantity}.
    """
    if not isinstance(adjustments, list) or not adjustments:
        raise InvalidRequestError("adjustments must be a non-empty list")

    movement_note = note or BULK_DEFAULT_NOTE

    def _op():
        successful: list[dict] = []
        failed: list[dict] = []

        with unit_of_work() as session:
            for index, item in enumerate(adjustments):
                item = item if isinstance(item, dict) else {}
                product_id = item.get("product_id")
                variant_id = item.get("variant_id")
                adjustment_type = item.get("adjustment_type")
                quantity = item.get("quantity")

                try:
                    product_id = parse_required_id(product_id, "product_id")
                    variant_id = parse_optional_id(variant_id, "variant_id")
                    validate_adjustment(adjustment_type, quantity)
                    product, _ = _load_target(session, product_id, variant_id)
                    # apply_delta rejects before touching the line, so a refusal here writes nothing
                    line, movement = _apply_adjustment(
                        session,
                        product,
                        StockKey(product_id, variant_id),
                        adjustment_type,
                        quantity,
                        actor,
                        movement_note,
                    )
                except StockError as e:
                    failed.append({
                        "index": index,
                        "product_id": product_id,
                        "variant_id": variant_id,
                        "error": e.message,
                    })
                    continue

                successful.append({
                    "index": index,
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "product_name": product.name,
                    "adjustment_type": adjustment_type,
                    "quantity_change": movement.quantity_change,
                    "previous_quantity": movement.quantity_before,
                    "new_quantity": movement.quantity_after,
                    "movement_id": movement.id,
                    "success": True,
                })

        current_app.logger.info(
            "Bulk adjustment by user %s: %s successful, %s failed",
            actor.user_id, len(successful), len(failed),
        )
        return {
            "successful": successful,
            "failed": failed,
            "summary": {
                "total": len(adjustments),
                "successful": len(successful),
                "failed": len(failed),
            },
        }

    return run_with_retry(_op)
