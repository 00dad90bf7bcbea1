"""
Refund Service - reversal of completed sales

DESIGN PRINCIPLES:
- Only 'completed' sales can be refunded.
- Each refunded item is credited back through the ledger engine as a
  'return' movement referencing the sale (reference_type 'refund').
- A SaleRefund row per item prevents restocking the same item twice.
- The sale becomes 'refunded' once every one of its items has been refunded;
  otherwise it stays 'completed'. Either way a refund line is appended to notes.
- Everything happens in one unit of work.
"""

from __future__ import annotations

from flask import current_app

from ..actor import ActorContext
from ..errors import InvalidRequestError, NotFoundError
from ..models import Product, Sale, SaleItem, SaleRefund, StockKey
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from ..models.stock import MOVEMENT_RETURN
from stockpos.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .ledger_service import apply_delta


REFUND_FULL = "full"
REFUND_PARTIAL = "partial"

REASON_MAX_LENGTH = 255


def _parse_item_ids(partial_item_ids) -> set[int] | None:
    if partial_item_ids is None:
        return None
    if not isinstance(partial_item_ids, (list, tuple, set)):
        raise InvalidRequestError("partial_item_ids must be a list of sale item ids")
    ids = set()
    for value in partial_item_ids:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRequestError(
                "partial_item_ids must contain integers",
                details={"value": value},
            )
        ids.add(value)
    # An empty selection means "refund everything"
    return ids or None


def refund_sale(
    sale_id: int,
    actor: ActorContext,
    *,
    reason: str | None = None,
    partial_item_ids=None,
) -> dict:
    """
    Refund a completed sale, fully or for the listed sale items.

    Raises:
        NotFoundError: sale missing or not 'completed'; stock line missing
        InvalidRequestError: partial_item_ids names no refundable item of the sale
        ConflictError: concurrent writers exhausted every retry
    """
    wanted = _parse_item_ids(partial_item_ids)
    if reason is not None and not isinstance(reason, str):
        raise InvalidRequestError("reason must be a string")
    if reason is not None and len(reason) > REASON_MAX_LENGTH:
        raise InvalidRequestError(f"reason exceeds max length {REASON_MAX_LENGTH}")

    def _op():
        with unit_of_work() as session:
            sale = lock_for_update(
                session.query(Sale).filter_by(id=sale_id, status=SALE_STATUS_COMPLETED)
            ).first()
            if sale is None:
                raise NotFoundError("Sale not found or already refunded", details={"sale_id": sale_id})

            items = session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id.asc()).all()
            already_refunded = {
                sale_item_id
                for (sale_item_id,) in session.query(SaleRefund.sale_item_id).filter_by(sale_id=sale.id)
            }
            outstanding = [item for item in items if item.id not in already_refunded]

            if wanted is None:
                targets = outstanding
            else:
                named = [item for item in items if item.id in wanted]
                if not named:
                    raise InvalidRequestError(
                        "partial_item_ids do not match any item of this sale",
                        details={"sale_id": sale.id, "partial_item_ids": sorted(wanted)},
                    )
                targets = [item for item in named if item.id not in already_refunded]
                if not targets:
                    raise InvalidRequestError(
                        "Selected items have already been refunded",
                        details={"sale_id": sale.id, "partial_item_ids": sorted(wanted)},
                    )

            if not targets:
                raise InvalidRequestError("Sale has no items left to refund", details={"sale_id": sale.id})

            note = f"Refund for sale {sale.sale_number}"
            if reason:
                note = f"{note}: {reason}"

            for item in targets:
                product = session.get(Product, item.product_id)
                apply_delta(
                    session,
                    StockKey(item.product_id, item.variant_id),
                    MOVEMENT_RETURN,
                    item.quantity,
                    actor,
                    min_stock_level=product.min_stock_level if product else 0,
                    note=note,
                    reference_id=sale.id,
                    reference_type="refund",
                )
                session.add(SaleRefund(
                    sale_id=sale.id,
                    sale_item=item,
                    quantity=item.quantity,
                    reason=reason,
                    refunded_by=actor.user_id,
                ))

            is_full = len(targets) == len(outstanding)
            if is_full:
                sale.status = SALE_STATUS_REFUNDED
                sale.refunded_at = utcnow()
            sale.append_note(f"Refund: {reason or 'No reason provided'}")
            session.flush()

            result = {
                "refund_type": REFUND_FULL if is_full else REFUND_PARTIAL,
                "refunded_items": len(targets),
                "total_items": len(items),
                "refunded_item_ids": [item.id for item in targets],
                "sale": sale.to_dict(include_items=True),
            }

        current_app.logger.info(
            "%s refund of sale %s by user %s: %s of %s items",
            result["refund_type"].capitalize(), sale_id, actor.user_id,
            result["refunded_items"], result["total_items"],
        )
        return result

    return run_with_retry(_op)
