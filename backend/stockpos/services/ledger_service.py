# Overview: Stock ledger engine; the only writer of StockLine.quantity.

from __future__ import annotations

from sqlalchemy.orm import Session

from ..actor import ActorContext
from ..errors import DuplicateError, InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import Product, StockKey, StockLine, StockMovement
from ..models.stock import (
    DECREASING_MOVEMENTS,
    INCREASING_MOVEMENTS,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TYPES,
)
from stockpos.time_utils import utcnow
from . import alert_service
from .concurrency import lock_for_update
from .filters import MovementFilter, StockLevelFilter, paginate
from ..validation import MAX_QUANTITY
"""
Stock Ledger Invariants (authoritative)

Write path:
- StockLine.quantity is changed ONLY by apply_delta(), which writes exactly one
  StockMovement per change inside the caller's unit of work.
- quantity_after = quantity_before + quantity_change for every movement.
- Replaying a stock line's movements from 0 in id order gives its quantity.

Resulting quantity by kind:
- in, return:            after = before + |qty|
- out, sale, damaged:    after = max(0, before - |qty|); the recorded change is
                         the applied delta (after - before), not the requested one
- adjustment:            after = qty (absolute target)
- after never exceeds MAX_QUANTITY; a change that would is refused before
  anything is written.

Alerts:
- Every apply_delta() reconciles low-stock alerts with the new quantity.
"""


def get_stock_line_for_update(session: Session, key: StockKey) -> StockLine | None:
    return lock_for_update(session.query(StockLine).filter(*key.clause(StockLine))).first()


def _resulting_quantity(kind: str, before: int, quantity: int) -> int:
    if kind in INCREASING_MOVEMENTS:
        return before + abs(quantity)
    if kind in DECREASING_MOVEMENTS:
        return max(0, before - abs(quantity))
    if kind == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise InvalidRequestError(
                "adjustment target quantity must be >= 0",
                details={"quantity": quantity},
            )
        return quantity
    raise InvalidRequestError(
        f"movement type must be one of: {', '.join(MOVEMENT_TYPES)}",
        details={"movement_type": kind},
    )


def apply_delta(
    session: Session,
    key: StockKey,
    kind: str,
    quantity: int,
    actor: ActorContext,
    *,
    min_stock_level: int,
    note: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
) -> tuple[StockLine, StockMovement]:
    """
    Apply one stock change and write its ledger entry.

    Runs inside the caller's unit of work and never commits. The stock line
    must already exist (NotFoundError otherwise); it is locked for the rest
    of the transaction.
    """
    line = get_stock_line_for_update(session, key)
    if line is None:
        raise NotFoundError("Stock record not found", details=key.to_dict())

    before = line.quantity
    after = _resulting_quantity(kind, before, quantity)
    if after > MAX_QUANTITY:
        raise InvalidRequestError(
            f"Resulting quantity would exceed {MAX_QUANTITY}",
            details={**key.to_dict(), "quantity_before": before, "quantity": quantity},
        )

    line.quantity = after
    line.last_updated_at = utcnow()
    line.last_updated_by = actor.user_id

    movement = StockMovement(
        product_id=key.product_id,
        variant_id=key.variant_id,
        movement_type=kind,
        quantity_change=after - before,
        quantity_before=before,
        quantity_after=after,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=note,
        created_by=actor.user_id,
    )
    session.add(movement)
    session.flush()

    alert_service.reconcile(session, key, after, min_stock_level)

    return line, movement


def provision_stock_line(session: Session, key: StockKey, actor: ActorContext | None = None) -> StockLine:
    """Create the zero-quantity stock line for a new product or variant."""
    existing = session.query(StockLine).filter(*key.clause(StockLine)).first()
    if existing is not None:
        raise DuplicateError("Stock record already exists", details=key.to_dict())

    line = StockLine(
        product_id=key.product_id,
        variant_id=key.variant_id,
        quantity=0,
        reserved_quantity=0,
        last_updated_by=actor.user_id if actor else None,
    )
    session.add(line)
    session.flush()
    return line


# =============================================================================
# READ SIDE
# =============================================================================


def get_stock_line(key: StockKey) -> StockLine:
    line = db.session.query(StockLine).filter(*key.clause(StockLine)).first()
    if line is None:
        raise NotFoundError("Stock record not found", details=key.to_dict())
    return line


def stock_status(quantity: int, min_stock_level: int) -> str:
    if quantity == 0:
        return "out_of_stock"
    if quantity <= min_stock_level:
        return "low_stock"
    return "in_stock"


def describe_stock_line(line: StockLine, product: Product) -> dict:
    data = line.to_dict()
    data.update({
        "sku": product.sku,
        "product_name": product.name,
        "price_cents": product.price_cents,
        "unit_size": product.unit_size,
        "min_stock_level": product.min_stock_level,
        "is_low_stock": line.quantity <= product.min_stock_level,
        "stock_status": stock_status(line.quantity, product.min_stock_level),
    })
    return data


def list_stock_levels(
    stock_filter: StockLevelFilter,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Stock overview: low-stock lines first, then by quantity and name."""
    low_first = (StockLine.quantity <= Product.min_stock_level).desc()
    query = (
        db.session.query(StockLine, Product)
        .join(Product, StockLine.product_id == Product.id)
        .filter(*stock_filter.predicates())
        .order_by(low_first, StockLine.quantity.asc(), Product.name.asc(), Product.id.asc())
    )
    rows, pagination = paginate(query, page, per_page)

    low_stock_count = (
        db.session.query(StockLine)
        .join(Product, StockLine.product_id == Product.id)
        .filter(
            Product.is_active.is_(True),
            StockLine.variant_id.is_(None),
            StockLine.quantity <= Product.min_stock_level,
        )
        .count()
    )

    return {
        "items": [describe_stock_line(line, product) for line, product in rows],
        "count": len(rows),
        "low_stock_count": low_stock_count,
        "pagination": pagination,
    }


def list_movements(
    movement_filter: MovementFilter,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Ledger history, newest first."""
    query = (
        db.session.query(StockMovement)
        .filter(*movement_filter.predicates())
        .order_by(StockMovement.id.desc())
    )
    rows, pagination = paginate(query, page, per_page)
    return {
        "items": [m.to_dict() for m in rows],
        "count": len(rows),
        "pagination": pagination,
    }


def movement_history(key: StockKey) -> list[StockMovement]:
    """All movements of one stock line in creation order."""
    return (
        db.session.query(StockMovement)
        .filter(*key.clause(StockMovement))
        .order_by(StockMovement.id.asc())
        .all()
    )


def verify_stock_line(key: StockKey) -> dict:
    """
    Replay a stock line's ledger from 0 and compare with its quantity.

    broken_links lists movements whose quantity_before does not match the
    previous movement's quantity_after (or whose arithmetic is off).
    """
    line = get_stock_line(key)
    movements = movement_history(key)

    replayed = 0
    broken_links = []
    for movement in movements:
        if movement.quantity_before != replayed or (
            movement.quantity_before + movement.quantity_change != movement.quantity_after
        ):
            broken_links.append(movement.id)
        replayed += movement.quantity_change

    return {
        **key.to_dict(),
        "quantity": line.quantity,
        "replayed_quantity": replayed,
        "movement_count": len(movements),
        "broken_links": broken_links,
        "consistent": replayed == line.quantity and not broken_links,
    }


def verify_all_stock_lines(product_id: int | None = None) -> list[dict]:
    query = db.session.query(StockLine).order_by(StockLine.product_id.asc(), StockLine.id.asc())
    if product_id is not None:
        query = query.filter(StockLine.product_id == product_id)
    return [verify_stock_line(line.key) for line in query.all()]
