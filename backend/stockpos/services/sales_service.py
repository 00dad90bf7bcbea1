"""
Sales Service - point-of-sale transaction engine

WHY: A sale touches N stock lines plus the sale header and items. Either all
of it is written or none of it is: an insufficient-stock failure on line 3
must not have already debited lines 1-2.

ORDER OF WORK (one unit of work):
1. Validate every line (active product, variant, stock line, availability)
   before any mutation. Quantities are summed per stock line so two lines of
   the same product cannot jointly oversell.
2. Compute totals: subtotal = sum(qty * unit_price); total = subtotal - discount + tax.
3. Insert header, then per line: insert item, re-check live quantity, debit
   through the ledger engine (kind 'sale', reference = sale id).
4. Commit. Any exception rolls everything back.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..actor import ActorContext
from ..errors import ConflictError, InsufficientStockError, InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import Product, ProductVariant, Sale, SaleItem, StockKey
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from ..models.stock import MOVEMENT_SALE
from stockpos.time_utils import utcnow
from .concurrency import run_with_retry, unit_of_work
from .filters import SaleFilter, paginate
from ..validation import MAX_ID, MAX_PRICE_CENTS, MAX_QUANTITY
from .ledger_service import apply_delta, get_stock_line_for_update


SALE_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
SALE_NUMBER_SUFFIX_LENGTH = 5
SALE_NUMBER_ATTEMPTS = 5

DEFAULT_PAYMENT_METHOD = "cash"


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    variant_id: int | None = None

    @property
    def key(self) -> StockKey:
        return StockKey(self.product_id, self.variant_id)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def _require_int(value, field: str, *, minimum: int, maximum: int, index: int | None = None) -> int:
    details = {"field": field, "value": value}
    if index is not None:
        details["index"] = index
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{field} must be an integer", details=details)
    if value < minimum:
        raise InvalidRequestError(f"{field} must be >= {minimum}", details=details)
    if value > maximum:
        raise InvalidRequestError(f"{field} cannot exceed {maximum}", details=details)
    return value


def parse_sale_lines(items) -> list[SaleLineRequest]:
    """Turn the request's item dicts into validated SaleLineRequest values."""
    if not isinstance(items, list) or not items:
        raise InvalidRequestError("items must be a non-empty list")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidRequestError("each item must be an object", details={"index": index})
        variant_id = item.get("variant_id")
        if variant_id is not None:
            variant_id = _require_int(variant_id, "variant_id", minimum=1, maximum=MAX_ID, index=index)
        lines.append(SaleLineRequest(
            product_id=_require_int(item.get("product_id"), "product_id", minimum=1, maximum=MAX_ID, index=index),
            quantity=_require_int(item.get("quantity"), "quantity", minimum=1, maximum=MAX_QUANTITY, index=index),
            unit_price_cents=_require_int(
                item.get("unit_price_cents"), "unit_price_cents", minimum=0, maximum=MAX_PRICE_CENTS, index=index
            ),
            variant_id=variant_id,
        ))
        if lines[-1].line_total_cents > MAX_PRICE_CENTS:
            raise InvalidRequestError(
                f"line total cannot exceed {MAX_PRICE_CENTS} cents",
                details={"index": index, "line_total_cents": lines[-1].line_total_cents},
            )
    return lines


def generate_sale_number(session: Session) -> str:
    """
    Time-based receipt number with a random suffix, checked against existing sales.

    The unique constraint on sales.sale_number is the final guard; a collision
    that slips past the check surfaces as IntegrityError and the whole sale is
    retried by run_with_retry.
    """
    prefix = current_app.config.get("SALE_NUMBER_PREFIX", "SALE")
    for _ in range(SALE_NUMBER_ATTEMPTS):
        millis = int(time.time() * 1000)
        suffix = "".join(secrets.choice(SALE_NUMBER_ALPHABET) for _ in range(SALE_NUMBER_SUFFIX_LENGTH))
        candidate = f"{prefix}-{millis}-{suffix}"
        taken = session.query(Sale.id).filter_by(sale_number=candidate).first()
        if taken is None:
            return candidate
    raise ConflictError("Could not allocate a unique sale number")


def _validate_lines(session: Session, lines: list[SaleLineRequest]) -> dict[int, Product]:
    """
    Check every line against live stock before anything is written.

    Stock lines are locked as they are read. Returns products by id.
    """
    products: dict[int, Product] = {}
    required: dict[StockKey, int] = {}

    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            product = session.query(Product).filter_by(id=line.product_id, is_active=True).first()
            if product is None:
                raise NotFoundError(
                    f"Product with ID {line.product_id} not found",
                    details={"product_id": line.product_id},
                )
            products[product.id] = product

        if line.variant_id is not None:
            variant = session.query(ProductVariant).filter_by(
                id=line.variant_id, product_id=line.product_id, is_active=True
            ).first()
            if variant is None:
                raise NotFoundError(
                    f"Variant {line.variant_id} of product {line.product_id} not found",
                    details={"product_id": line.product_id, "variant_id": line.variant_id},
                )

        required[line.key] = required.get(line.key, 0) + line.quantity
        stock = get_stock_line_for_update(session, line.key)
        available = stock.quantity if stock is not None else 0
        if stock is None or available < required[line.key]:
            raise InsufficientStockError(
                product_id=line.product_id,
                variant_id=line.variant_id,
                available=available,
                required=required[line.key],
                product_name=product.name,
            )

    return products


def create_sale(
    items,
    actor: ActorContext,
    *,
    payment_method: str | None = None,
    customer_name: str | None = None,
    discount_cents: int = 0,
    tax_cents: int = 0,
    notes: str | None = None,
) -> Sale:
    """
    Create a completed sale and debit stock for every line, all or nothing.

    Raises:
        InvalidRequestError: malformed items, discount or tax
        NotFoundError: product (or variant) missing or inactive
        InsufficientStockError: a stock line cannot cover the requested quantity
        ConflictError: concurrent writers exhausted every retry
    """
    lines = parse_sale_lines(items)
    discount_cents = _require_int(discount_cents, "discount_cents", minimum=0, maximum=MAX_PRICE_CENTS)
    tax_cents = _require_int(tax_cents, "tax_cents", minimum=0, maximum=MAX_PRICE_CENTS)
    subtotal_cents = sum(line.line_total_cents for line in lines)
    total_cents = subtotal_cents - discount_cents + tax_cents
    if subtotal_cents > MAX_PRICE_CENTS or total_cents > MAX_PRICE_CENTS:
        raise InvalidRequestError(
            f"sale total cannot exceed {MAX_PRICE_CENTS} cents",
            details={"subtotal_cents": subtotal_cents, "total_cents": total_cents},
        )
    payment_method = (payment_method or DEFAULT_PAYMENT_METHOD).strip() or DEFAULT_PAYMENT_METHOD

    def _op():
        with unit_of_work() as session:
            products = _validate_lines(session, lines)

            now = utcnow()
            sale = Sale(
                sale_number=generate_sale_number(session),
                subtotal_cents=subtotal_cents,
                discount_cents=discount_cents,
                tax_cents=tax_cents,
                total_cents=total_cents,
                payment_method=payment_method,
                status=SALE_STATUS_COMPLETED,
                cashier_id=actor.user_id,
                customer_name=customer_name,
                notes=notes,
                created_at=now,
                completed_at=now,
            )
            session.add(sale)
            session.flush()

            for line in lines:
                product = products[line.product_id]
                item = SaleItem(
                    sale=sale,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                    discount_cents=0,
                )
                session.add(item)

                # Late race: another writer may have consumed stock since validation
                stock = get_stock_line_for_update(session, line.key)
                if stock is None or stock.quantity < line.quantity:
                    raise InsufficientStockError(
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        available=stock.quantity if stock is not None else 0,
                        required=line.quantity,
                        product_name=product.name,
                    )

                apply_delta(
                    session,
                    line.key,
                    MOVEMENT_SALE,
                    line.quantity,
                    actor,
                    min_stock_level=product.min_stock_level,
                    note=f"Sale {sale.sale_number}",
                    reference_id=sale.id,
                    reference_type="sale",
                )

            sale_id = sale.id
            sale_number = sale.sale_number

        current_app.logger.info(
            "Sale %s (%s) completed by user %s: %s lines, total %s cents",
            sale_id, sale_number, actor.user_id, len(lines), total_cents,
        )
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(sale_filter: SaleFilter, page: int | None = None, per_page: int | None = None) -> dict:
    """Sales newest first, with a summary over the whole filtered set."""
    predicates = sale_filter.predicates()

    query = db.session.query(Sale).filter(*predicates).order_by(Sale.created_at.desc(), Sale.id.desc())
    rows, pagination = paginate(query, page, per_page)

    summary_row = (
        db.session.query(
            func.count(Sale.id).label("total_sales"),
            func.coalesce(
                func.sum(case((Sale.status == SALE_STATUS_COMPLETED, Sale.total_cents), else_=0)), 0
            ).label("total_revenue_cents"),
            func.coalesce(
                func.sum(case((Sale.status == SALE_STATUS_COMPLETED, 1), else_=0)), 0
            ).label("completed_sales"),
            func.coalesce(
                func.sum(case((Sale.status == SALE_STATUS_REFUNDED, 1), else_=0)), 0
            ).label("refunded_sales"),
        )
        .filter(*predicates)
        .one()
    )

    return {
        "items": [s.to_dict() for s in rows],
        "count": len(rows),
        "summary": {
            "total_sales": int(summary_row.total_sales or 0),
            "total_revenue_cents": int(summary_row.total_revenue_cents or 0),
            "completed_sales": int(summary_row.completed_sales or 0),
            "refunded_sales": int(summary_row.refunded_sales or 0),
        },
        "pagination": pagination,
    }
