# Overview: Structured read-side filters; each one turns request parameters into SQLAlchemy predicates.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..errors import InvalidRequestError
from ..models import Product, Sale, StockLine, StockMovement
from ..models.sales import SALE_STATUSES
from ..models.stock import MOVEMENT_TYPES
from stockpos.time_utils import start_of_day, start_of_next_day


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _check_date_range(date_from: date | None, date_to: date | None) -> None:
    if date_from is not None and date_to is not None and date_from > date_to:
        raise InvalidRequestError(
            "date_from must be on or before date_to",
            details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )


@dataclass(frozen=True)
class MovementFilter:
    """Ledger history filter. Date bounds are inclusive calendar days."""
    product_id: int | None = None
    variant_id: int | None = None
    movement_type: str | None = None
    date_from: date | None = None
    date_to: date | None = None

    def predicates(self) -> list:
        if self.movement_type is not None and self.movement_type not in MOVEMENT_TYPES:
            raise InvalidRequestError(
                f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}",
                details={"movement_type": self.movement_type},
            )
        _check_date_range(self.date_from, self.date_to)

        preds = []
        if self.product_id is not None:
            preds.append(StockMovement.product_id == self.product_id)
        if self.variant_id is not None:
            preds.append(StockMovement.variant_id == self.variant_id)
        if self.movement_type is not None:
            preds.append(StockMovement.movement_type == self.movement_type)
        if self.date_from is not None:
            preds.append(StockMovement.created_at >= start_of_day(self.date_from))
        if self.date_to is not None:
            preds.append(StockMovement.created_at < start_of_next_day(self.date_to))
        return preds


@dataclass(frozen=True)
class StockLevelFilter:
    """Stock overview filter over base-product lines of active products."""
    low_stock_only: bool = False
    search: str | None = None

    def predicates(self) -> list:
        preds = [Product.is_active.is_(True), StockLine.variant_id.is_(None)]
        if self.low_stock_only:
            preds.append(StockLine.quantity <= Product.min_stock_level)
        if self.search:
            pattern = _like(self.search.strip())
            preds.append(
                or_(
                    Product.name.like(pattern, escape="\\"),
                    Product.sku.like(pattern, escape="\\"),
                    Product.barcode.like(pattern, escape="\\"),
                )
            )
        return preds


@dataclass(frozen=True)
class SaleFilter:
    status: str | None = None
    cashier_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None

    def predicates(self) -> list:
        if self.status is not None and self.status not in SALE_STATUSES:
            raise InvalidRequestError(
                f"status must be one of: {', '.join(SALE_STATUSES)}",
                details={"status": self.status},
            )
        _check_date_range(self.date_from, self.date_to)

        preds = []
        if self.status is not None:
            preds.append(Sale.status == self.status)
        if self.cashier_id is not None:
            preds.append(Sale.cashier_id == self.cashier_id)
        if self.date_from is not None:
            preds.append(Sale.created_at >= start_of_day(self.date_from))
        if self.date_to is not None:
            preds.append(Sale.created_at < start_of_next_day(self.date_to))
        if self.search:
            pattern = _like(self.search.strip())
            preds.append(
                or_(
                    Sale.sale_number.like(pattern, escape="\\"),
                    Sale.customer_name.like(pattern, escape="\\"),
                )
            )
        return preds


def paginate(query, page: int | None, per_page: int | None):
    """
    Apply offset/limit pagination.

    Returns (rows, pagination dict). Page defaults to 1, per_page to
    DEFAULT_PAGE_SIZE and is capped at MAX_PAGE_SIZE.
    """
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 50)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 200)

    per_page = min(per_page or default_size, max_size)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return rows, {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
