# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockpos/routes/sales.py
"""Sales API routes: checkout, history and refunds"""

from flask import Blueprint, request, jsonify, g

from ..actor import ROLE_ADMIN
from ..decorators import require_actor, require_role
from ..errors import StockError
from ..services import refund_service, sales_service
from ..services.filters import SaleFilter
from .common import date_arg, int_arg, internal_error, json_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Complete a sale and debit stock for every item, all or nothing.

    Body: {items: [{product_id, variant_id?, quantity, unit_price_cents}],
           payment_method?, customer_name?, discount_cents?, tax_cents?, notes?}

    Returns 409 with available/required details when stock is short.
    """
    payload = request.get_json(silent=True) or {}

    try:
        sale = sales_service.create_sale(
            payload.get("items"),
            g.actor,
            payment_method=payload.get("payment_method"),
            customer_name=payload.get("customer_name"),
            discount_cents=payload.get("discount_cents", 0),
            tax_cents=payload.get("tax_cents", 0),
            notes=payload.get("notes"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("create sale")


@sales_bp.get("")
@require_actor
def list_sales_route():
    """
    Sales history, newest first, with a summary of the filtered set.

    Query params: status, cashier_id, date_from, date_to (YYYY-MM-DD,
    inclusive), search (sale number / customer), page, per_page.
    """
    try:
        sale_filter = SaleFilter(
            status=request.args.get("status") or None,
            cashier_id=int_arg("cashier_id"),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            search=request.args.get("search"),
        )
        result = sales_service.list_sales(
            sale_filter,
            page=int_arg("page"),
            per_page=int_arg("per_page"),
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("list sales")


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("load sale")


@sales_bp.post("/<int:sale_id>/refund")
@require_actor
@require_role(ROLE_ADMIN)
def refund_sale_route(sale_id: int):
    """
    Refund a completed sale and restock its items.

    Body: {reason?, partial_items?: [sale_item_id, ...]}
    Omitting partial_items (or sending an empty list) refunds every item
    not refunded yet.
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = refund_service.refund_sale(
            sale_id,
            g.actor,
            reason=payload.get("reason"),
            partial_item_ids=payload.get("partial_items"),
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("refund sale")
