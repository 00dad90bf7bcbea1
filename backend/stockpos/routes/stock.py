# Overview: Flask API routes for stock levels, adjustments, ledger history and low-stock alerts.

# backend/stockpos/routes/stock.py
"""
Stock routes.

SECURITY: Every route requires an actor (X-Actor-Id / X-Actor-Role).
- Reads and alert acknowledgement: any staff role
- Adjustments and ledger verification: admin only
"""
from flask import Blueprint, g, jsonify, request

from ..actor import ROLE_ADMIN
from ..decorators import require_actor, require_role
from ..errors import StockError
from ..models import StockKey
from ..services import adjustment_service, alert_service, ledger_service
from ..services.filters import MovementFilter, StockLevelFilter
from ..validation import parse_bool_arg, parse_optional_id, parse_required_id
from .common import date_arg, int_arg, internal_error, json_error

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_actor
def list_stock_route():
    """
    Stock overview of active products (base lines), low-stock first.

    Query params:
    - low_stock: true|false
    - search: name / SKU / barcode substring
    - page, per_page
    """
    try:
        stock_filter = StockLevelFilter(
            low_stock_only=parse_bool_arg(request.args.get("low_stock")),
            search=request.args.get("search"),
        )
        result = ledger_service.list_stock_levels(
            stock_filter,
            page=int_arg("page"),
            per_page=int_arg("per_page"),
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("list stock levels")


@stock_bp.get("/<int:product_id>")
@require_actor
def get_stock_route(product_id: int):
    """Stock line for a product, or one of its variants with ?variant_id=."""
    try:
        key = StockKey(product_id, int_arg("variant_id"))
        line = ledger_service.get_stock_line(key)
        return jsonify({"stock": line.to_dict()}), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("load stock line")


@stock_bp.get("/<int:product_id>/verify")
@require_actor
@require_role(ROLE_ADMIN)
def verify_stock_route(product_id: int):
    """Replay the stock line's ledger and report whether it matches the stored quantity."""
    try:
        key = StockKey(product_id, int_arg("variant_id"))
        return jsonify(ledger_service.verify_stock_line(key)), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("verify stock line")


@stock_bp.get("/movements")
@require_actor
def list_movements_route():
    """
    Ledger history, newest first.

    Query params: product_id, variant_id, movement_type, date_from, date_to
    (YYYY-MM-DD, inclusive), page, per_page.
    """
    try:
        movement_filter = MovementFilter(
            product_id=int_arg("product_id"),
            variant_id=int_arg("variant_id"),
            movement_type=request.args.get("movement_type") or None,
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
        )
        result = ledger_service.list_movements(
            movement_filter,
            page=int_arg("page"),
            per_page=int_arg("per_page"),
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("list stock movements")


@stock_bp.post("/adjust")
@require_actor
@require_role(ROLE_ADMIN)
def adjust_stock_route():
    """
    Manual stock adjustment.

    Body: {product_id, variant_id?, adjustment_type: in|out|adjustment, quantity, notes?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = adjustment_service.adjust_stock(
            product_id=parse_required_id(payload.get("product_id"), "product_id"),
            variant_id=parse_optional_id(payload.get("variant_id"), "variant_id"),
            adjustment_type=payload.get("adjustment_type"),
            quantity=payload.get("quantity"),
            note=payload.get("notes"),
            actor=g.actor,
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("adjust stock")


@stock_bp.post("/bulk-adjust")
@require_actor
@require_role(ROLE_ADMIN)
def bulk_adjust_stock_route():
    """
    Many adjustments in one transaction; invalid items are reported, not fatal.

    Body: {adjustments: [{product_id, variant_id?, adjustment_type, quantity}], notes?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = adjustment_service.bulk_adjust_stock(
            adjustments=payload.get("adjustments"),
            note=payload.get("notes"),
            actor=g.actor,
        )
        return jsonify(result), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("bulk adjust stock")


@stock_bp.get("/alerts")
@require_actor
def list_alerts_route():
    """Low-stock alerts by status (default active), newest first."""
    try:
        alerts = alert_service.list_alerts(request.args.get("status") or "active")
        return jsonify({
            "items": [a.to_dict() for a in alerts],
            "count": len(alerts),
        }), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("list low-stock alerts")


@stock_bp.put("/alerts/<int:alert_id>/acknowledge")
@require_actor
def acknowledge_alert_route(alert_id: int):
    try:
        alert = alert_service.acknowledge_alert(alert_id, g.actor)
        return jsonify({"alert": alert.to_dict()}), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("acknowledge alert")
