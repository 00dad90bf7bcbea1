# Overview: Flask API routes for catalog provisioning; parses input and returns JSON responses.

# backend/stockpos/routes/products.py
"""
Product provisioning routes.

Creating a product or variant also creates its stock line, so these are the
only way stock lines come into existence over HTTP.

SECURITY: All routes require an actor; writes require the admin role.
"""
from flask import Blueprint, request, g

from ..actor import ROLE_ADMIN
from ..decorators import require_actor, require_role
from ..errors import StockError
from ..models import Product, ProductVariant
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_variant,
    parse_initial_stock,
)
from .common import internal_error, json_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_CREATE_FIELDS),
    required_on_create={"sku", "name", "price_cents"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.VARIANT_CREATE_FIELDS),
    required_on_create={"variant_name", "variant_value"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Create a new product with its stock line.

    Body: product fields plus optional initial_stock (booked as an 'in' movement).
    """
    payload = dict(request.get_json(silent=True) or {})

    try:
        initial_stock = parse_initial_stock(payload)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        created = products_service.create_product(patch, g.actor, initial_stock=initial_stock)
        return created, 201
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("create product")


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    """Product with variants and stock lines."""
    try:
        return products_service.get_product(product_id), 200
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("load product")


@products_bp.post("/<int:product_id>/variants")
@require_actor
@require_role(ROLE_ADMIN)
def create_variant_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=False)
        enforce_rules_variant(patch)

        created = products_service.create_variant(product_id, patch, g.actor)
        return created, 201
    except StockError as e:
        return json_error(e)
    except Exception:
        return internal_error("create product variant")
