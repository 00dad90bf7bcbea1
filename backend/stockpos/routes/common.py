# Overview: Helpers shared by the API blueprints: error translation and query-string parsing.

from datetime import date

from flask import current_app, jsonify, request

from ..errors import InvalidRequestError, StockError
from stockpos.time_utils import parse_date
from ..validation import MAX_ID


def json_error(exc: StockError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidRequestError(f"{name} must be an integer", details={name: raw})
    if abs(value) > MAX_ID:
        raise InvalidRequestError(f"{name} is out of range", details={name: raw})
    return value


def date_arg(name: str) -> date | None:
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return parse_date(raw)
    except ValueError:
        raise InvalidRequestError(f"{name} must be a date (YYYY-MM-DD)", details={name: raw})
