# Overview: Low-stock alert evaluation, acknowledgement and listing.

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import Session

from ..actor import ActorContext
from ..errors import InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import LowStockAlert, Product, StockKey
from ..models.stock import ALERT_ACKNOWLEDGED, ALERT_ACTIVE, ALERT_RESOLVED, ALERT_STATUSES
from stockpos.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, unit_of_work
"""
Low-Stock Alert Invariants (authoritative)

- quantity <= min_stock_level  -> exactly one 'active' alert exists for the key.
- quantity >  min_stock_level  -> no 'active' alert exists for the key.
- An active alert's snapshot (current_stock, min_stock_level) records the first
  breach and is never rewritten while it stays active.
- 'resolved' is set only by reconcile(); acknowledged_by stays NULL so automatic
  resolution is distinguishable from staff acknowledgement.
- 'acknowledged' is set only by staff and never reopened; a later breach opens
  a fresh alert.
"""


def get_active_alert(session: Session, key: StockKey, *, lock: bool = False) -> LowStockAlert | None:
    query = session.query(LowStockAlert).filter(
        *key.clause(LowStockAlert),
        LowStockAlert.alert_status == ALERT_ACTIVE,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def reconcile(session: Session, key: StockKey, new_quantity: int, min_level: int) -> LowStockAlert | None:
    """
    Bring alert state in line with the stock line's new quantity.

    Runs inside the caller's unit of work; never commits. Returns the active
    alert (new or existing) when stock is low, else None. Calling it again
    with the same inputs changes nothing.
    """
    existing = get_active_alert(session, key, lock=True)

    if new_quantity <= min_level:
        if existing is not None:
            return existing

        alert = LowStockAlert(
            product_id=key.product_id,
            variant_id=key.variant_id,
            current_stock=new_quantity,
            min_stock_level=min_level,
            alert_status=ALERT_ACTIVE,
        )
        session.add(alert)
        session.flush()
        current_app.logger.info(
            "Low-stock alert %s opened for product %s variant %s (%s <= %s)",
            alert.id, key.product_id, key.variant_id, new_quantity, min_level,
        )
        return alert

    if existing is not None:
        existing.alert_status = ALERT_RESOLVED
        existing.resolved_at = utcnow()
        session.flush()
        current_app.logger.info(
            "Low-stock alert %s resolved for product %s variant %s (%s > %s)",
            existing.id, key.product_id, key.variant_id, new_quantity, min_level,
        )
    return None


def acknowledge_alert(alert_id: int, actor: ActorContext) -> LowStockAlert:
    """Staff acknowledgement of an active alert (terminal)."""
    def _op():
        with unit_of_work() as session:
            alert = lock_for_update(
                session.query(LowStockAlert).filter_by(id=alert_id, alert_status=ALERT_ACTIVE)
            ).first()
            if alert is None:
                raise NotFoundError("Alert not found or already acknowledged", details={"alert_id": alert_id})

            alert.alert_status = ALERT_ACKNOWLEDGED
            alert.acknowledged_by = actor.user_id
            alert.acknowledged_at = utcnow()

        current_app.logger.info("Low-stock alert %s acknowledged by user %s", alert_id, actor.user_id)
        return alert

    return run_with_retry(_op)


def list_alerts(status: str = ALERT_ACTIVE) -> list[LowStockAlert]:
    """Alerts in the given status for active products, newest first."""
    if status not in ALERT_STATUSES:
        raise InvalidRequestError(
            f"status must be one of: {', '.join(ALERT_STATUSES)}",
            details={"status": status},
        )

    return (
        db.session.query(LowStockAlert)
        .join(Product, LowStockAlert.product_id == Product.id)
        .filter(LowStockAlert.alert_status == status, Product.is_active.is_(True))
        .order_by(LowStockAlert.created_at.desc(), LowStockAlert.id.desc())
        .all()
    )
