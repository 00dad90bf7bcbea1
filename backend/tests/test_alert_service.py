# Overview: Pytest coverage for low-stock alert reconciliation, acknowledgement and listing.

import pytest

from stockpos.errors import InvalidRequestError, NotFoundError
from stockpos.models import LowStockAlert, StockKey
from stockpos.models.stock import (
    ALERT_ACKNOWLEDGED,
    ALERT_ACTIVE,
    ALERT_RESOLVED,
    MOVEMENT_IN,
    MOVEMENT_OUT,
)
from stockpos.services import alert_service
from stockpos.services.concurrency import unit_of_work
from stockpos.services.ledger_service import apply_delta


def _move(product, kind, quantity, actor, variant_id=None):
    with unit_of_work() as session:
        line, _ = apply_delta(
            session,
            StockKey(product.id, variant_id),
            kind,
            quantity,
            actor,
            min_stock_level=product.min_stock_level,
        )
        return line.quantity


def _alerts(db_session, product, status=None):
    query = db_session.query(LowStockAlert).filter_by(product_id=product.id)
    if status is not None:
        query = query.filter_by(alert_status=status)
    return query.order_by(LowStockAlert.id.asc()).all()


# =============================================================================
# RECONCILIATION
# =============================================================================

class TestReconcile:
    def test_breach_opens_single_alert(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)

        _move(product, MOVEMENT_OUT, 4, admin)

        alerts = _alerts(db_session, product)
        assert len(alerts) == 1
        assert alerts[0].alert_status == ALERT_ACTIVE
        assert alerts[0].current_stock == 8
        assert alerts[0].min_stock_level == 10

    def test_threshold_is_inclusive(self, db_session, admin, make_product):
        product = make_product(11, min_stock_level=10)

        _move(product, MOVEMENT_OUT, 1, admin)

        assert len(_alerts(db_session, product, ALERT_ACTIVE)) == 1

    def test_further_decrease_keeps_snapshot(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)

        _move(product, MOVEMENT_OUT, 4, admin)
        _move(product, MOVEMENT_OUT, 5, admin)

        alerts = _alerts(db_session, product)
        assert len(alerts) == 1
        assert alerts[0].current_stock == 8

    def test_reconcile_is_idempotent(self, db_session, make_product):
        product = make_product(3, min_stock_level=10)
        key = StockKey(product.id)

        with unit_of_work() as session:
            first = alert_service.reconcile(session, key, 3, 10)
            second = alert_service.reconcile(session, key, 3, 10)
            assert first is not None
            assert first is second

        with unit_of_work() as session:
            again = alert_service.reconcile(session, key, 3, 10)
            assert again.id == first.id

        assert len(_alerts(db_session, product, ALERT_ACTIVE)) == 1

    def test_restock_resolves_alert(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)

        _move(product, MOVEMENT_IN, 10, admin)

        alerts = _alerts(db_session, product)
        assert len(alerts) == 1
        assert alerts[0].alert_status == ALERT_RESOLVED
        assert alerts[0].resolved_at is not None
        assert alerts[0].acknowledged_by is None

    def test_new_breach_after_resolution_opens_new_alert(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        _move(product, MOVEMENT_IN, 10, admin)

        _move(product, MOVEMENT_OUT, 15, admin)

        statuses = [a.alert_status for a in _alerts(db_session, product)]
        assert statuses == [ALERT_RESOLVED, ALERT_ACTIVE]

    def test_no_alert_above_threshold(self, db_session, admin, make_product):
        product = make_product(20, min_stock_level=10)

        _move(product, MOVEMENT_OUT, 5, admin)

        assert _alerts(db_session, product) == []

    def test_variant_alerts_are_independent(self, db_session, admin, make_product, make_variant):
        product = make_product(3, min_stock_level=5)
        variant = make_variant(product)

        _move(product, MOVEMENT_IN, 1, admin, variant_id=variant.id)
        _move(product, MOVEMENT_OUT, 1, admin)

        active = _alerts(db_session, product, ALERT_ACTIVE)
        assert sorted((a.variant_id or 0) for a in active) == sorted([0, variant.id])

        _move(product, MOVEMENT_IN, 10, admin)

        active = _alerts(db_session, product, ALERT_ACTIVE)
        assert [a.variant_id for a in active] == [variant.id]


# =============================================================================
# ACKNOWLEDGEMENT
# =============================================================================

class TestAcknowledge:
    def test_acknowledge_active_alert(self, db_session, admin, cashier, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        alert = _alerts(db_session, product)[0]

        acknowledged = alert_service.acknowledge_alert(alert.id, cashier)

        assert acknowledged.alert_status == ALERT_ACKNOWLEDGED
        assert acknowledged.acknowledged_by == cashier.user_id
        assert acknowledged.acknowledged_at is not None

    def test_acknowledge_twice_fails(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        alert = _alerts(db_session, product)[0]
        alert_service.acknowledge_alert(alert.id, admin)

        with pytest.raises(NotFoundError):
            alert_service.acknowledge_alert(alert.id, admin)

    def test_acknowledge_missing_alert(self, db_session, admin):
        with pytest.raises(NotFoundError):
            alert_service.acknowledge_alert(99999, admin)

    def test_breach_after_acknowledgement_opens_new_alert(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        alert_service.acknowledge_alert(_alerts(db_session, product)[0].id, admin)

        _move(product, MOVEMENT_OUT, 1, admin)

        statuses = [a.alert_status for a in _alerts(db_session, product)]
        assert statuses == [ALERT_ACKNOWLEDGED, ALERT_ACTIVE]


# =============================================================================
# LISTING
# =============================================================================

class TestListAlerts:
    def test_lists_active_alerts_newest_first(self, db_session, admin, make_product):
        first = make_product(12, min_stock_level=10)
        second = make_product(12, min_stock_level=10)
        _move(first, MOVEMENT_OUT, 4, admin)
        _move(second, MOVEMENT_OUT, 4, admin)

        alerts = alert_service.list_alerts()

        assert [a.product_id for a in alerts] == [second.id, first.id]
        data = alerts[0].to_dict()
        assert data["product_name"] == second.name
        assert data["sku"] == second.sku

    def test_excludes_inactive_products(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        product.is_active = False
        db_session.commit()

        assert alert_service.list_alerts() == []

    def test_filters_by_status(self, db_session, admin, make_product):
        product = make_product(12, min_stock_level=10)
        _move(product, MOVEMENT_OUT, 4, admin)
        _move(product, MOVEMENT_IN, 10, admin)

        assert alert_service.list_alerts() == []
        assert len(alert_service.list_alerts(ALERT_RESOLVED)) == 1

    def test_rejects_unknown_status(self, db_session):
        with pytest.raises(InvalidRequestError):
            alert_service.list_alerts("snoozed")
