# Overview: Pytest coverage for the `flask stock` command group.

from stockpos.models import StockKey, StockLine
from stockpos.models.stock import MOVEMENT_OUT
from stockpos.services.concurrency import unit_of_work
from stockpos.services.ledger_service import apply_delta


class TestVerifyLedgerCommand:
    def test_empty_database(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "verify-ledger"])

        assert result.exit_code == 0
        assert "No stock lines to verify" in result.output

    def test_consistent_ledger(self, app, db_session, admin, make_product):
        product = make_product(10)
        with unit_of_work() as session:
            apply_delta(session, StockKey(product.id), MOVEMENT_OUT, 3, admin)

        result = app.test_cli_runner().invoke(args=["stock", "verify-ledger"])

        assert result.exit_code == 0
        assert "PASS 1 stock lines consistent" in result.output

    def test_drifted_line_fails(self, app, db_session, make_product):
        product = make_product(10)
        line = db_session.query(StockLine).filter_by(product_id=product.id).one()
        line.quantity = 7
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["stock", "verify-ledger", "--product-id", str(product.id)])

        assert result.exit_code == 1
        assert f"FAIL product {product.id}" in result.output
        assert "quantity 7 != replayed 10" in result.output


class TestAlertsCommand:
    def test_no_alerts(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "alerts"])

        assert result.exit_code == 0
        assert "No active alerts." in result.output

    def test_lists_active_alerts(self, app, db_session, make_product):
        product = make_product(2, min_stock_level=5, name="Stapler")

        result = app.test_cli_runner().invoke(args=["stock", "alerts"])

        assert result.exit_code == 0
        assert product.sku in result.output
        assert "Stapler" in result.output

    def test_rejects_unknown_status(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "alerts", "--status", "snoozed"])

        assert result.exit_code != 0
