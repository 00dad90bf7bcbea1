# Overview: Pytest coverage for full and partial sale refunds.

import pytest

from stockpos.errors import InvalidRequestError, NotFoundError
from stockpos.models import LowStockAlert, Sale, SaleRefund, StockLine, StockMovement
from stockpos.models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from stockpos.models.stock import ALERT_ACTIVE, ALERT_RESOLVED, MOVEMENT_RETURN
from stockpos.services.refund_service import REFUND_FULL, REFUND_PARTIAL, refund_sale
from stockpos.services.sales_service import create_sale


def _quantity(db_session, product):
    return db_session.query(StockLine).filter_by(product_id=product.id, variant_id=None).one().quantity


def _sell(cashier, *lines):
    return create_sale(
        [{"product_id": p.id, "quantity": q, "unit_price_cents": p.price_cents} for p, q in lines],
        cashier,
    )


def _returns(db_session, product):
    return (
        db_session.query(StockMovement)
        .filter_by(product_id=product.id, movement_type=MOVEMENT_RETURN)
        .order_by(StockMovement.id.asc())
        .all()
    )


# =============================================================================
# FULL REFUNDS
# =============================================================================

class TestFullRefund:
    def test_refund_restocks_and_marks_sale(self, db_session, admin, cashier, make_product):
        """Sale 4 of 10 -> 6; full refund -> 10 with a 'return' +4."""
        product = make_product(10)
        sale = _sell(cashier, (product, 4))
        assert _quantity(db_session, product) == 6

        result = refund_sale(sale.id, admin)

        assert result["refund_type"] == REFUND_FULL
        assert result["refunded_items"] == 1
        assert result["total_items"] == 1
        assert result["sale"]["status"] == SALE_STATUS_REFUNDED
        assert _quantity(db_session, product) == 10

        returns = _returns(db_session, product)
        assert len(returns) == 1
        assert returns[0].quantity_change == 4
        assert returns[0].reference_id == sale.id
        assert returns[0].reference_type == "refund"
        assert returns[0].notes == f"Refund for sale {sale.sale_number}"
        assert returns[0].created_by == admin.user_id

        stored = db_session.get(Sale, sale.id)
        assert stored.status == SALE_STATUS_REFUNDED
        assert stored.refunded_at is not None
        assert stored.notes == "Refund: No reason provided"

    def test_reason_is_recorded(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = create_sale(
            [{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
            cashier,
            notes="Gift wrap",
        )

        refund_sale(sale.id, admin, reason="Damaged box")

        assert _returns(db_session, product)[0].notes == f"Refund for sale {sale.sale_number}: Damaged box"
        assert db_session.get(Sale, sale.id).notes == "Gift wrap\nRefund: Damaged box"
        assert db_session.query(SaleRefund).one().reason == "Damaged box"

    def test_refund_twice_fails(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = _sell(cashier, (product, 4))
        refund_sale(sale.id, admin)

        with pytest.raises(NotFoundError):
            refund_sale(sale.id, admin)

        assert _quantity(db_session, product) == 10

    def test_missing_sale(self, db_session, admin):
        with pytest.raises(NotFoundError):
            refund_sale(99999, admin)

    def test_refund_resolves_low_stock_alert(self, db_session, admin, cashier, make_product):
        product = make_product(6, min_stock_level=5)
        sale = _sell(cashier, (product, 4))
        assert db_session.query(LowStockAlert).one().alert_status == ALERT_ACTIVE

        refund_sale(sale.id, admin)

        assert db_session.query(LowStockAlert).one().alert_status == ALERT_RESOLVED

    def test_refund_of_inactive_product_still_restocks(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = _sell(cashier, (product, 4))
        product.is_active = False
        db_session.commit()

        refund_sale(sale.id, admin)

        assert _quantity(db_session, product) == 10


# =============================================================================
# PARTIAL REFUNDS
# =============================================================================

class TestPartialRefund:
    def test_partial_then_remaining(self, db_session, admin, cashier, make_product):
        a = make_product(10, name="A")
        b = make_product(10, name="B")
        sale = _sell(cashier, (a, 2), (b, 3))
        item_a, item_b = sale.items[0], sale.items[1]

        result = refund_sale(sale.id, admin, partial_item_ids=[item_a.id])

        assert result["refund_type"] == REFUND_PARTIAL
        assert result["refunded_item_ids"] == [item_a.id]
        assert result["sale"]["status"] == SALE_STATUS_COMPLETED
        assert [i["refunded"] for i in result["sale"]["items"]] == [True, False]
        assert _quantity(db_session, a) == 10
        assert _quantity(db_session, b) == 7
        assert db_session.get(Sale, sale.id).notes == "Refund: No reason provided"

        result = refund_sale(sale.id, admin, reason="Changed mind")

        assert result["refund_type"] == REFUND_FULL
        assert result["refunded_item_ids"] == [item_b.id]
        assert result["sale"]["status"] == SALE_STATUS_REFUNDED
        assert _quantity(db_session, a) == 10
        assert _quantity(db_session, b) == 10
        assert len(_returns(db_session, a)) == 1
        assert db_session.get(Sale, sale.id).notes == "Refund: No reason provided\nRefund: Changed mind"

    def test_partial_covering_all_items_is_full(self, db_session, admin, cashier, make_product):
        a = make_product(10)
        b = make_product(10)
        sale = _sell(cashier, (a, 1), (b, 1))

        result = refund_sale(sale.id, admin, partial_item_ids=[i.id for i in sale.items])

        assert result["refund_type"] == REFUND_FULL
        assert result["sale"]["status"] == SALE_STATUS_REFUNDED

    def test_empty_selection_refunds_everything(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = _sell(cashier, (product, 2))

        result = refund_sale(sale.id, admin, partial_item_ids=[])

        assert result["refund_type"] == REFUND_FULL
        assert _quantity(db_session, product) == 10

    def test_foreign_item_ids_rejected(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = _sell(cashier, (product, 2))
        other = _sell(cashier, (product, 1))

        with pytest.raises(InvalidRequestError):
            refund_sale(sale.id, admin, partial_item_ids=[other.items[0].id])

        assert _quantity(db_session, product) == 7
        assert db_session.get(Sale, sale.id).status == SALE_STATUS_COMPLETED

    def test_already_refunded_items_rejected(self, db_session, admin, cashier, make_product):
        a = make_product(10)
        b = make_product(10)
        sale = _sell(cashier, (a, 2), (b, 2))
        item_a = sale.items[0]
        refund_sale(sale.id, admin, partial_item_ids=[item_a.id])

        with pytest.raises(InvalidRequestError):
            refund_sale(sale.id, admin, partial_item_ids=[item_a.id])

        assert _quantity(db_session, a) == 10
        assert len(_returns(db_session, a)) == 1

    @pytest.mark.parametrize("partial_item_ids", ["1", [1, "2"], [True], 5])
    def test_malformed_item_ids(self, db_session, admin, cashier, make_product, partial_item_ids):
        product = make_product(10)
        sale = _sell(cashier, (product, 2))

        with pytest.raises(InvalidRequestError):
            refund_sale(sale.id, admin, partial_item_ids=partial_item_ids)

    def test_reason_too_long(self, db_session, admin, cashier, make_product):
        product = make_product(10)
        sale = _sell(cashier, (product, 2))

        with pytest.raises(InvalidRequestError):
            refund_sale(sale.id, admin, reason="x" * 256)
