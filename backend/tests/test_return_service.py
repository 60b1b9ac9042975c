"""
Return processing tests.

Verifies:
- Partial returns refund unit price x quantity and restock
- Cumulative return bound per sale item
- Fully returned sales are flagged and reject further returns
- Cancellation returns everything and marks the sale notes
"""

from decimal import Decimal

import pytest

from stockledger.errors import (
    ExcessiveReturnError,
    NoItemsSelectedError,
    NotFoundError,
    SaleAlreadyReturnedError,
    ValidationError,
)
from stockledger.models import ReturnLine, ReturnRecord, Sale, StockAdjustment
from stockledger.services import ledger_service, return_service, sales_service


@pytest.fixture
def discounted_sale(db_session, product_a):
    """3 x Product A at 20.00 with a 10% discount, paid 60.00 cash."""
    return sales_service.finalize_sale(
        [{"product_id": product_a.id, "quantity": 3, "unit_price_cents": 2000}],
        discount={"type": "percentage", "value": 10},
        payment_method="cash",
        payment={"amount_paid_cents": 6000},
    )


class TestProcessReturn:

    def test_partial_return(self, db_session, product_a, discounted_sale, stock_of):
        item = discounted_sale.items[0]

        record = return_service.process_return(
            discounted_sale.id,
            [{"sale_item_id": item.id, "return_quantity": 1}],
        )

        # unit price, discount not reapportioned
        assert record.refund_cents == 2000
        assert stock_of(product_a.id) == Decimal(48)
        assert db_session.get(Sale, discounted_sale.id).is_returned is False

        adjustment = (
            StockAdjustment.query.filter_by(product_id=product_a.id, adjustment_type="return").one()
        )
        assert adjustment.quantity_delta == Decimal(1)
        assert adjustment.reference == discounted_sale.receipt_number
        assert adjustment.reason == "Customer return"

    def test_return_above_remaining_rejected(self, db_session, product_a, discounted_sale, stock_of):
        item_id = discounted_sale.items[0].id
        return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 1}])

        with pytest.raises(ExcessiveReturnError) as exc_info:
            return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 3}])

        assert exc_info.value.details["remaining"] == "2.000"
        assert stock_of(product_a.id) == Decimal(48)
        assert ReturnRecord.query.count() == 1
        assert ReturnLine.query.count() == 1

    def test_returning_everything_flags_sale(self, db_session, product_a, discounted_sale, stock_of):
        item_id = discounted_sale.items[0].id
        return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 1}])
        return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 2}])

        assert db_session.get(Sale, discounted_sale.id).is_returned is True
        assert stock_of(product_a.id) == Decimal(50)
        assert return_service.get_returned_quantities(discounted_sale.id) == {item_id: Decimal(3)}

    def test_fully_returned_sale_rejects_more(self, db_session, discounted_sale):
        item_id = discounted_sale.items[0].id
        return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 3}])

        with pytest.raises(SaleAlreadyReturnedError):
            return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 1}])

    def test_no_positive_quantities(self, db_session, discounted_sale):
        item_id = discounted_sale.items[0].id

        with pytest.raises(NoItemsSelectedError):
            return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 0}])

        with pytest.raises(NoItemsSelectedError):
            return_service.process_return(discounted_sale.id, [])

    def test_negative_quantity(self, db_session, discounted_sale):
        item_id = discounted_sale.items[0].id

        with pytest.raises(ValidationError):
            return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": -1}])

    @pytest.mark.parametrize("sale_item_id", ["first", 1.5, False])
    def test_malformed_sale_item_id(self, db_session, product_a, discounted_sale, stock_of, sale_item_id):
        with pytest.raises(ValidationError):
            return_service.process_return(
                discounted_sale.id,
                [{"sale_item_id": sale_item_id, "return_quantity": 1}],
            )

        assert stock_of(product_a.id) == Decimal(47)
        assert ReturnRecord.query.count() == 0

    def test_item_from_another_sale(self, db_session, product_a, discounted_sale):
        other = sales_service.finalize_sale(
            [{"product_id": product_a.id, "quantity": 1}],
            payment={"amount_paid_cents": 2000},
        )

        with pytest.raises(NotFoundError):
            return_service.process_return(
                discounted_sale.id,
                [{"sale_item_id": other.items[0].id, "return_quantity": 1}],
            )

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            return_service.process_return(999999, [{"sale_item_id": 1, "return_quantity": 1}])

    def test_multi_line_partial(self, db_session, make_product, stock_of):
        a = make_product(selling_price_cents=1000, stock_quantity=10)
        b = make_product(selling_price_cents=250, stock_quantity=10)
        sale = sales_service.finalize_sale(
            [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 4}],
            payment={"amount_paid_cents": 3000},
        )
        item_a, item_b = sale.items

        record = return_service.process_return(
            sale.id,
            [
                {"sale_item_id": item_a.id, "return_quantity": 1},
                {"sale_item_id": item_b.id, "return_quantity": 4},
            ],
            reason="Wrong size",
        )

        assert record.refund_cents == 1000 + 1000
        assert record.reason == "Wrong size"
        assert len(record.lines) == 2
        assert stock_of(a.id) == Decimal(9)
        assert stock_of(b.id) == Decimal(10)
        assert db_session.get(Sale, sale.id).is_returned is False

    def test_deleted_product_can_still_be_restocked(self, db_session, product_a, discounted_sale, stock_of):
        ledger_service.soft_delete_product(product_a.id)

        return_service.process_return(
            discounted_sale.id,
            [{"sale_item_id": discounted_sale.items[0].id, "return_quantity": 1}],
        )

        assert stock_of(product_a.id) == Decimal(48)


class TestCancelSale:

    def test_cancel_returns_everything(self, db_session, product_a, discounted_sale, stock_of):
        record = return_service.cancel_sale(discounted_sale.id)

        assert record.is_cancellation is True
        assert record.reason == "Sale canceled"
        assert record.refund_cents == 6000
        assert stock_of(product_a.id) == Decimal(50)

        sale = db_session.get(Sale, discounted_sale.id)
        assert sale.is_returned is True
        assert sale.notes.startswith("CANCELED: ")

    def test_cancel_after_partial_return(self, db_session, product_a, discounted_sale, stock_of):
        item_id = discounted_sale.items[0].id
        return_service.process_return(discounted_sale.id, [{"sale_item_id": item_id, "return_quantity": 1}])

        record = return_service.cancel_sale(discounted_sale.id)

        assert record.refund_cents == 4000
        assert stock_of(product_a.id) == Decimal(50)
        assert len(return_service.get_returns_for_sale(discounted_sale.id)) == 2

    def test_cancel_twice(self, db_session, discounted_sale):
        return_service.cancel_sale(discounted_sale.id)

        with pytest.raises(SaleAlreadyReturnedError):
            return_service.cancel_sale(discounted_sale.id)
