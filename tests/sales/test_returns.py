from decimal import Decimal

import pytest

from pos_billing.database.repositories.returns_repo import ReturnsRepo
from pos_billing.database.repositories.sales_repo import PersistedSale, PersistedSaleItem, SalesRepo
from pos_billing.modules.sales.errors import ReturnFailed, ReturnRejected
from pos_billing.modules.sales.returns import (
    ReturnFinalizer,
    ReturnLine,
    ReturnRequest,
    make_request,
    quote_refund,
    unit_net_paid,
    validate_return,
)

D = Decimal


def _sale(*items, discount="0", sale_id=1):
    return PersistedSale(
        sale_id=sale_id,
        items=tuple(items),
        discount=D(discount),
        total_amount=D("0"),
        paid_amount=D("0"),
    )


def _item(item_id, price, qty, line_discount="0", returned=0):
    return PersistedSaleItem(
        item_id=item_id,
        variant_id=100 + item_id,
        price_per_unit=D(str(price)),
        quantity=qty,
        discount_amount=D(line_discount),
        returned_quantity=returned,
    )


class NoWrites:
    def __init__(self):
        self.requests = []

    def record_return(self, request):
        self.requests.append(request)
        return 1


class FixedSale:
    def __init__(self, sale):
        self.sale = sale

    def get_sale(self, sale_id):
        return self.sale if sale_id == self.sale.sale_id else None


# ---------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------
def test_unit_net_paid_spreads_cart_discount_by_line_subtotal():
    sale = _sale(_item(1, 100, 2), _item(2, 50, 1), discount="30")
    units = unit_net_paid(sale)
    assert units[1] == D("88")
    assert units[2] == D("44")


def test_returning_one_unit_refunds_its_net_paid():
    sale = _sale(_item(1, 100, 2), _item(2, 50, 1), discount="30")
    quote = quote_refund(sale, make_request(1, {1: 1}))
    assert quote.total == D("88.00")
    (line,) = quote.lines
    assert (line.sale_item_id, line.quantity, line.refund) == (1, 1, D("88.00"))


def test_line_discount_lowers_the_refund():
    sale = _sale(_item(1, 100, 2, line_discount="20"), _item(2, 20, 1), discount="0")
    quote = quote_refund(sale, make_request(1, {1: 2}))
    assert quote.total == D("180.00")


def test_refunds_are_rounded_per_line():
    sale = _sale(_item(1, 10, 3), discount="1")
    # (30 - 1) / 3 = 9.666...
    quote = quote_refund(sale, make_request(1, {1: 1}))
    assert quote.total == D("9.67")


def test_zero_subtotal_sale_refunds_nothing():
    sale = _sale(_item(1, 0, 1), discount="0")
    assert quote_refund(sale, make_request(1, {1: 1})).total == D("0.00")


def test_over_return_is_rejected_locally():
    sale = _sale(_item(1, 100, 2, returned=1))
    writer = NoWrites()
    finalizer = ReturnFinalizer(FixedSale(sale), writer)

    with pytest.raises(ReturnRejected, match="Only 1 remaining"):
        finalizer.submit(make_request(1, {1: 3}))
    assert writer.requests == []


def test_repeated_lines_count_together():
    sale = _sale(_item(1, 10, 2))
    req = ReturnRequest(sale_id=1, lines=(ReturnLine(1, 1), ReturnLine(1, 2)))
    with pytest.raises(ReturnRejected, match="Cannot return 3"):
        validate_return(sale, req)


@pytest.mark.parametrize(
    "quantities, message",
    [
        ({}, "at least one item"),
        ({1: 0}, "at least one item"),
        ({9: 1}, "not found"),
        ({1: -1}, "negative"),
    ],
)
def test_invalid_selections(quantities, message):
    sale = _sale(_item(1, 10, 2))
    with pytest.raises(ReturnRejected, match=message):
        validate_return(sale, make_request(1, quantities))


def test_unknown_sale():
    finalizer = ReturnFinalizer(FixedSale(_sale(_item(1, 10, 1))), NoWrites())
    with pytest.raises(ReturnRejected, match="Sale 2 not found"):
        finalizer.quote(make_request(2, {1: 1}))


# ---------------------------------------------------------------------
# Through the repositories
# ---------------------------------------------------------------------
@pytest.fixture()
def sold(conn):
    """A(100 x 2) + B(50 x 1), 30 off the cart, paid 220 by method 1."""
    repo = SalesRepo(conn)
    sale_id = repo.create_sale(
        {
            "items": [
                {"variantId": 1, "quantity": 2, "pricePerUnit": 100, "discount": 0},
                {"variantId": 2, "quantity": 1, "pricePerUnit": 50, "discount": 0},
            ],
            "customerId": None,
            "discount": 30,
            "payments": [{"paymentMethodId": 1, "amount": 220}],
            "totalAmount": 220,
        },
        date="2024-06-01",
    )
    return repo, sale_id


def test_submit_records_the_return_and_refund(conn, sold):
    sales, sale_id = sold
    item_a, item_b = (it.item_id for it in sales.get_sale(sale_id).items)
    finalizer = ReturnFinalizer(sales, ReturnsRepo(conn))

    result = finalizer.submit(make_request(sale_id, {item_a: 1}, reason="damaged"))
    assert result.total_refund == D("88.00")
    assert result.sale_status == "paid"

    sale = sales.get_sale(sale_id)
    assert sale.item(item_a).returned_quantity == 1
    assert sale.paid_amount == D("132.00")

    result = finalizer.submit(make_request(sale_id, {item_a: 1, item_b: 1}))
    assert result.total_refund == D("132.00")
    assert result.sale_status == "refunded"
    assert sales.get_sale(sale_id).paid_amount == D("0.00")


def test_store_rejection_is_passed_through_verbatim(conn, sold):
    sales, sale_id = sold
    stale = sales.get_sale(sale_id)
    item_a = stale.items[0].item_id
    returns = ReturnsRepo(conn)
    ReturnFinalizer(sales, returns).submit(make_request(sale_id, {item_a: 2}))

    # a second till still holding the sale as it was before the first return
    finalizer = ReturnFinalizer(FixedSale(stale), returns)
    with pytest.raises(ReturnFailed) as exc:
        finalizer.submit(make_request(sale_id, {item_a: 1}))
    assert str(exc.value) == f"Cannot return 1 of item {item_a}. Only 0 remaining to return."
    assert sales.get_sale(sale_id).item(item_a).returned_quantity == 2
