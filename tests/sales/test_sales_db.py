from decimal import Decimal

import pytest

from pos_billing.database.repositories import (
    DomainError,
    ReturnsRepo,
    SalesRepo,
    get_returnable_quantities,
)
from pos_billing.utils.helpers import money

D = Decimal


def _payload(**over):
    p = {
        "items": [
            {"variantId": 1, "quantity": 3, "pricePerUnit": 10, "discount": 3},
            {"variantId": 2, "quantity": 1, "pricePerUnit": 25.5, "discount": 0},
        ],
        "customerId": 7,
        "discount": 2.5,
        "payments": [{"paymentMethodId": 1, "amount": 50}],
        "totalAmount": 50,
    }
    p.update(over)
    return p


def test_create_sale_writes_header_items_and_payment(conn):
    repo = SalesRepo(conn)
    sid = repo.create_sale(_payload(), date="2024-06-01", created_by=3)

    sale = repo.get_sale(sid)
    assert sale.customer_id == 7
    assert sale.date == "2024-06-01"
    assert sale.discount == D("2.50")
    assert sale.total_amount == D("50.00")
    assert sale.paid_amount == D("50.00")
    assert sale.status == "paid"
    assert [(i.variant_id, i.quantity, i.price_per_unit, i.discount_amount) for i in sale.items] == [
        (1, 3, D("10.00"), D("3.00")),
        (2, 1, D("25.50"), D("0.00")),
    ]
    assert [(p["payment_method_id"], money(p["amount"]), p["type"]) for p in sale.payments] == [
        (1, D("50.00"), "payment")
    ]


def test_partial_and_unpaid_status(conn):
    repo = SalesRepo(conn)
    partial = repo.create_sale(_payload(payments=[{"paymentMethodId": 1, "amount": 20}]))
    unpaid = repo.create_sale(_payload(payments=[]))
    assert repo.get_sale(partial).status == "partially_paid"
    assert repo.get_sale(unpaid).status == "unpaid"
    assert repo.get_sale(unpaid).payments == ()


def test_total_defaults_to_lines_minus_discount(conn):
    repo = SalesRepo(conn)
    sid = repo.create_sale(_payload(totalAmount=None, payments=[]))
    assert repo.get_sale(sid).total_amount == D("50.00")


@pytest.mark.parametrize(
    "over, message",
    [
        ({"items": []}, "no items"),
        ({"items": [{"variantId": 1, "quantity": 0, "pricePerUnit": 1}]}, "quantity"),
        ({"items": [{"variantId": 1, "quantity": 1, "pricePerUnit": -1}]}, "price"),
        ({"items": [{"variantId": 1, "quantity": 1, "pricePerUnit": 5, "discount": 6}]}, "discount"),
        ({"items": [{"quantity": 1, "pricePerUnit": 5}]}, "incomplete"),
        ({"discount": 999}, "Sale discount"),
        ({"payments": [{"paymentMethodId": 1, "amount": -1}]}, "Payment amount"),
    ],
)
def test_create_sale_rejects_bad_payloads(conn, over, message):
    repo = SalesRepo(conn)
    with pytest.raises(DomainError, match=message):
        repo.create_sale(_payload(**over))
    assert conn.execute("SELECT COUNT(*) FROM sales").fetchone()[0] == 0


def test_missing_sale(conn):
    assert SalesRepo(conn).get_sale(404) is None


def test_record_return_updates_quantities_and_payments(conn):
    sales, returns = SalesRepo(conn), ReturnsRepo(conn)
    sid = sales.create_sale(_payload(), date="2024-06-01")
    item1, item2 = (i.item_id for i in sales.get_sale(sid).items)

    rid = returns.record_return(
        {"saleId": sid, "reason": "wrong size",
         "items": [{"saleItemId": item1, "quantity": 2, "refundAmount": "17.40"}]},
        date="2024-06-02",
    )
    assert get_returnable_quantities(conn, sid) == {item1: 1, item2: 1}

    (hdr,) = returns.list_returns(sid)
    assert hdr["return_id"] == rid
    assert hdr["reason"] == "wrong size"
    assert money(hdr["total_refund"]) == D("17.40")
    assert [(r["sale_item_id"], r["quantity"]) for r in returns.list_return_items(rid)] == [(item1, 2)]

    sale = sales.get_sale(sid)
    refund = [p for p in sale.payments if p["type"] == "refund"]
    assert [(p["payment_method_id"], money(p["amount"]), p["date"]) for p in refund] == [
        (1, D("-17.40"), "2024-06-02")
    ]
    assert sale.paid_amount == D("32.60")
    assert sale.status == "paid"


def test_record_return_rejects_and_writes_nothing(conn):
    sales, returns = SalesRepo(conn), ReturnsRepo(conn)
    sid = sales.create_sale(_payload())
    item1 = sales.get_sale(sid).items[0].item_id

    with pytest.raises(DomainError, match="Only 3 remaining"):
        returns.record_return({"saleId": sid, "items": [{"saleItemId": item1, "quantity": 4}]})
    with pytest.raises(DomainError, match="Sale not found"):
        returns.record_return({"saleId": 999, "items": [{"saleItemId": item1, "quantity": 1}]})
    with pytest.raises(DomainError, match="at least one item"):
        returns.record_return({"saleId": sid, "items": []})

    assert returns.list_returns(sid) == []
    assert get_returnable_quantities(conn, sid)[item1] == 3
