"""
test_totals.py — Minor-unit arithmetic and checkout validation (no database).
Run: pytest test_totals.py -v
"""
from decimal import Decimal

import pytest

from petmarket.billing.assembler import (
    CheckoutRequest, LineItemRequest, PricedLine, compute_totals, validate_checkout,
)
from petmarket.billing.errors import InvalidAmount, InvalidRequest
from petmarket.utils.money import apply_basis_points, format_minor, to_minor


def make_request(**overrides):
    fields = dict(
        shop_ref=1,
        created_by_ref=1,
        customer_name='Ayesha Rahman',
        customer_phone='01711000000',
        payment_method='cash',
        items=[LineItemRequest(product_ref=1, quantity=1)],
    )
    fields.update(overrides)
    return CheckoutRequest(**fields)


# ── compute_totals ────────────────────────────────────────────────

def test_reference_cart_totals():
    lines = [
        PricedLine(product_ref=1, quantity=2, unit_price=1000, line_discount=0),
        PricedLine(product_ref=2, quantity=1, unit_price=500, line_discount=100),
    ]
    totals = compute_totals(lines, tax=150, discount=0)

    assert totals.subtotal == 2400
    assert totals.tax == 150
    assert totals.discount == 0
    assert totals.total == 2550


def test_total_identity_holds_with_order_discount():
    lines = [PricedLine(product_ref=1, quantity=3, unit_price=333, line_discount=9)]
    totals = compute_totals(lines, tax=47, discount=200)
    assert totals.subtotal + totals.tax - totals.discount == totals.total
    assert isinstance(totals.total, int)


def test_many_small_prices_do_not_drift():
    # 0.10 × 1000 lines would drift with binary floats
    lines = [PricedLine(product_ref=i, quantity=1, unit_price=10) for i in range(1000)]
    assert compute_totals(lines).total == 10000


def test_tax_rate_in_basis_points_rounds_half_up():
    lines = [PricedLine(product_ref=1, quantity=1, unit_price=1005)]
    # 5% of 10.05 = 0.5025 → 0.50
    assert compute_totals(lines, tax_rate_bp=500).tax == 50
    # 15% of 10.05 = 1.5075 → 1.51
    assert compute_totals(lines, tax_rate_bp=1500).tax == 151


def test_empty_cart_is_invalid_amount():
    with pytest.raises(InvalidAmount):
        compute_totals([])


def test_negative_total_is_invalid_amount():
    lines = [PricedLine(product_ref=1, quantity=1, unit_price=500)]
    with pytest.raises(InvalidAmount) as exc:
        compute_totals(lines, tax=0, discount=501)
    assert exc.value.details['total'] == -1


def test_discount_equal_to_amount_due_gives_zero_total():
    lines = [PricedLine(product_ref=1, quantity=1, unit_price=500)]
    assert compute_totals(lines, tax=50, discount=550).total == 0


def test_line_discount_cannot_exceed_line_value():
    lines = [PricedLine(product_ref=1, quantity=2, unit_price=100, line_discount=201)]
    with pytest.raises(InvalidAmount):
        compute_totals(lines)


def test_line_discount_equal_to_line_value_is_allowed():
    lines = [PricedLine(product_ref=1, quantity=2, unit_price=100, line_discount=200)]
    assert compute_totals(lines).subtotal == 0


def test_tax_and_tax_rate_together_rejected():
    lines = [PricedLine(product_ref=1, quantity=1, unit_price=100)]
    with pytest.raises(InvalidAmount):
        compute_totals(lines, tax=10, tax_rate_bp=1000)


# ── validate_checkout ─────────────────────────────────────────────

@pytest.mark.parametrize('quantity', [0, -1, 1.5, True, '2'])
def test_bad_quantity_rejected(quantity):
    req = make_request(items=[LineItemRequest(product_ref=1, quantity=quantity)])
    with pytest.raises(InvalidAmount) as exc:
        validate_checkout(req)
    assert 'items[0].quantity' in exc.value.details['fields']


def test_empty_items_rejected_as_invalid_amount():
    with pytest.raises(InvalidAmount):
        validate_checkout(make_request(items=[]))


def test_negative_client_price_rejected():
    req = make_request(items=[LineItemRequest(product_ref=1, quantity=1, unit_price=-5)])
    with pytest.raises(InvalidAmount):
        validate_checkout(req)


@pytest.mark.parametrize('field,value', [
    ('customer_name', '   '),
    ('customer_phone', ''),
    ('payment_method', 'cheque'),
    ('payment_method', None),
    ('payment_status', 'cancelled'),
    ('shop_ref', None),
    ('created_by_ref', None),
])
def test_missing_or_malformed_fields_rejected(field, value):
    with pytest.raises(InvalidRequest) as exc:
        validate_checkout(make_request(**{field: value}))
    assert not isinstance(exc.value, InvalidAmount)


def test_valid_request_passes():
    validate_checkout(make_request(payment_method='mobile_banking', tax=10, discount=5))


# ── money helpers ─────────────────────────────────────────────────

def test_to_minor_and_format():
    assert to_minor(Decimal('24.99')) == 2499
    assert to_minor('10') == 1000
    assert to_minor(Decimal('0.005')) == 1
    assert format_minor(2550) == '25.50'


def test_to_minor_refuses_floats():
    with pytest.raises(TypeError):
        to_minor(0.1)


def test_apply_basis_points():
    assert apply_basis_points(10000, 1500) == 1500
    assert apply_basis_points(0, 1500) == 0
    with pytest.raises(ValueError):
        apply_basis_points(-1, 100)
