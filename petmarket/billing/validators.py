"""
petmarket/billing/validators.py
-------------------------------
Turns a raw JSON checkout body into a CheckoutRequest.

Only shape and type coercion happen here; business validation belongs to
the assembler, which re-checks everything regardless of the caller.
"""
import re

from petmarket.billing.assembler import CheckoutRequest, LineItemRequest
from petmarket.billing.errors import InvalidAmount, InvalidRequest

_MISSING = object()
_WHOLE_NUMBER = re.compile(r'-?[0-9]+')


def _int_field(raw, name, errors, required=True, default=None):
    """
    Accept ints and digit strings ("12", "-3"); reject floats, bools and
    anything else so fractional minor units never sneak in.
    """
    if raw is _MISSING or raw is None:
        if required:
            errors[name] = 'This field is required.'
        return default
    if isinstance(raw, bool):
        errors[name] = 'Must be a whole number.'
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if _WHOLE_NUMBER.fullmatch(text):
            return int(text)
    errors[name] = 'Must be a whole number.'
    return default


def parse_checkout_payload(data, shop_ref, created_by_ref) -> CheckoutRequest:
    """
    Build a CheckoutRequest from a request body plus the session identity.

    Raises:
        InvalidRequest — body is not an object, or a non-amount field is malformed
        InvalidAmount  — items missing/empty, or an amount is not a whole number
    """
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object.')

    amount_errors = {}
    errors = {}

    raw_items = data.get('items')
    if not isinstance(raw_items, list) or not raw_items:
        amount_errors['items'] = 'At least one line item is required.'
        raw_items = []

    items = []
    for i, raw in enumerate(raw_items):
        path = f'items[{i}]'
        if not isinstance(raw, dict):
            errors[path] = 'Line item must be an object.'
            continue
        items.append(LineItemRequest(
            product_ref=_int_field(raw.get('productRef', _MISSING), f'{path}.productRef', errors),
            quantity=_int_field(raw.get('quantity', _MISSING), f'{path}.quantity', amount_errors),
            unit_price=_int_field(raw.get('unitPrice', _MISSING), f'{path}.unitPrice',
                                  amount_errors, required=False),
            line_discount=_int_field(raw.get('lineDiscount', _MISSING), f'{path}.lineDiscount',
                                     amount_errors, required=False, default=0),
        ))

    tax = _int_field(data.get('tax', _MISSING), 'tax', amount_errors, required=False)
    tax_rate_bp = _int_field(data.get('taxRate', _MISSING), 'taxRate', amount_errors, required=False)
    discount = _int_field(data.get('discount', _MISSING), 'discount', amount_errors,
                          required=False, default=0)

    if amount_errors:
        raise InvalidAmount('Checkout amounts are invalid.', fields={**errors, **amount_errors})
    if errors:
        raise InvalidRequest('Checkout request is invalid.', fields=errors)

    return CheckoutRequest(
        shop_ref=shop_ref,
        created_by_ref=created_by_ref,
        customer_name=data.get('customerName'),
        customer_phone=data.get('customerPhone'),
        customer_email=data.get('customerEmail'),
        payment_method=data.get('paymentMethod'),
        payment_status=data.get('paymentStatus', 'paid'),
        items=items,
        tax=tax,
        tax_rate_bp=tax_rate_bp,
        discount=discount,
        notes=data.get('notes'),
    )
