"""
petmarket/billing/assembler.py
------------------------------
Turns a checkout request into a committed invoice.

    validate → price from catalog → totals → number → single commit

Nothing touches the sequence counter until the request has passed every
check that does not need a number, so bad input never burns an invoice
number. All money is integer minor units.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from flask import current_app

from petmarket.billing.errors import (
    DuplicateInvoiceNumber, InvalidAmount, InvalidRequest, OutOfStock,
    PersistenceConflict, SequencingUnavailable, StaleCatalogReference,
)
from petmarket.billing.models import (
    Invoice, InvoiceItem, PaymentMethod, PaymentStatus,
)
from petmarket.billing.sequence import (
    SequenceAllocator, format_invoice_number, period_key_for,
)
from petmarket.billing.store import LedgerStore
from petmarket.catalog.lookup import ProductNotFound, SqlCatalog
from petmarket.utils.money import apply_basis_points

logger = logging.getLogger(__name__)

MAX_COMMIT_ATTEMPTS = 2
PAYMENT_METHODS = tuple(m.value for m in PaymentMethod)
CREATABLE_STATUSES = (PaymentStatus.paid.value, PaymentStatus.pending.value)


# ── Request / result types ────────────────────────────────────────

@dataclass
class LineItemRequest:
    product_ref:   int
    quantity:      int
    unit_price:    Optional[int] = None   # price the customer was shown; informational
    line_discount: int = 0


@dataclass
class CheckoutRequest:
    shop_ref:       int
    created_by_ref: int
    customer_name:  str
    customer_phone: str
    payment_method: str
    items:          List[LineItemRequest] = field(default_factory=list)
    customer_email: Optional[str] = None
    tax:            Optional[int] = None
    tax_rate_bp:    Optional[int] = None   # basis points of subtotal, 1500 = 15%
    discount:       int = 0
    payment_status: str = PaymentStatus.paid.value
    notes:          Optional[str] = None


@dataclass(frozen=True)
class PricedLine:
    product_ref:   int
    quantity:      int
    unit_price:    int
    line_discount: int = 0

    @property
    def gross(self) -> int:
        return self.unit_price * self.quantity

    @property
    def net(self) -> int:
        return self.gross - self.line_discount


@dataclass(frozen=True)
class Totals:
    subtotal: int
    tax:      int
    discount: int
    total:    int


# ── Pure helpers ──────────────────────────────────────────────────

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_checkout(request: CheckoutRequest) -> None:
    """
    Check everything that can be checked without the catalog.

    Raises InvalidAmount when any line or order amount is wrong (including
    an empty cart), otherwise InvalidRequest for missing or malformed fields.
    `details['fields']` maps field paths to messages.
    """
    amount_errors = {}
    field_errors = {}

    if not request.items:
        amount_errors['items'] = 'At least one line item is required.'
    for i, item in enumerate(request.items):
        path = f'items[{i}]'
        if not _is_int(item.quantity) or item.quantity < 1:
            amount_errors[f'{path}.quantity'] = 'Quantity must be a positive whole number.'
        if item.unit_price is not None and (not _is_int(item.unit_price) or item.unit_price < 0):
            amount_errors[f'{path}.unitPrice'] = 'Unit price must be a non-negative amount in minor units.'
        if not _is_int(item.line_discount) or item.line_discount < 0:
            amount_errors[f'{path}.lineDiscount'] = 'Line discount must be a non-negative amount in minor units.'
        if item.product_ref is None or item.product_ref == '':
            field_errors[f'{path}.productRef'] = 'Product reference is required.'

    if request.tax is not None and request.tax_rate_bp is not None:
        amount_errors['tax'] = 'Supply either tax or taxRate, not both.'
    if request.tax is not None and (not _is_int(request.tax) or request.tax < 0):
        amount_errors['tax'] = 'Tax must be a non-negative amount in minor units.'
    if request.tax_rate_bp is not None and (not _is_int(request.tax_rate_bp) or request.tax_rate_bp < 0):
        amount_errors['taxRate'] = 'Tax rate must be a non-negative number of basis points.'
    if not _is_int(request.discount) or request.discount < 0:
        amount_errors['discount'] = 'Discount must be a non-negative amount in minor units.'

    if request.shop_ref is None or request.shop_ref == '':
        field_errors['shopRef'] = 'Shop reference is required.'
    if request.created_by_ref is None or request.created_by_ref == '':
        field_errors['createdByRef'] = 'Creating employee reference is required.'
    if _blank(request.customer_name):
        field_errors['customerName'] = 'Customer name is required.'
    if _blank(request.customer_phone):
        field_errors['customerPhone'] = 'Customer phone is required.'
    if request.customer_email is not None and not isinstance(request.customer_email, str):
        field_errors['customerEmail'] = 'Customer email must be text.'
    if request.payment_method not in PAYMENT_METHODS:
        field_errors['paymentMethod'] = 'Payment method must be one of: ' + ', '.join(PAYMENT_METHODS) + '.'
    if request.payment_status not in CREATABLE_STATUSES:
        field_errors['paymentStatus'] = 'New invoices must be paid or pending.'
    if request.notes is not None and not isinstance(request.notes, str):
        field_errors['notes'] = 'Notes must be text.'

    if amount_errors:
        raise InvalidAmount('Checkout amounts are invalid.', fields={**field_errors, **amount_errors})
    if field_errors:
        raise InvalidRequest('Checkout request is invalid.', fields=field_errors)


def compute_totals(lines: List[PricedLine], tax: Optional[int] = None,
                   tax_rate_bp: Optional[int] = None, discount: int = 0) -> Totals:
    """
    subtotal = Σ(unit_price × quantity) − Σ(line_discount)
    total    = subtotal + tax − discount

    `tax` is a fixed amount; `tax_rate_bp` derives it from the subtotal
    (half-up). Raises InvalidAmount on an empty cart, a bad line or a
    negative total.
    """
    if not lines:
        raise InvalidAmount('At least one line item is required.')

    gross_total = 0
    line_discounts = 0
    for i, line in enumerate(lines):
        if not _is_int(line.quantity) or line.quantity < 1:
            raise InvalidAmount('Quantity must be a positive whole number.', line=i)
        if not _is_int(line.unit_price) or line.unit_price < 0:
            raise InvalidAmount('Unit price must be non-negative.', line=i)
        if not _is_int(line.line_discount) or line.line_discount < 0:
            raise InvalidAmount('Line discount must be non-negative.', line=i)
        if line.line_discount > line.gross:
            raise InvalidAmount(
                'Line discount exceeds the line value.',
                line=i, gross=line.gross, line_discount=line.line_discount,
            )
        gross_total += line.gross
        line_discounts += line.line_discount

    subtotal = gross_total - line_discounts

    if tax is not None and tax_rate_bp is not None:
        raise InvalidAmount('Supply either tax or taxRate, not both.')
    if tax_rate_bp is not None:
        tax = apply_basis_points(subtotal, tax_rate_bp)
    tax = tax or 0
    if not _is_int(tax) or tax < 0:
        raise InvalidAmount('Tax must be non-negative.')
    if not _is_int(discount) or discount < 0:
        raise InvalidAmount('Discount must be non-negative.')

    total = subtotal + tax - discount
    if total < 0:
        raise InvalidAmount(
            'Order discount exceeds the amount due.',
            subtotal=subtotal, tax=tax, discount=discount, total=total,
        )
    return Totals(subtotal=subtotal, tax=tax, discount=discount, total=total)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Assembler ─────────────────────────────────────────────────────

class InvoiceAssembler:
    """
    Validates, prices, numbers and commits one checkout.

    Collaborators are injectable so tests can freeze the clock or knock
    out the counter store.
    """

    def __init__(self, catalog=None, allocator: SequenceAllocator = None,
                 store: LedgerStore = None, clock: Callable[[], datetime] = None,
                 fallback_clock: Callable[[], int] = None,
                 prefix: str = 'INV', width: int = 4):
        self.store = store or LedgerStore()
        self.catalog = catalog or SqlCatalog()
        self.allocator = allocator or SequenceAllocator(self.store)
        self.clock = clock or _utcnow
        self.fallback_clock = fallback_clock or time.time_ns
        self.prefix = prefix
        self.width = width

    @classmethod
    def for_app(cls, **kwargs):
        """Build an assembler using the numbering settings of the current app."""
        kwargs.setdefault('prefix', current_app.config['INVOICE_PREFIX'])
        kwargs.setdefault('width', current_app.config['INVOICE_SEQUENCE_WIDTH'])
        return cls(**kwargs)

    # ── Public API ────────────────────────────────────────────────

    def assemble(self, request: CheckoutRequest) -> Invoice:
        """
        Validate, total, number and persist `request`.

        Raises InvalidRequest / InvalidAmount, StaleCatalogReference,
        OutOfStock (nothing allocated, nothing written) or
        PersistenceConflict (numbers spent, nothing written).
        SequencingUnavailable is absorbed by fallback numbering.
        """
        validate_checkout(request)
        lines = self._price_lines(request)
        totals = compute_totals(
            lines,
            tax=request.tax,
            tax_rate_bp=request.tax_rate_bp,
            discount=request.discount,
        )

        now = self.clock()
        invoice = self._build_invoice(request, lines, totals, now)

        for attempt in range(1, MAX_COMMIT_ATTEMPTS + 1):
            invoice.invoice_number, invoice.fallback_numbered = self._draw_number(now)
            try:
                saved = self.store.create_invoice(invoice)
            except DuplicateInvoiceNumber as exc:
                logger.error(
                    f"Invoice number collision on {invoice.invoice_number} "
                    f"(attempt {attempt}/{MAX_COMMIT_ATTEMPTS})"
                )
                if attempt == MAX_COMMIT_ATTEMPTS:
                    raise PersistenceConflict(
                        'The invoice could not be saved. Please submit the checkout again.',
                    ) from exc
                continue

            logger.info(
                f"Invoice {saved.invoice_number} created for shop {saved.shop_id} "
                f"by employee {saved.created_by_id} | total={saved.total}"
            )
            return saved

    # ── Steps ─────────────────────────────────────────────────────

    def _price_lines(self, request: CheckoutRequest) -> List[PricedLine]:
        """Replace client prices with catalog prices and check stock."""
        lines = []
        entries = {}
        wanted = defaultdict(int)

        for item in request.items:
            entry = entries.get(item.product_ref)
            if entry is None:
                try:
                    entry = self.catalog.get_price(item.product_ref)
                except ProductNotFound as exc:
                    raise StaleCatalogReference(
                        'A product in the cart no longer exists. Please reload the cart.',
                        product_ref=item.product_ref,
                    ) from exc
                if entry.shop_ref != request.shop_ref or not entry.is_active:
                    raise StaleCatalogReference(
                        'A product in the cart is no longer sold by this shop. Please reload the cart.',
                        product_ref=item.product_ref,
                    )
                entries[item.product_ref] = entry

            if item.unit_price is not None and item.unit_price != entry.unit_price:
                logger.warning(
                    f"Cart price {item.unit_price} for product {item.product_ref} "
                    f"replaced by catalog price {entry.unit_price}"
                )

            wanted[item.product_ref] += item.quantity
            lines.append(PricedLine(
                product_ref=entry.product_ref,
                quantity=item.quantity,
                unit_price=entry.unit_price,
                line_discount=item.line_discount,
            ))

        for product_ref, quantity in wanted.items():
            entry = entries[product_ref]
            if not entry.in_stock or entry.stock < quantity:
                raise OutOfStock(
                    'Insufficient stock for a product in the cart.',
                    product_ref=product_ref, available=entry.stock, requested=quantity,
                )
        return lines

    def _build_invoice(self, request, lines, totals, now) -> Invoice:
        created_at = now.astimezone(timezone.utc).replace(tzinfo=None) if now.tzinfo else now
        return Invoice(
            shop_id=request.shop_ref,
            created_by_id=request.created_by_ref,
            customer_name=request.customer_name.strip(),
            customer_phone=request.customer_phone.strip(),
            customer_email=(request.customer_email or '').strip() or None,
            subtotal=totals.subtotal,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            payment_method=PaymentMethod(request.payment_method),
            payment_status=PaymentStatus(request.payment_status),
            notes=request.notes,
            created_at=created_at,
            updated_at=created_at,
            items=[
                InvoiceItem(
                    position=position,
                    product_id=line.product_ref,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_discount=line.line_discount,
                )
                for position, line in enumerate(lines)
            ],
        )

    def _draw_number(self, now: datetime):
        """Return (invoice_number, fallback_numbered)."""
        period_key = period_key_for(now)
        try:
            sequence = self.allocator.allocate(period_key)
        except SequencingUnavailable:
            number = f"{self.prefix}-{self.fallback_clock() // 1000}"
            logger.warning(f"Sequencing unavailable; fallback-numbered invoice {number}")
            return number, True
        return format_invoice_number(period_key, sequence, self.prefix, self.width), False
