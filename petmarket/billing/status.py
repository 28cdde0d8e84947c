"""
petmarket/billing/status.py
---------------------------
The only post-commit change an invoice accepts: payment status and notes.

Invoices are never deleted; voiding one is a transition to `cancelled`,
which keeps its number spent.

    pending ──► paid ──► cancelled
       └────────────────────▲
"""
import logging

from petmarket import db
from petmarket.billing.errors import InvalidRequest, InvalidStatusTransition, InvoiceNotFound
from petmarket.billing.models import Invoice, PaymentStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PaymentStatus.pending:   {PaymentStatus.paid, PaymentStatus.cancelled},
    PaymentStatus.paid:      {PaymentStatus.cancelled},
    PaymentStatus.cancelled: set(),
}

UNCHANGED = object()


def update_status(invoice_id, shop_id, status=None, notes=UNCHANGED) -> Invoice:
    """
    Move invoice `invoice_id` of shop `shop_id` to `status` and/or replace
    its notes. Setting the current status again is a no-op. Last write wins.
    """
    invoice = Invoice.query.filter_by(id=invoice_id, shop_id=shop_id).first()
    if invoice is None:
        raise InvoiceNotFound(f'Invoice {invoice_id} not found.', invoice_id=invoice_id)

    if status is None and notes is UNCHANGED:
        raise InvalidRequest('Nothing to update: supply paymentStatus and/or notes.')

    if status is not None:
        try:
            target = PaymentStatus(status)
        except ValueError:
            raise InvalidRequest(
                f'Unknown payment status {status!r}.',
                fields={'paymentStatus': 'Must be one of: ' + ', '.join(s.value for s in PaymentStatus)},
            ) from None

        current = invoice.payment_status
        if target != current:
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidStatusTransition(
                    f'Cannot change invoice {invoice.invoice_number} from {current.value} to {target.value}.',
                    current=current.value, requested=target.value,
                )
            invoice.payment_status = target
            logger.info(f"Invoice {invoice.invoice_number}: {current.value} -> {target.value}")

    if notes is not UNCHANGED:
        if notes is not None and not isinstance(notes, str):
            raise InvalidRequest('Notes must be text.', fields={'notes': 'Must be text or null.'})
        invoice.notes = notes

    db.session.commit()
    return invoice
