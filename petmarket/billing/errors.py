"""
petmarket/billing/errors.py
---------------------------
Checkout error taxonomy.

Each error carries a stable `code`, the HTTP status the billing routes
answer with, and whether re-submitting the same checkout can succeed.
"""


class CheckoutError(Exception):
    code        = 'checkout_error'
    http_status = 400
    retryable   = False

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {
            'error':     self.code,
            'message':   self.message,
            'retryable': self.retryable,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class InvalidRequest(CheckoutError):
    """Malformed or missing input. The caller must correct it."""
    code = 'invalid_request'


class InvalidAmount(InvalidRequest):
    """Quantities, prices, discounts or the resulting total are invalid."""
    code = 'invalid_amount'


class InvalidPeriodKey(InvalidRequest):
    code = 'invalid_period_key'


class StaleCatalogReference(CheckoutError):
    """A cart line points at a product that can no longer be sold."""
    code        = 'stale_catalog_reference'
    http_status = 409


class OutOfStock(CheckoutError):
    code        = 'out_of_stock'
    http_status = 409


class SequencingUnavailable(CheckoutError):
    """The sequence counter store could not hand out a number."""
    code        = 'sequencing_unavailable'
    http_status = 503
    retryable   = True


class DuplicateInvoiceNumber(CheckoutError):
    """The invoice number is already taken in the store."""
    code        = 'duplicate_invoice_number'
    http_status = 409
    retryable   = True


class PersistenceConflict(CheckoutError):
    """The invoice could not be committed; the whole checkout must be re-submitted."""
    code        = 'persistence_conflict'
    http_status = 503
    retryable   = True


class InvoiceNotFound(CheckoutError):
    code        = 'invoice_not_found'
    http_status = 404


class InvalidStatusTransition(CheckoutError):
    code        = 'invalid_status_transition'
    http_status = 409
