from flask import request, jsonify, current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from petmarket import db
from petmarket.billing import billing
from petmarket.billing.assembler import InvoiceAssembler
from petmarket.billing.errors import CheckoutError, InvalidRequest, InvoiceNotFound
from petmarket.billing.models import Invoice, PaymentStatus
from petmarket.billing.sequence import validate_period_key
from petmarket.billing.status import update_status, UNCHANGED
from petmarket.billing.validators import parse_checkout_payload
from petmarket.auth.decorators import employee_required, current_identity


# ── ERROR TRANSLATION ─────────────────────────────────────────────

@billing.errorhandler(CheckoutError)
def checkout_error(exc):
    db.session.rollback()
    if exc.http_status >= 500:
        current_app.logger.error(f"Checkout failed ({exc.code}): {exc.message}")
    else:
        current_app.logger.warning(f"Checkout rejected ({exc.code}): {exc.message}")
    return jsonify(exc.to_dict()), exc.http_status


@billing.errorhandler(SQLAlchemyError)
def database_error(exc):
    db.session.rollback()
    current_app.logger.error(f"Billing database error: {exc}")
    return jsonify(
        error='database_error',
        message='A database error occurred. Please try again.',
        retryable=True,
    ), 503


# ── CHECKOUT ──────────────────────────────────────────────────────

@billing.route('/invoices', methods=['POST'])
@employee_required
def create_invoice():
    """
    Finalise a checkout:
      1. Parse the JSON cart
      2. Re-price every line from the catalog
      3. Compute totals in minor units
      4. Draw an invoice number (fallback-numbered if the counter is down)
      5. Commit invoice + items in one transaction
    Returns 201 with the committed invoice.
    """
    shop_id, employee_id = current_identity()
    checkout = parse_checkout_payload(request.get_json(silent=True), shop_id, employee_id)

    invoice = InvoiceAssembler.for_app().assemble(checkout)

    current_app.logger.info(
        f"Checkout completed by employee {employee_id}: {invoice.invoice_number} | Total: {invoice.total}"
    )
    return jsonify(invoice.to_dict()), 201


# ── READ ──────────────────────────────────────────────────────────

@billing.route('/invoices/<int:invoice_id>')
@employee_required
def get_invoice(invoice_id):
    shop_id, _ = current_identity()
    invoice = Invoice.query.filter_by(id=invoice_id, shop_id=shop_id).first()
    if invoice is None:
        raise InvoiceNotFound(f'Invoice {invoice_id} not found.', invoice_id=invoice_id)
    return jsonify(invoice.to_dict())


@billing.route('/invoices')
@employee_required
def list_invoices():
    """
    Invoices of the caller's shop, newest first.

    Query args:
        status   — paid | pending | cancelled
        period   — YYMM, sequence-numbered invoices of that month
        fallback — 1 to list only fallback-numbered invoices (reconciliation)
        limit    — default 50, max 200
    """
    shop_id, _ = current_identity()
    query = Invoice.query.filter(Invoice.shop_id == shop_id)

    status = request.args.get('status')
    if status:
        try:
            query = query.filter(Invoice.payment_status == PaymentStatus(status))
        except ValueError:
            raise InvalidRequest(f'Unknown payment status {status!r}.') from None

    period = request.args.get('period')
    if period:
        validate_period_key(period)
        prefix = current_app.config['INVOICE_PREFIX']
        query = query.filter(Invoice.invoice_number.like(f'{prefix}-{period}-%'))

    if request.args.get('fallback') in ('1', 'true', 'yes'):
        query = query.filter(Invoice.fallback_numbered.is_(True))

    limit = max(1, min(request.args.get('limit', 50, type=int) or 50, 200))
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()
    return jsonify([inv.to_dict() for inv in invoices])


@billing.route('/invoices/stats')
@employee_required
def invoice_stats():
    """
    Dashboard figures for the caller's shop. Money is in minor units;
    sales and average count paid invoices only.
    """
    shop_id, _ = current_identity()

    rows = db.session.query(
        Invoice.payment_status, func.count(Invoice.id), func.sum(Invoice.total)
    ).filter(Invoice.shop_id == shop_id).group_by(Invoice.payment_status).all()

    by_status = {s.value: {'count': 0, 'total': 0} for s in PaymentStatus}
    for status, count, total in rows:
        by_status[status.value] = {'count': count, 'total': int(total or 0)}

    fallback_count = db.session.query(func.count(Invoice.id)).filter(
        Invoice.shop_id == shop_id,
        Invoice.fallback_numbered.is_(True),
    ).scalar() or 0

    paid = by_status[PaymentStatus.paid.value]
    # Integer half-up mean
    average = (2 * paid['total'] + paid['count']) // (2 * paid['count']) if paid['count'] else 0

    return jsonify({
        'totalInvoices':       sum(s['count'] for s in by_status.values()),
        'totalSales':          paid['total'],
        'averageInvoiceValue': average,
        'byStatus':            by_status,
        'fallbackNumbered':    fallback_count,
    })


# ── STATUS TRANSITION ─────────────────────────────────────────────

@billing.route('/invoices/<int:invoice_id>/status', methods=['PATCH'])
@employee_required
def change_status(invoice_id):
    shop_id, employee_id = current_identity()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object.')

    invoice = update_status(
        invoice_id,
        shop_id,
        status=data.get('paymentStatus'),
        notes=data['notes'] if 'notes' in data else UNCHANGED,
    )
    current_app.logger.info(
        f"Invoice {invoice.invoice_number} updated by employee {employee_id}: "
        f"status={invoice.payment_status.value}"
    )
    return jsonify(invoice.to_dict())
