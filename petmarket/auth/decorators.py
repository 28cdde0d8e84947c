"""
petmarket/auth/decorators.py
----------------------------
Route-protection decorator for billing endpoints.
Usage:
    from petmarket.auth.decorators import employee_required, current_identity

    @billing.route('/invoices', methods=['POST'])
    @employee_required
    def create_invoice():
        shop_id, employee_id = current_identity()
        ...
"""
from functools import wraps
from flask import session, jsonify


def employee_required(f):
    """
    Reject the request with 401 unless the session carries both
    'employee_id' and 'shop_id'.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'employee_id' not in session or 'shop_id' not in session:
            return jsonify(
                error='unauthenticated',
                message='Employee session required.',
                retryable=False,
            ), 401
        return f(*args, **kwargs)
    return decorated


def current_identity():
    """Return (shop_id, employee_id) for the authenticated employee."""
    return session['shop_id'], session['employee_id']
