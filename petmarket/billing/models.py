import enum
from datetime import datetime
from petmarket import db
from petmarket.utils.money import format_minor


class PaymentMethod(enum.Enum):
    cash           = "cash"
    card           = "card"
    mobile_banking = "mobile_banking"


class PaymentStatus(enum.Enum):
    paid      = "paid"
    pending   = "pending"
    cancelled = "cancelled"


class SequenceCounter(db.Model):
    """
    One row per named counter, e.g. "invoice:2501" — the last value handed out.

    Rows are created lazily by the first increment and never deleted.
    Mutated only through LedgerStore.increment(); nothing else may
    read-modify-write `last_value`.
    """
    __tablename__ = 'sequence_counters'

    name       = db.Column(db.String(64), primary_key=True)
    last_value = db.Column(db.BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<SequenceCounter {self.name!r} last_value={self.last_value}>"


class Invoice(db.Model):
    """
    One committed checkout. All money columns are integer minor units.

    Immutable after commit except for payment_status and notes.
    """
    __tablename__ = 'invoices'

    id                = db.Column(db.Integer, primary_key=True)
    invoice_number    = db.Column(db.String(32), unique=True, nullable=True, index=True)
    fallback_numbered = db.Column(db.Boolean, nullable=False, default=False, index=True)
    shop_id           = db.Column(db.Integer, db.ForeignKey('shops.id'), nullable=False, index=True)
    created_by_id     = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    customer_name     = db.Column(db.String(120), nullable=False)
    customer_phone    = db.Column(db.String(32), nullable=False)
    customer_email    = db.Column(db.String(120), nullable=True)
    subtotal          = db.Column(db.BigInteger, nullable=False)
    tax               = db.Column(db.BigInteger, nullable=False, default=0)
    discount          = db.Column(db.BigInteger, nullable=False, default=0)
    total             = db.Column(db.BigInteger, nullable=False)
    payment_method    = db.Column(db.Enum(PaymentMethod), nullable=False)
    payment_status    = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.paid)
    notes             = db.Column(db.Text, nullable=True)
    created_at        = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at        = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.CheckConstraint('subtotal >= 0', name='check_invoice_subtotal_non_negative'),
        db.CheckConstraint('tax >= 0',      name='check_invoice_tax_non_negative'),
        db.CheckConstraint('discount >= 0', name='check_invoice_discount_non_negative'),
        db.CheckConstraint('total >= 0',    name='check_invoice_total_non_negative'),
    )

    # ── Relationships ─────────────────────────────────────────────
    items      = db.relationship('InvoiceItem', backref='invoice', lazy='select',
                                 order_by='InvoiceItem.position',
                                 cascade='all, delete-orphan')
    shop       = db.relationship('Shop', lazy='select')
    created_by = db.relationship('Employee', lazy='select')

    def to_dict(self) -> dict:
        """REST representation; money stays in minor units."""
        return {
            'id':               self.id,
            'invoiceNumber':    self.invoice_number,
            'fallbackNumbered': self.fallback_numbered,
            'shopRef':          self.shop_id,
            'createdByRef':     self.created_by_id,
            'customerName':     self.customer_name,
            'customerPhone':    self.customer_phone,
            'customerEmail':    self.customer_email,
            'items':            [item.to_dict() for item in self.items],
            'subtotal':         self.subtotal,
            'tax':              self.tax,
            'discount':         self.discount,
            'total':            self.total,
            'totalDisplay':     format_minor(self.total),
            'paymentMethod':    self.payment_method.value,
            'paymentStatus':    self.payment_status.value,
            'notes':            self.notes,
            'createdAt':        self.created_at.isoformat() + 'Z' if self.created_at else None,
            'updatedAt':        self.updated_at.isoformat() + 'Z' if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Invoice {self.invoice_number!r} total={format_minor(self.total)}>"


class InvoiceItem(db.Model):
    """
    One line of an invoice. Price is the catalog price at assembly time,
    so later product edits don't alter historical invoices.
    """
    __tablename__ = 'invoice_items'

    id            = db.Column(db.Integer, primary_key=True)
    invoice_id    = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=False, index=True)
    position      = db.Column(db.Integer, nullable=False)
    product_id    = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity      = db.Column(db.Integer, nullable=False)
    unit_price    = db.Column(db.BigInteger, nullable=False)
    line_discount = db.Column(db.BigInteger, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint('quantity >= 1',      name='check_item_quantity_positive'),
        db.CheckConstraint('unit_price >= 0',    name='check_item_price_non_negative'),
        db.CheckConstraint('line_discount >= 0', name='check_item_discount_non_negative'),
    )

    product = db.relationship('Product', lazy='select')

    @property
    def gross(self) -> int:
        return self.unit_price * self.quantity

    @property
    def net(self) -> int:
        return self.gross - self.line_discount

    def to_dict(self) -> dict:
        return {
            'productRef':   self.product_id,
            'quantity':     self.quantity,
            'unitPrice':    self.unit_price,
            'lineDiscount': self.line_discount,
            'lineTotal':    self.net,
        }

    def __repr__(self):
        return f"<InvoiceItem invoice={self.invoice_id} product={self.product_id} qty={self.quantity}>"
