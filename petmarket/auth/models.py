from datetime import datetime
from petmarket import db


class Employee(db.Model):
    """A shop staff member who can create invoices."""
    __tablename__ = 'employees'

    id          = db.Column(db.Integer, primary_key=True)
    first_name  = db.Column(db.String(80), nullable=False)
    last_name   = db.Column(db.String(80), nullable=False)
    email       = db.Column(db.String(120), unique=True, nullable=False, index=True)
    shop_id     = db.Column(db.Integer, db.ForeignKey('shops.id'), nullable=False, index=True)
    is_active   = db.Column(db.Boolean, nullable=False, default=True)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    shop = db.relationship('Shop', backref=db.backref('employees', lazy='select'))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee {self.email!r} shop={self.shop_id}>"
