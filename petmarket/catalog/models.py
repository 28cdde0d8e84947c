from datetime import datetime
from petmarket import db


class Shop(db.Model):
    """A registered pet-supply shop on the marketplace."""
    __tablename__ = 'shops'

    id         = db.Column(db.Integer, primary_key=True)
    name       = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Shop {self.id} {self.name!r}>"


class Product(db.Model):
    """A product listed by a shop. `price` is the authoritative selling price."""
    __tablename__ = 'products'

    id         = db.Column(db.Integer, primary_key=True)
    shop_id    = db.Column(db.Integer, db.ForeignKey('shops.id'), nullable=False, index=True)
    name       = db.Column(db.String(200), nullable=False, index=True)
    price      = db.Column(db.Numeric(10, 2), nullable=False)
    stock      = db.Column(db.Integer, nullable=False, default=0)
    is_active  = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='check_stock_non_negative'),
        db.CheckConstraint('price >= 0', name='check_price_non_negative'),
    )

    shop = db.relationship('Shop', backref=db.backref('products', lazy='select'))

    def __repr__(self):
        return f"<Product {self.id} {self.name!r}>"
