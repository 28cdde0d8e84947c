from flask import Blueprint

billing = Blueprint('billing', __name__)

from petmarket.billing import routes  # noqa: F401, E402
from petmarket.billing import models  # noqa: F401, E402  — registers Invoice/InvoiceItem/SequenceCounter with SQLAlchemy
