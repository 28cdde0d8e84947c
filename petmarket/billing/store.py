"""
petmarket/billing/store.py
--------------------------
The two storage primitives invoice numbering depends on.

increment(key)
    Atomic increment-and-fetch of a named counter, committed in its own
    transaction. On PostgreSQL and SQLite this is a single upsert:

        INSERT INTO sequence_counters (name, last_value) VALUES (:name, 1)
        ON CONFLICT (name) DO UPDATE SET last_value = sequence_counters.last_value + 1
        RETURNING last_value

    The database serialises concurrent upserts on the same row, so two
    callers can never read the same value. Other dialects fall back to an
    UPDATE (which takes the row lock) followed by a read in the same
    transaction.

    The counter transaction is never joined with the invoice transaction:
    once a value is returned it is spent, even if the invoice insert fails.

create_invoice(invoice)
    Insert invoice + items in one transaction. A unique violation on
    invoice_number surfaces as DuplicateInvoiceNumber.
"""
from sqlalchemy import select, update, insert as generic_insert
from sqlalchemy.exc import IntegrityError

from petmarket import db
from petmarket.billing.errors import DuplicateInvoiceNumber
from petmarket.billing.models import Invoice, SequenceCounter


def _upsert_insert(dialect_name):
    if dialect_name == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class LedgerStore:
    """Counter and invoice persistence on top of Flask-SQLAlchemy."""

    def __init__(self, session=None, engine=None):
        self._session = session
        self._engine = engine

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @property
    def engine(self):
        return self._engine if self._engine is not None else db.engine

    # ── Counters ──────────────────────────────────────────────────

    def increment(self, key: str) -> int:
        """Increment counter `key` (creating it at 0 first) and return the new value."""
        engine = self.engine
        insert = _upsert_insert(engine.dialect.name)
        table = SequenceCounter.__table__

        with engine.begin() as conn:
            if insert is None:
                return self._increment_locked(conn, table, key)

            stmt = (
                insert(table)
                .values(name=key, last_value=1)
                .on_conflict_do_update(
                    index_elements=[table.c.name],
                    set_={'last_value': table.c.last_value + 1},
                )
                .returning(table.c.last_value)
            )
            return conn.execute(stmt).scalar_one()

    @staticmethod
    def _increment_locked(conn, table, key):
        bump = (
            update(table)
            .where(table.c.name == key)
            .values(last_value=table.c.last_value + 1)
        )
        if conn.execute(bump).rowcount == 0:
            # First use of this key. A concurrent first use loses on the PK;
            # the winner's row now exists, so the loser bumps it instead.
            try:
                with conn.begin_nested():
                    conn.execute(generic_insert(table).values(name=key, last_value=1))
                return 1
            except IntegrityError:
                conn.execute(bump)
        return conn.execute(
            select(table.c.last_value).where(table.c.name == key)
        ).scalar_one()

    def current_value(self, key: str) -> int:
        """Last value handed out for `key`, or 0 if never used. Read-only."""
        value = self.session.execute(
            select(SequenceCounter.last_value).where(SequenceCounter.name == key)
        ).scalar()
        return value or 0

    # ── Invoices ──────────────────────────────────────────────────

    def create_invoice(self, invoice: Invoice) -> Invoice:
        session = self.session
        session.add(invoice)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            number = invoice.invoice_number
            if number and self.invoice_number_taken(number):
                raise DuplicateInvoiceNumber(
                    f'Invoice number {number} is already in use.',
                    invoice_number=number,
                ) from exc
            raise
        return invoice

    def invoice_number_taken(self, number: str) -> bool:
        return self.session.execute(
            select(Invoice.id).where(Invoice.invoice_number == number)
        ).first() is not None
