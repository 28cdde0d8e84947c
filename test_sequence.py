"""
test_sequence.py — Invoice sequence allocation.
Run: pytest test_sequence.py -v
"""
import threading
from datetime import datetime, timezone, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import Update, insert
from sqlalchemy.exc import OperationalError

from petmarket import create_app, db
from petmarket.billing.errors import InvalidPeriodKey, SequencingUnavailable
from petmarket.billing.models import SequenceCounter
from petmarket.billing.sequence import (
    SequenceAllocator, format_invoice_number, period_key_for, validate_period_key,
)
from petmarket.billing.store import LedgerStore


class UnreachableStore(LedgerStore):
    """A counter store whose database is down."""

    def increment(self, key):
        raise OperationalError('UPDATE sequence_counters', {}, ConnectionRefusedError('connection refused'))


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """File-backed SQLite so every thread gets its own connection."""
    app = create_app('testing', config_overrides={
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{tmp_path / "sequence.db"}',
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'timeout': 30, 'check_same_thread': False},
        },
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


# ── Formatting and period keys ────────────────────────────────────

def test_format_invoice_number_pads_to_four_digits():
    assert format_invoice_number('2501', 1) == 'INV-2501-0001'
    assert format_invoice_number('2501', 42) == 'INV-2501-0042'
    assert format_invoice_number('2501', 9999) == 'INV-2501-9999'


def test_format_invoice_number_widens_past_9999():
    assert format_invoice_number('2501', 10000) == 'INV-2501-10000'


def test_period_key_uses_utc():
    # 00:30 on Feb 1st in UTC+6 is still January in UTC
    dhaka = timezone(timedelta(hours=6))
    assert period_key_for(datetime(2025, 2, 1, 0, 30, tzinfo=dhaka)) == '2501'
    assert period_key_for(datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc)) == '2512'
    assert period_key_for(datetime(2030, 7, 4)) == '3007'


@pytest.mark.parametrize('key', ['2501', '0001', '9912'])
def test_valid_period_keys(key):
    assert validate_period_key(key) == key


@pytest.mark.parametrize('key', ['2513', '2500', '251', '25011', 'ab01', '', None, 2501])
def test_malformed_period_keys_rejected(key):
    with pytest.raises(InvalidPeriodKey):
        validate_period_key(key)


# ── Allocation ────────────────────────────────────────────────────

def test_first_allocation_of_a_period_is_one(app):
    allocator = SequenceAllocator()
    assert allocator.last_allocated('2501') == 0
    assert allocator.allocate('2501') == 1
    assert allocator.allocate('2501') == 2
    assert allocator.last_allocated('2501') == 2


def test_periods_are_counted_independently(app):
    allocator = SequenceAllocator()
    assert allocator.allocate('2501') == 1
    assert allocator.allocate('2501') == 2
    assert allocator.allocate('2502') == 1
    assert allocator.allocate('2501') == 3


def test_counter_row_created_lazily(app):
    assert db.session.get(SequenceCounter, 'invoice:2503') is None
    SequenceAllocator().allocate('2503')
    row = db.session.get(SequenceCounter, 'invoice:2503')
    assert row is not None
    assert row.last_value == 1


def test_allocation_is_committed_immediately(app):
    allocator = SequenceAllocator()
    allocator.allocate('2501')
    # Rolling back the caller's session must not give the number back
    db.session.rollback()
    assert allocator.allocate('2501') == 2


class RacingConnection:
    """
    Wraps a connection so that another worker creates the counter row right
    after our UPDATE found nothing to bump.
    """

    def __init__(self, conn, key):
        self._conn = conn
        self._key = key
        self._raced = False

    def execute(self, stmt, *args, **kwargs):
        if not self._raced and isinstance(stmt, Update):
            self._raced = True
            self._conn.execute(stmt, *args, **kwargs)
            self._conn.execute(
                insert(SequenceCounter.__table__).values(name=self._key, last_value=1)
            )
            return SimpleNamespace(rowcount=0)
        return self._conn.execute(stmt, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._conn, name)


def test_row_locked_increment_creates_then_bumps(app):
    table = SequenceCounter.__table__
    with db.engine.begin() as conn:
        assert LedgerStore._increment_locked(conn, table, 'invoice:2504') == 1
    with db.engine.begin() as conn:
        assert LedgerStore._increment_locked(conn, table, 'invoice:2504') == 2


def test_row_locked_increment_survives_lost_first_use_race(app):
    table = SequenceCounter.__table__
    with db.engine.begin() as conn:
        value = LedgerStore._increment_locked(RacingConnection(conn, 'invoice:2505'), table, 'invoice:2505')

    # The concurrent creator holds 1; the loser gets the next value
    assert value == 2
    assert SequenceAllocator().last_allocated('2505') == 2


def test_malformed_period_key_consumes_nothing(app):
    allocator = SequenceAllocator()
    with pytest.raises(InvalidPeriodKey):
        allocator.allocate('25-1')
    assert SequenceCounter.query.count() == 0


def test_unreachable_store_raises_sequencing_unavailable(app):
    allocator = SequenceAllocator(UnreachableStore())
    with pytest.raises(SequencingUnavailable) as exc:
        allocator.allocate('2501')
    assert isinstance(exc.value.__cause__, OperationalError)


def test_concurrent_allocations_are_distinct_and_consecutive(file_app):
    """
    N threads hammer the same period. Every number must be unique and
    together they must be exactly prior+1 … prior+N.
    """
    store = LedgerStore(engine=db.engine)
    allocator = SequenceAllocator(store)

    prior = 0
    for _ in range(3):
        prior = allocator.allocate('2501')

    n_threads = 16
    per_thread = 5
    barrier = threading.Barrier(n_threads)
    results = []
    errors = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        for _ in range(per_thread):
            try:
                value = allocator.allocate('2501')
            except Exception as exc:  # collected and asserted below
                with lock:
                    errors.append(exc)
                continue
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    total = n_threads * per_thread
    assert errors == []
    assert len(results) == total
    assert len(set(results)) == total
    assert sorted(results) == list(range(prior + 1, prior + total + 1))
    assert allocator.last_allocated('2501') == prior + total
