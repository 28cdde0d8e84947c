"""
petmarket/billing/sequence.py
-----------------------------
Concurrency-safe invoice sequence allocation.

Format:  INV-YYMM-NNNN
Example: INV-2501-0001, INV-2501-0002, … INV-2501-9999, INV-2501-10000

Algorithm
─────────
1. The period key is the UTC year/month of the checkout, e.g. "2501".
2. The counter "invoice:2501" lives in sequence_counters and is only ever
   touched by LedgerStore.increment(), an atomic increment-and-fetch.
   The first increment of a period creates the row at 0, so numbering
   starts at 1.
3. The increment commits immediately. A number handed out is spent even
   if the invoice that was going to carry it never commits: gaps are
   possible, duplicates are not.

Why not COUNT(invoices) + 1?
────────────────────────────
Two concurrent checkouts both count N and both format N+1. One of them
then dies on the UNIQUE constraint, or worse, on a database without one,
both commit.
"""
import logging
import re
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from petmarket.billing.errors import InvalidPeriodKey, SequencingUnavailable
from petmarket.billing.store import LedgerStore

logger = logging.getLogger(__name__)

COUNTER_KEY_PREFIX = 'invoice:'

_PERIOD_KEY_RE = re.compile(r'^\d{2}(0[1-9]|1[0-2])$')


def period_key_for(moment: datetime) -> str:
    """UTC year/month of `moment` as YYMM. Naive datetimes are taken as UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime('%y%m')


def validate_period_key(period_key) -> str:
    if not isinstance(period_key, str) or not _PERIOD_KEY_RE.match(period_key):
        raise InvalidPeriodKey(
            f'Period key must be YYMM, got {period_key!r}.',
            period_key=period_key,
        )
    return period_key


def format_invoice_number(period_key: str, sequence: int,
                          prefix: str = 'INV', width: int = 4) -> str:
    """
    "2501", 7 → "INV-2501-0007".
    Sequences past 10**width - 1 widen the field instead of wrapping.
    """
    return f"{prefix}-{period_key}-{sequence:0{width}d}"


class SequenceAllocator:
    """Hands out per-period invoice sequence numbers."""

    def __init__(self, store: LedgerStore = None):
        self.store = store or LedgerStore()

    def allocate(self, period_key: str) -> int:
        """
        Return the next sequence number for `period_key`.

        Raises:
            InvalidPeriodKey       — period_key is not YYMM
            SequencingUnavailable  — the counter store could not be reached
        """
        validate_period_key(period_key)
        key = COUNTER_KEY_PREFIX + period_key
        try:
            value = self.store.increment(key)
        except SQLAlchemyError as exc:
            logger.error(f"Sequence allocation failed for {key}: {exc}")
            raise SequencingUnavailable(
                f'Invoice sequence for period {period_key} is unavailable.',
                period_key=period_key,
            ) from exc
        logger.debug(f"Allocated {key} -> {value}")
        return value

    def last_allocated(self, period_key: str) -> int:
        validate_period_key(period_key)
        return self.store.current_value(COUNTER_KEY_PREFIX + period_key)
