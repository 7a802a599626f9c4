"""Period-scoped numbering for appointments, invoices, payments and plans."""
import logging

from django.db import IntegrityError, transaction

from .models import NumberSequence
from .utils import get_local_today

logger = logging.getLogger(__name__)


def period_for(day):
    """Counter period for a date: 'YYYYMM'"""
    return f"{day.year}{day.month:02d}"


def next_number(scope, prefix, on=None, pad_width=4):
    """
    Allocate the next number for `scope` in the month of `on` (default: today).

    Uses select_for_update() on the (scope, month) counter row so concurrent
    creations never receive the same value. Call it inside the transaction
    that inserts the numbered row so a rollback also releases the number.

    Returns:
        Formatted number, e.g. next_number('invoice', 'INV') -> "INV2025030001"
    """
    day = on or get_local_today()
    period = period_for(day)

    with transaction.atomic():
        try:
            sequence = NumberSequence.objects.select_for_update().get(scope=scope, period=period)
        except NumberSequence.DoesNotExist:
            try:
                # Savepoint: a concurrent creator may win the unique constraint
                with transaction.atomic():
                    NumberSequence.objects.create(scope=scope, period=period)
            except IntegrityError:
                logger.debug(f"Sequence {scope}/{period} created concurrently, reusing it")
            sequence = NumberSequence.objects.select_for_update().get(scope=scope, period=period)

        sequence.last_value += 1
        sequence.save(update_fields=['last_value', 'updated_at'])

    return f"{prefix}{period}{sequence.last_value:0{pad_width}d}"
