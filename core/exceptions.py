"""Domain errors shared by the scheduling and billing apps.

Each error carries a machine-readable code, the offending field when there
is one, and structured details, so API callers can react programmatically
(e.g. offer another slot after a scheduling conflict).
"""
import logging
from contextlib import contextmanager

from django.db import DatabaseError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base exception for domain rule violations."""

    status_code = 400
    default_code = 'DOMAIN_ERROR'

    def __init__(self, message, *, code=None, field=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.field = field
        self.details = details or {}

    def to_dict(self):
        data = {
            'success': False,
            'code': self.code,
            'message': self.message,
        }
        if self.field:
            data['field'] = self.field
        if self.details:
            data['details'] = self.details
        return data


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    status_code = 404
    default_code = 'NOT_FOUND'


class ConflictError(DomainError):
    """Operation collides with the current state of the data."""

    status_code = 409
    default_code = 'CONFLICT'


class SchedulingConflictError(ConflictError):
    """Proposed appointment overlaps an existing one for the same practitioner."""

    default_code = 'APPOINTMENT_CONFLICT'

    def __init__(self, message, conflicts=(), **kwargs):
        details = kwargs.pop('details', None) or {}
        details.setdefault('conflicting_appointments', [
            {
                'id': appointment.pk,
                'appointment_number': appointment.appointment_number,
                'appointment_date': appointment.appointment_date.isoformat(),
                'start_time': appointment.start_time.strftime('%H:%M'),
                'end_time': appointment.end_time.strftime('%H:%M'),
                'duration_minutes': appointment.duration_minutes,
            }
            for appointment in conflicts
        ])
        super().__init__(message, details=details, **kwargs)
        self.conflicts = list(conflicts)


class InvalidTransitionError(ConflictError):
    """Requested status change is not allowed from the current status."""

    default_code = 'INVALID_STATE_TRANSITION'


class BusinessValidationError(DomainError):
    """Input is well-formed but breaks a domain rule (amount, duration, ...)."""

    default_code = 'VALIDATION_ERROR'


class DataAccessError(DomainError):
    """The store could not be reached or a query failed."""

    status_code = 500
    default_code = 'DATA_ACCESS_ERROR'

    def __init__(self, message='A database error occurred. Please try again later.', **kwargs):
        super().__init__(message, **kwargs)


@contextmanager
def data_access(operation):
    """
    Translate database failures raised inside the block into DataAccessError.

    The original error is logged with the operation context; callers only
    ever see the generic message.
    """
    try:
        yield
    except DatabaseError as exc:
        logger.exception(f"Database error while {operation}")
        raise DataAccessError(details={'operation': operation}) from exc
