# core/api.py
"""
JSON plumbing shared by the appointment and billing endpoints:
permission checks, body parsing and domain error mapping.
"""
import json
import logging
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.conf import settings
from django.db import DatabaseError
from django.http import JsonResponse

from .exceptions import BusinessValidationError, DomainError
from .utils import parse_date, parse_time

logger = logging.getLogger(__name__)


def error_response(error):
    """Serialize a DomainError with its HTTP status"""
    return JsonResponse(error.to_dict(), status=error.status_code)


def api_view(module, methods=('GET',)):
    """
    Decorate a JSON endpoint.

    - 401 for anonymous users, 403 without the module permission
    - 405 for other HTTP methods
    - request.data holds the parsed JSON body (empty dict for GET)
    - DomainError -> its status code; database failures -> generic 500
    """
    allowed = [m.upper() for m in methods]

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return JsonResponse({'success': False, 'code': 'AUTHENTICATION_REQUIRED',
                                     'message': 'Authentication required'}, status=401)

            if not request.user.has_permission(module):
                return JsonResponse({'success': False, 'code': 'PERMISSION_DENIED',
                                     'message': 'Permission denied'}, status=403)

            if request.method not in allowed:
                return JsonResponse({'success': False, 'code': 'METHOD_NOT_ALLOWED',
                                     'message': 'Method not allowed'}, status=405)

            request.data = {}
            if request.method != 'GET' and request.body:
                try:
                    request.data = json.loads(request.body)
                except json.JSONDecodeError:
                    return JsonResponse({'success': False, 'code': 'INVALID_JSON',
                                         'message': 'Invalid data format'}, status=400)
                if not isinstance(request.data, dict):
                    return JsonResponse({'success': False, 'code': 'INVALID_JSON',
                                         'message': 'Request body must be a JSON object'}, status=400)

            try:
                return view_func(request, *args, **kwargs)
            except DomainError as e:
                if e.status_code >= 500:
                    logger.error(f"{view_func.__name__} failed: {e.message} {e.details}")
                    if not settings.DEBUG:
                        e.details = {}
                return error_response(e)
            except DatabaseError as e:
                logger.exception(f"Database error in {view_func.__name__}")
                body = {
                    'success': False,
                    'code': 'DATA_ACCESS_ERROR',
                    'message': 'A database error occurred. Please try again later.',
                }
                if settings.DEBUG:
                    body['details'] = {'error': str(e)}
                return JsonResponse(body, status=500)

        return wrapper
    return decorator


def require_fields(data, *fields):
    """Raise BusinessValidationError naming the first missing field"""
    for field in fields:
        if data.get(field) in (None, ''):
            raise BusinessValidationError(f"{field} is required", field=field)


def get_date(data, field, required=True):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise BusinessValidationError(f"{field} is required", field=field)
        return None
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise BusinessValidationError('Invalid date format. Use YYYY-MM-DD', field=field)


def get_time(data, field, required=True):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise BusinessValidationError(f"{field} is required", field=field)
        return None
    try:
        return parse_time(value)
    except (TypeError, ValueError):
        raise BusinessValidationError('Invalid time format. Use HH:MM', field=field)


def get_int(data, field, required=True):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise BusinessValidationError(f"{field} is required", field=field)
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessValidationError(f"{field} must be a whole number", field=field)


def get_decimal(data, field, required=True):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise BusinessValidationError(f"{field} is required", field=field)
        return None
    try:
        value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BusinessValidationError(f"{field} must be a number", field=field)
    if not value.is_finite():
        raise BusinessValidationError(f"{field} must be a finite number", field=field)
    return value
