# tasktracker/exceptions.py
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import DatabaseError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class NotFoundOrForbidden(exceptions.APIException):
    """
    The entity does not exist or the caller is not a member of its team.

    Both cases produce the same response so that callers cannot probe for
    teams or tasks they are not allowed to see.
    """
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class Forbidden(exceptions.APIException):
    """The entity is visible to the caller but the action is not allowed."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state.'
    default_code = 'conflict'


class CredentialError(exceptions.APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid email or password.'
    default_code = 'invalid_credentials'


def _first_code(codes, default):
    if isinstance(codes, str):
        return codes
    if isinstance(codes, dict):
        codes = list(codes.values())
    for code in codes or []:
        found = _first_code(code, None)
        if found:
            return found
    return default


def api_exception_handler(exc, context):
    """
    DRF's default handler plus a stable ``code`` on every error body.

    Store failures become a generic 500 so driver details never reach the client.
    """
    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.exception(f"Database error in {view.__class__.__name__}: {exc}")
        return Response(
            {'detail': 'Internal server error.', 'code': 'internal_error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        return None

    code = _first_code(exc.get_codes(), exc.default_code)
    if isinstance(response.data, dict):
        response.data.setdefault('code', code)
    else:
        response.data = {'detail': response.data, 'code': code}
    return response
