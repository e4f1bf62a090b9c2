import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import DependencyFailure, SigningError

logger = logging.getLogger(__name__)


def signing_exception_handler(exc, context):
    """Render domain and framework errors as ``{'error': ..., 'code': ...}``."""
    if isinstance(exc, SigningError):
        if isinstance(exc, DependencyFailure):
            logger.error(f"Dependency failure in {context.get('view').__class__.__name__}: {exc.message}")
        body = {'error': exc.message, 'code': exc.code}
        if exc.details:
            body['details'] = exc.details
        return Response(body, status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        return Response(
            {'error': '; '.join(exc.messages), 'code': 'validation_error'},
            status=status.HTTP_400_BAD_REQUEST
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, DRFValidationError):
        response.data = {
            'error': 'Invalid request',
            'code': 'validation_error',
            'details': response.data,
        }
    elif isinstance(response.data, dict) and 'detail' in response.data:
        response.data = {
            'error': str(response.data['detail']),
            'code': getattr(response.data['detail'], 'code', 'error'),
        }
    return response
