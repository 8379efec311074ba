import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .metrics import PrometheusMetrics

logger = logging.getLogger(__name__)


def _error_message(detail):
    """Flatten a DRF error detail (str, list or dict) into one message"""
    if isinstance(detail, dict):
        return '; '.join(f"{key}: {_error_message(value)}" for key, value in detail.items())
    if isinstance(detail, (list, tuple)):
        return '; '.join(_error_message(item) for item in detail)
    return str(detail)


def api_exception_handler(exc, context):
    """
    Fallback handler for every API view.

    DRF exceptions keep their status code with the body reduced to
    {'error': message}. Anything else, store failures included, is logged and
    answered with a generic 500.
    """
    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data
        if isinstance(detail, dict) and 'detail' in detail:
            detail = detail['detail']
        response.data = {'error': _error_message(detail)}
        return response

    request = context.get('request')
    path = request.path if request is not None else '<unknown>'
    logger.error(f"Unexpected error occurred while calling {path}: {exc}", exc_info=exc)
    if request is not None:
        PrometheusMetrics.track_request_metrics(request, exception=exc)
    return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
