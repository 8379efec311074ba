from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET
from rest_framework.decorators import api_view
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
import logging
from bson import ObjectId
from datetime import date, datetime
from pymongo.errors import PyMongoError

from . import database
from .metrics import PrometheusMetrics

logger = logging.getLogger(__name__)

# Helper function to serialize MongoDB documents
def serialize_document(doc):
    """Convert MongoDB document to JSON-serializable dict"""
    if doc is None:
        return None

    # Handle ObjectId
    if '_id' in doc:
        doc['id'] = str(doc['_id'])
        del doc['_id']

    # Handle datetime objects
    for key, value in doc.items():
        if isinstance(value, (datetime, date)):
            doc[key] = value.isoformat()
        elif isinstance(value, ObjectId):
            doc[key] = str(value)

    return doc

def query_int(request, name):
    """
    Read a required integer query parameter, raising a 400 when it is
    missing or malformed
    """
    value = request.query_params.get(name)
    if value is None or not value.strip():
        raise ValidationError(f"Missing query parameter '{name}'")
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Query parameter '{name}' must be an integer, got '{value}'")

@api_view(['GET'])
def api_root(request):
    """
    API root with links to available endpoints
    """
    return Response({
        'projects': '/api/projects',
        'project': '/api/project?id=<projectId>',
        'entries': '/api/entries?id=<projectId>',
        'entry': '/api/entry?projectId=<projectId>&entryId=<entryId>',
        'entryHistory': '/api/entryHistory?projectId=<projectId>&entryId=<entryId>',
        'piechartData': '/api/piechartData?projectId=<projectId>',
        'statusPiechart': '/api/statusPiechart?projectId=<projectId>',
        'dataset': '/api/dataset?id=<projectId>',
        'metrics': '/metrics',
        'health': '/health',
    })

@require_GET
def health_check(request):
    """
    Health check endpoint, reports 503 while MongoDB is unreachable
    """
    try:
        database.ping()
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {str(e)}")
        PrometheusMetrics.update_mongodb_status(False)
        return HttpResponse("MongoDB unavailable", content_type="text/plain", status=503)

    PrometheusMetrics.update_mongodb_status(True)
    return HttpResponse("OK", content_type="text/plain")

def not_found(request, exception=None):
    """JSON replacement for Django's default 404 page"""
    logger.error(f"Route not found to {request.path}")
    return JsonResponse({'error': 'Not found'}, status=404)
