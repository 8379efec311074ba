from django.http import HttpResponse
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework import status
import logging

from databyter.views import serialize_document, query_int
from .models import ProjectManager, EntryManager
from .services import balance_stats, status_stats, export_dataset

logger = logging.getLogger(__name__)


def _not_found(message):
    return Response({'error': message}, status=status.HTTP_404_NOT_FOUND)


# Project endpoints
@api_view(['GET'])
def project_list(request):
    """
    List all projects ordered by projectId
    """
    logger.debug('Retrieving all projects')
    projects = [serialize_document(project) for project in ProjectManager.find_all()]
    return Response({
        'total': len(projects),
        'results': projects
    })

@api_view(['GET', 'DELETE'])
def project_detail(request):
    """
    Get a single project (?id=) or delete one with all its entries (?projectId=)
    """
    if request.method == 'DELETE':
        project_id = query_int(request, 'projectId')
        logger.debug(f'Attempting to delete project {project_id}')
        result = ProjectManager.delete(project_id)
        return Response(result, status=status.HTTP_200_OK)

    project_id = query_int(request, 'id')
    logger.debug(f'Retrieving project with id {project_id}')
    project = ProjectManager.find_by_id(project_id)
    if not project:
        return _not_found(f'Project {project_id} not found')
    return Response({'project': serialize_document(project)})

@api_view(['POST'])
def save_project(request):
    """
    Create a new project from a draft
    """
    logger.debug(f'Attempting to create a new project: {request.data}')
    try:
        project = ProjectManager.create(request.data)
    except ValueError as e:
        logger.warning(f"Rejected project draft: {str(e)}")
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(serialize_document(project), status=status.HTTP_201_CREATED)

# Entry endpoints
@api_view(['GET'])
def entry_list(request):
    """
    Active entries of a project together with the project header
    """
    project_id = query_int(request, 'id')
    logger.debug(f'Retrieving entries of project {project_id}')
    project = ProjectManager.find_by_id(project_id)
    if not project:
        return _not_found(f'Project {project_id} not found')

    entries = [serialize_document(entry) for entry in EntryManager.find_active(project_id)]
    return Response({
        'header': serialize_document(project),
        'total': len(entries),
        'results': entries
    })

@api_view(['POST'])
def add_entry(request):
    """
    Add a new entry (version 0) to a project
    """
    project_id = query_int(request, 'id')
    logger.debug(f'Attempting to add a new entry to project {project_id}')
    try:
        entry = EntryManager.create(project_id, request.data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    if entry is None:
        return _not_found(f'Project {project_id} not found')
    return Response(serialize_document(entry), status=status.HTTP_201_CREATED)

@api_view(['GET', 'PUT', 'DELETE'])
def entry_detail(request):
    """
    Read the active version of an entry, store a new version of it, or delete
    every version
    """
    project_id = query_int(request, 'projectId')
    entry_id = query_int(request, 'entryId')

    if request.method == 'PUT':
        logger.debug(f'Attempting to update entry {project_id}/{entry_id}')
        try:
            entry = EntryManager.update(project_id, entry_id, request.data)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        if entry is None:
            return _not_found(f'Entry {project_id}/{entry_id} has no active version')
        return Response(serialize_document(entry), status=status.HTTP_201_CREATED)

    if request.method == 'DELETE':
        logger.debug(f'Attempting to delete entry {project_id}/{entry_id}')
        return Response(EntryManager.delete(project_id, entry_id), status=status.HTTP_200_OK)

    logger.debug(f'Retrieving entry {project_id}/{entry_id}')
    entry = EntryManager.find_active_one(project_id, entry_id)
    if not entry:
        return _not_found(f'Entry {project_id}/{entry_id} not found')
    return Response({'entry': serialize_document(entry)})

@api_view(['GET'])
def entry_history(request):
    """
    Every version of an entry, newest first
    """
    project_id = query_int(request, 'projectId')
    entry_id = query_int(request, 'entryId')
    logger.debug(f'Retrieving history of entry {project_id}/{entry_id}')
    versions = [serialize_document(entry) for entry in EntryManager.history(project_id, entry_id)]
    return Response({
        'total': len(versions),
        'results': versions
    })

# Analytics endpoints
@api_view(['GET'])
def piechart_data(request):
    """
    Label balance of a project
    """
    project_id = query_int(request, 'projectId')
    logger.debug(f'Retrieving balance stats of project {project_id}')
    try:
        return Response(balance_stats(project_id))
    except LookupError as e:
        return _not_found(str(e))

@api_view(['GET'])
def status_piechart(request):
    """
    Collected versus remaining entries of a project
    """
    project_id = query_int(request, 'projectId')
    logger.debug(f'Retrieving status stats of project {project_id}')
    try:
        return Response(status_stats(project_id))
    except LookupError as e:
        return _not_found(str(e))

@api_view(['GET'])
def dataset(request):
    """
    Download the active entries of a project as CSV
    """
    project_id = query_int(request, 'id')
    logger.debug(f'Exporting dataset of project {project_id}')
    try:
        csv_text = export_dataset(project_id)
    except LookupError as e:
        return _not_found(str(e))

    response = HttpResponse(csv_text, content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="project-{project_id}.csv"'
    return response
