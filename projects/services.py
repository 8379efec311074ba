import logging

import pandas as pd

from databyter import database
from .models import ProjectManager, EntryManager

# Configure logging
logger = logging.getLogger(__name__)

DATASET_BASE_COLUMNS = ['entryId', 'version', 'author', 'creationDate']


def balance_stats(project_id):
    """
    Tally how often each label value occurs among the active entries of a
    project, next to the project's size target.

    Only values of the fields the project schema marks as labels are counted.
    The tally comes back as a single group, [{'_id': None, 'labels': [...]}],
    or an empty list when nothing is labeled yet.
    """
    project = ProjectManager.find_by_id(project_id)
    if project is None:
        raise LookupError(f"Project {project_id} not found")

    pipeline = [
        {'$match': {'projectId': project_id, 'isActive': True}},
        {'$unwind': '$fields'},
        {'$match': {
            'fields.isLabel': True,
            'fields.field': {'$in': ProjectManager.label_fields(project)}
        }},
        {'$group': {'_id': '$fields.value', 'occurrences': {'$sum': 1}}},
        {'$sort': {'occurrences': -1, '_id': 1}},
    ]
    groups = database.get_collection(database.ENTRIES).aggregate(pipeline)

    labels = [{'label': group['_id'], 'occurrences': group['occurrences']} for group in groups]
    balance = [{'_id': None, 'labels': labels}] if labels else []
    return {
        'sizeTarget': project.get('sizeTarget', 0),
        'balance': balance
    }


def status_stats(project_id):
    """Progress of a project towards its size target"""
    project = ProjectManager.find_by_id(project_id)
    if project is None:
        raise LookupError(f"Project {project_id} not found")

    size_target = project.get('sizeTarget', 0) or 0
    total = database.get_collection(database.ENTRIES).count_documents(
        {'projectId': project_id, 'isActive': True}
    )
    return {
        'sizeTarget': size_target,
        'total': total,
        'remaining': max(size_target - total, 0)
    }


def build_dataset(project_id):
    """
    Build a DataFrame of the active entries of a project: the bookkeeping
    columns followed by one column per project field, in schema order.
    """
    project = ProjectManager.find_by_id(project_id)
    if project is None:
        raise LookupError(f"Project {project_id} not found")

    field_names = [field['name'] for field in project.get('fields', [])]
    columns = DATASET_BASE_COLUMNS + [name for name in field_names if name not in DATASET_BASE_COLUMNS]

    rows = []
    for entry in EntryManager.find_active(project_id):
        row = {column: entry.get(column) for column in DATASET_BASE_COLUMNS}
        for field in entry.get('fields', []):
            row[field['field']] = field.get('value')
        rows.append(row)

    logger.debug(f"Built dataset for project {project_id} with {len(rows)} rows")
    return pd.DataFrame(rows, columns=columns)


def export_dataset(project_id):
    """Render the project dataset as CSV text"""
    return build_dataset(project_id).to_csv(index=False)
