from datetime import datetime
import logging

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from databyter import database
from databyter.metrics import PrometheusMetrics

logger = logging.getLogger(__name__)


def today():
    """Current date as stored on projects and entries"""
    return datetime.now().strftime('%Y-%m-%d')


def is_non_blank(value):
    return isinstance(value, str) and bool(value.strip())


# Id sequencing
class SequenceManager:
    @staticmethod
    def next_project_id(session=None):
        """Atomically increment and return the project counter"""
        counter = database.get_collection(database.ID_MANAGER).find_one_and_update(
            {'type': 'project'},
            {'$inc': {'id': 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session
        )
        return counter['id']

    @staticmethod
    def next_entry_id(project_id, session=None):
        """
        Atomically hand out the project's next entry id and stamp lastEntry.
        Returns None when the project does not exist.
        """
        project = database.get_collection(database.PROJECTS).find_one_and_update(
            {'projectId': project_id},
            {'$inc': {'entryId': 1}, '$set': {'lastEntry': today()}},
            return_document=ReturnDocument.BEFORE,
            session=session
        )
        if project is None:
            return None
        return project['entryId']


# Project Management
class ProjectManager:
    PROJECT_TYPES = ['Text', 'Image']

    FIELD_TYPES = ['String', 'Number', 'Date', 'Boolean']

    @staticmethod
    def validate(draft):
        """Check a project draft, raising ValueError on the first problem"""
        if not isinstance(draft, dict):
            raise ValueError("Project must be a JSON object")
        if not is_non_blank(draft.get('pName')):
            raise ValueError("Project name (pName) must not be blank")

        fields = draft.get('fields')
        if not isinstance(fields, list) or not fields:
            raise ValueError("Project must define at least one field")
        labels = draft.get('labels')
        if not isinstance(labels, list) or not labels:
            raise ValueError("Project must define at least one label")

        p_type = draft.get('pType', 'Text')
        if p_type not in ProjectManager.PROJECT_TYPES:
            raise ValueError(f"Project type must be one of {ProjectManager.PROJECT_TYPES}")

        for field in fields:
            if not isinstance(field, dict) or not is_non_blank(field.get('name')):
                raise ValueError("Every field needs a non-blank name")
            field_type = field.get('type')
            if field_type is not None and field_type not in ProjectManager.FIELD_TYPES:
                raise ValueError(f"Field type must be one of {ProjectManager.FIELD_TYPES}")

        size_target = draft.get('sizeTarget', 0)
        try:
            size_target = int(size_target or 0)
        except (TypeError, ValueError):
            raise ValueError("Size target (sizeTarget) must be an integer")
        if size_target < 0:
            raise ValueError("Size target (sizeTarget) must not be negative")

    @staticmethod
    def create(draft):
        """Validate a draft, assign it the next projectId and store it"""
        ProjectManager.validate(draft)

        project = dict(draft)
        project.pop('_id', None)
        project['pType'] = draft.get('pType', 'Text')
        project['sizeTarget'] = int(draft.get('sizeTarget') or 0)
        project['fields'] = [
            {
                **field,
                'isLabel': bool(field.get('isLabel', False))
            }
            for field in draft['fields']
        ]
        project['creationDate'] = draft.get('creationDate') or today()
        project['lastEntry'] = None

        with database.transaction() as session:
            project['projectId'] = SequenceManager.next_project_id(session=session)
            project['entryId'] = 1
            database.get_collection(database.PROJECTS).insert_one(project, session=session)

        logger.info(f"Project {project['projectId']} '{project['pName']}' saved successfully")
        return project

    @staticmethod
    def find_by_id(project_id):
        """Find project by projectId"""
        return database.get_collection(database.PROJECTS).find_one({'projectId': project_id})

    @staticmethod
    def find_all():
        """Find all projects ordered by projectId"""
        return list(database.get_collection(database.PROJECTS).find({}).sort('projectId', ASCENDING))

    @staticmethod
    def label_fields(project):
        """Names of the fields rendered as label selectors"""
        return [field['name'] for field in project.get('fields', []) if field.get('isLabel')]

    @staticmethod
    def delete(project_id):
        """
        Delete a project and every entry of it.

        Both deletes are keyed on projectId only, so repeating a cascade that
        failed half-way finishes the job.
        """
        with database.transaction() as session:
            project_result = database.get_collection(database.PROJECTS).delete_one(
                {'projectId': project_id}, session=session
            )
            entries_result = database.get_collection(database.ENTRIES).delete_many(
                {'projectId': project_id}, session=session
            )

        logger.info(f"Project {project_id} deleted with {entries_result.deleted_count} entry rows")
        return {
            'acknowledged': entries_result.acknowledged,
            'projectDeleted': project_result.deleted_count,
            'deletedCount': entries_result.deleted_count
        }


# Entry Management
class EntryManager:
    """
    Entries are append-only. Each (projectId, entryId) lineage is a chain of
    versions 0, 1, 2, ... of which exactly one is active.
    """

    @staticmethod
    def _validate(body):
        if not isinstance(body, dict):
            raise ValueError("Entry must be a JSON object")
        fields = body.get('fields')
        if not isinstance(fields, list):
            raise ValueError("Entry fields must be a list")
        for field in fields:
            if not isinstance(field, dict) or not is_non_blank(field.get('field')):
                raise ValueError("Every entry field needs a non-blank 'field' name")

    @staticmethod
    def _build(body, project_id, entry_id, version):
        entry = {key: value for key, value in body.items() if key != '_id'}
        entry['fields'] = [
            {
                'field': field['field'],
                'value': field.get('value'),
                'isLabel': bool(field.get('isLabel', False))
            }
            for field in body['fields']
        ]
        entry['projectId'] = project_id
        entry['entryId'] = entry_id
        entry['version'] = version
        entry['isActive'] = True
        entry['creationDate'] = today()
        return entry

    @staticmethod
    def create(project_id, body):
        """
        Create version 0 of a new lineage. Returns None when the project does
        not exist.
        """
        EntryManager._validate(body)
        project = ProjectManager.find_by_id(project_id)
        if project is None:
            return None

        with database.transaction() as session:
            entry_id = SequenceManager.next_entry_id(project_id, session=session)
            if entry_id is None:
                return None

            entry = EntryManager._build(body, project_id, entry_id, 0)
            entry.setdefault('pType', project.get('pType'))
            database.get_collection(database.ENTRIES).insert_one(entry, session=session)

        PrometheusMetrics.track_transition('create')
        logger.info(f"Entry {project_id}/{entry_id} saved successfully")
        return entry

    @staticmethod
    def update(project_id, entry_id, body):
        """
        Supersede the active version of a lineage with a new one carrying the
        submitted fields. Returns None when the lineage has no active version.

        The deactivate and insert steps share a transaction when transactions
        are enabled. Otherwise a failed insert reactivates the superseded row
        before the error propagates.
        """
        EntryManager._validate(body)
        entries = database.get_collection(database.ENTRIES)

        with database.transaction() as session:
            previous = entries.find_one_and_update(
                {'projectId': project_id, 'entryId': entry_id, 'isActive': True},
                {'$set': {'isActive': False}},
                return_document=ReturnDocument.BEFORE,
                session=session
            )
            if previous is None:
                return None

            entry = EntryManager._build(body, project_id, entry_id, int(previous['version']) + 1)
            for key in ('author', 'pType'):
                if key not in entry and key in previous:
                    entry[key] = previous[key]

            try:
                entries.insert_one(entry, session=session)
            except Exception:
                if session is None:
                    logger.error(
                        f"Insert of version {entry['version']} for entry {project_id}/{entry_id} failed, "
                        f"reactivating version {previous['version']}"
                    )
                    entries.update_one({'_id': previous['_id']}, {'$set': {'isActive': True}})
                    PrometheusMetrics.track_transition('rollback')
                raise

        PrometheusMetrics.track_transition('update')
        logger.info(f"Entry {project_id}/{entry_id} updated to version {entry['version']}")
        return entry

    @staticmethod
    def find_active(project_id):
        """Active entries of a project ordered by entryId"""
        return list(
            database.get_collection(database.ENTRIES)
            .find({'projectId': project_id, 'isActive': True})
            .sort('entryId', ASCENDING)
        )

    @staticmethod
    def find_active_one(project_id, entry_id):
        """The active version of a lineage"""
        return database.get_collection(database.ENTRIES).find_one(
            {'projectId': project_id, 'entryId': entry_id, 'isActive': True}
        )

    @staticmethod
    def history(project_id, entry_id):
        """Every version of a lineage, newest first"""
        return list(
            database.get_collection(database.ENTRIES)
            .find({'projectId': project_id, 'entryId': entry_id})
            .sort('version', DESCENDING)
        )

    @staticmethod
    def delete(project_id, entry_id):
        """Delete all versions of a lineage"""
        result = database.get_collection(database.ENTRIES).delete_many(
            {'projectId': project_id, 'entryId': entry_id}
        )
        PrometheusMetrics.track_transition('delete')
        logger.info(f"Entry {project_id}/{entry_id} deleted ({result.deleted_count} versions)")
        return {
            'acknowledged': result.acknowledged,
            'deletedCount': result.deleted_count
        }
