# projects/tests.py
from contextlib import contextmanager
import csv
import io
from unittest.mock import patch, MagicMock

from bson.errors import InvalidDocument
from django.test import SimpleTestCase
from pymongo.errors import PyMongoError

from databyter.testing import MongoTestCase
from projects.models import SequenceManager, ProjectManager, EntryManager
from projects import services


def bird_draft(**overrides):
    draft = {
        'pName': 'Birds',
        'description': 'Bird sightings',
        'pType': 'Text',
        'sizeTarget': 4,
        'pAuthor': 'alice',
        'fields': [
            {'name': 'species', 'type': 'String', 'isLabel': True},
            {'name': 'count', 'type': 'Number', 'isLabel': False},
        ],
        'labels': ['Hawk', 'Owl'],
    }
    draft.update(overrides)
    return draft


def sighting(species, count=1, author='alice'):
    return {
        'author': author,
        'fields': [
            {'field': 'species', 'value': species, 'isLabel': True},
            {'field': 'count', 'value': count, 'isLabel': False},
        ],
    }


class SequenceManagerTests(MongoTestCase):
    def test_project_counter_starts_at_one_and_increments(self):
        self.assertEqual(SequenceManager.next_project_id(), 1)
        self.assertEqual(SequenceManager.next_project_id(), 2)
        self.assertEqual(SequenceManager.next_project_id(), 3)
        self.assertEqual(self.db['id-manager'].count_documents({'type': 'project'}), 1)

    def test_entry_counter_hands_out_current_value(self):
        project = ProjectManager.create(bird_draft())
        self.assertEqual(SequenceManager.next_entry_id(project['projectId']), 1)
        self.assertEqual(SequenceManager.next_entry_id(project['projectId']), 2)

        stored = self.db.projects.find_one({'projectId': project['projectId']})
        self.assertEqual(stored['entryId'], 3)
        self.assertIsNotNone(stored['lastEntry'])

    def test_entry_counter_of_unknown_project(self):
        self.assertIsNone(SequenceManager.next_entry_id(42))


class ProjectManagerTests(MongoTestCase):
    def test_create_assigns_increasing_ids(self):
        first = ProjectManager.create(bird_draft())
        second = ProjectManager.create(bird_draft(pName='Fish'))

        self.assertEqual(first['projectId'], 1)
        self.assertEqual(first['entryId'], 1)
        self.assertGreater(second['projectId'], first['projectId'])
        self.assertEqual(second['entryId'], 1)
        self.assertIsNone(first['lastEntry'])

    def test_create_fills_defaults(self):
        project = ProjectManager.create({
            'pName': 'Birds',
            'fields': [{'name': 'species', 'isLabel': True}],
            'labels': ['Hawk', 'Owl'],
        })

        self.assertEqual(project['pType'], 'Text')
        self.assertEqual(project['sizeTarget'], 0)
        self.assertTrue(project['creationDate'])
        self.assertEqual(project['fields'], [{'name': 'species', 'isLabel': True}])

    def test_create_rejects_invalid_drafts(self):
        invalid = [
            bird_draft(pName='   '),
            bird_draft(pName=None),
            bird_draft(fields=[]),
            bird_draft(labels=[]),
            bird_draft(labels=None),
            bird_draft(pType='Audio'),
            bird_draft(fields=[{'name': 'species', 'type': 'Color'}]),
            bird_draft(fields=[{'type': 'String'}]),
            bird_draft(sizeTarget=-1),
            bird_draft(sizeTarget='many'),
        ]
        for draft in invalid:
            with self.subTest(draft=draft):
                with self.assertRaises(ValueError):
                    ProjectManager.create(draft)

        self.assertEqual(self.db.projects.count_documents({}), 0)

    def test_find_all_orders_by_project_id(self):
        for name in ('Birds', 'Fish', 'Trees'):
            ProjectManager.create(bird_draft(pName=name))

        names = [project['pName'] for project in ProjectManager.find_all()]
        self.assertEqual(names, ['Birds', 'Fish', 'Trees'])

    def test_label_fields(self):
        project = ProjectManager.create(bird_draft())
        self.assertEqual(ProjectManager.label_fields(project), ['species'])

    def test_delete_cascades_to_entries(self):
        birds = ProjectManager.create(bird_draft())
        fish = ProjectManager.create(bird_draft(pName='Fish'))
        entry = EntryManager.create(birds['projectId'], sighting('Hawk'))
        EntryManager.update(birds['projectId'], entry['entryId'], sighting('Owl'))
        EntryManager.create(fish['projectId'], sighting('Trout'))

        result = ProjectManager.delete(birds['projectId'])

        self.assertEqual(result['projectDeleted'], 1)
        self.assertEqual(result['deletedCount'], 2)
        self.assertIsNone(ProjectManager.find_by_id(birds['projectId']))
        self.assertEqual(EntryManager.find_active(birds['projectId']), [])
        self.assertEqual(len(EntryManager.find_active(fish['projectId'])), 1)

    def test_delete_is_safe_to_repeat(self):
        project = ProjectManager.create(bird_draft())
        ProjectManager.delete(project['projectId'])

        result = ProjectManager.delete(project['projectId'])
        self.assertEqual(result['projectDeleted'], 0)
        self.assertEqual(result['deletedCount'], 0)


class EntryManagerTests(MongoTestCase):
    def setUp(self):
        super().setUp()
        self.project = ProjectManager.create(bird_draft())
        self.project_id = self.project['projectId']

    def test_create_starts_an_active_lineage(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))

        self.assertEqual(entry['entryId'], 1)
        self.assertEqual(entry['version'], 0)
        self.assertTrue(entry['isActive'])
        self.assertEqual(entry['pType'], 'Text')
        self.assertEqual(entry['author'], 'alice')

        second = EntryManager.create(self.project_id, sighting('Owl'))
        self.assertEqual(second['entryId'], 2)

    def test_create_for_unknown_project(self):
        self.assertIsNone(EntryManager.create(99, sighting('Hawk')))
        self.assertEqual(self.db.entries.count_documents({}), 0)

    def test_create_rejects_malformed_fields(self):
        with self.assertRaises(ValueError):
            EntryManager.create(self.project_id, {'fields': 'species=Hawk'})
        with self.assertRaises(ValueError):
            EntryManager.create(self.project_id, {'fields': [{'value': 'Hawk'}]})

    def test_update_supersedes_active_version(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))

        updated = EntryManager.update(self.project_id, entry['entryId'], sighting('Owl'))

        self.assertEqual(updated['version'], 1)
        self.assertTrue(updated['isActive'])
        self.assertEqual(updated['fields'][0]['value'], 'Owl')

        history = EntryManager.history(self.project_id, entry['entryId'])
        self.assertEqual([row['version'] for row in history], [1, 0])
        self.assertEqual([row['isActive'] for row in history], [True, False])
        self.assertEqual(history[1]['fields'][0]['value'], 'Hawk')

    def test_versions_have_no_gaps_and_one_active_row(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))
        for count in range(2, 7):
            EntryManager.update(self.project_id, entry['entryId'], sighting('Hawk', count=count))
            active = self.db.entries.count_documents(
                {'projectId': self.project_id, 'entryId': entry['entryId'], 'isActive': True}
            )
            self.assertEqual(active, 1)

        history = EntryManager.history(self.project_id, entry['entryId'])
        self.assertEqual([row['version'] for row in history], [5, 4, 3, 2, 1, 0])

    def test_update_keeps_author_and_type(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk', author='bob'))
        updated = EntryManager.update(self.project_id, entry['entryId'], {
            'fields': [{'field': 'species', 'value': 'Owl', 'isLabel': True}]
        })
        self.assertEqual(updated['author'], 'bob')
        self.assertEqual(updated['pType'], 'Text')

    def test_update_without_active_version(self):
        self.assertIsNone(EntryManager.update(self.project_id, 7, sighting('Owl')))

    def test_failed_insert_reactivates_previous_version(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))

        with patch('mongomock.collection.Collection.insert_one', side_effect=PyMongoError('write failed')):
            with self.assertRaises(PyMongoError):
                EntryManager.update(self.project_id, entry['entryId'], sighting('Owl'))

        active = EntryManager.find_active_one(self.project_id, entry['entryId'])
        self.assertIsNotNone(active)
        self.assertEqual(active['version'], 0)
        self.assertEqual(active['fields'][0]['value'], 'Hawk')
        self.assertEqual(len(EntryManager.history(self.project_id, entry['entryId'])), 1)

    def test_rejected_document_reactivates_previous_version(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))

        with patch('mongomock.collection.Collection.insert_one', side_effect=InvalidDocument('document too large')):
            with self.assertRaises(InvalidDocument):
                EntryManager.update(self.project_id, entry['entryId'], sighting('Owl'))

        active = EntryManager.find_active_one(self.project_id, entry['entryId'])
        self.assertIsNotNone(active)
        self.assertEqual(active['version'], 0)

    def test_find_active_skips_superseded_rows(self):
        first = EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.create(self.project_id, sighting('Owl'))
        EntryManager.update(self.project_id, first['entryId'], sighting('Owl'))

        active = EntryManager.find_active(self.project_id)

        self.assertEqual([row['entryId'] for row in active], [1, 2])
        self.assertTrue(all(row['isActive'] for row in active))
        self.assertEqual(active[0]['version'], 1)

    def test_delete_removes_every_version(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.update(self.project_id, entry['entryId'], sighting('Owl'))

        result = EntryManager.delete(self.project_id, entry['entryId'])

        self.assertEqual(result['deletedCount'], 2)
        self.assertEqual(EntryManager.history(self.project_id, entry['entryId']), [])
        self.assertIsNone(EntryManager.find_active_one(self.project_id, entry['entryId']))

    def test_entry_ids_are_never_reused(self):
        first = EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.delete(self.project_id, first['entryId'])

        second = EntryManager.create(self.project_id, sighting('Owl'))
        self.assertEqual(second['entryId'], 2)


class TransactionSessionTests(SimpleTestCase):
    """Every write inside a transaction block carries the block's session"""

    def setUp(self):
        super().setUp()
        self.session = MagicMock(name='session')
        self.collections = {
            name: MagicMock(name=name)
            for name in ('projects', 'entries', 'id-manager')
        }

        @contextmanager
        def transaction():
            yield self.session

        for patcher in (
            patch('projects.models.database.transaction', transaction),
            patch('projects.models.database.get_collection', side_effect=self.collections.__getitem__),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_project_create(self):
        self.collections['id-manager'].find_one_and_update.return_value = {'id': 5}

        project = ProjectManager.create(bird_draft())

        self.assertEqual(project['projectId'], 5)
        self.assertIs(self.collections['id-manager'].find_one_and_update.call_args.kwargs['session'], self.session)
        self.assertIs(self.collections['projects'].insert_one.call_args.kwargs['session'], self.session)

    def test_entry_create(self):
        projects = self.collections['projects']
        projects.find_one.return_value = {'projectId': 1, 'pType': 'Text'}
        projects.find_one_and_update.return_value = {'projectId': 1, 'entryId': 4}

        entry = EntryManager.create(1, sighting('Hawk'))

        self.assertEqual(entry['entryId'], 4)
        self.assertIs(projects.find_one_and_update.call_args.kwargs['session'], self.session)
        self.assertIs(self.collections['entries'].insert_one.call_args.kwargs['session'], self.session)

    def test_entry_update(self):
        entries = self.collections['entries']
        entries.find_one_and_update.return_value = {'_id': 'row-0', 'version': 0, 'author': 'alice'}

        entry = EntryManager.update(1, 4, sighting('Owl'))

        self.assertEqual(entry['version'], 1)
        self.assertIs(entries.find_one_and_update.call_args.kwargs['session'], self.session)
        self.assertIs(entries.insert_one.call_args.kwargs['session'], self.session)

    def test_failed_update_is_left_to_the_transaction(self):
        entries = self.collections['entries']
        entries.find_one_and_update.return_value = {'_id': 'row-0', 'version': 0}
        entries.insert_one.side_effect = PyMongoError('write failed')

        with self.assertRaises(PyMongoError):
            EntryManager.update(1, 4, sighting('Owl'))

        entries.update_one.assert_not_called()

    def test_project_delete(self):
        self.collections['projects'].delete_one.return_value.deleted_count = 1
        self.collections['entries'].delete_many.return_value.deleted_count = 3

        result = ProjectManager.delete(1)

        self.assertEqual(result['projectDeleted'], 1)
        self.assertEqual(result['deletedCount'], 3)
        self.assertIs(self.collections['projects'].delete_one.call_args.kwargs['session'], self.session)
        self.assertIs(self.collections['entries'].delete_many.call_args.kwargs['session'], self.session)


class ProjectServicesTests(MongoTestCase):
    def setUp(self):
        super().setUp()
        self.project_id = ProjectManager.create(bird_draft())['projectId']

    def test_balance_counts_active_label_values(self):
        hawk = EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.create(self.project_id, sighting('Owl'))
        # Superseded Hawk row no longer counts
        EntryManager.update(self.project_id, hawk['entryId'], sighting('Owl'))

        stats = services.balance_stats(self.project_id)

        self.assertEqual(stats['sizeTarget'], 4)
        self.assertEqual(stats['balance'], [{'_id': None, 'labels': [
            {'label': 'Owl', 'occurrences': 2},
            {'label': 'Hawk', 'occurrences': 1},
        ]}])

    def test_balance_ignores_fields_outside_the_label_schema(self):
        EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.create(self.project_id, {
            'author': 'alice',
            'fields': [
                {'field': 'count', 'value': 3, 'isLabel': True},
                {'field': 'habitat', 'value': 'Forest', 'isLabel': True},
            ],
        })

        stats = services.balance_stats(self.project_id)

        self.assertEqual(stats['balance'], [{'_id': None, 'labels': [
            {'label': 'Hawk', 'occurrences': 1},
        ]}])

    def test_balance_of_empty_project(self):
        self.assertEqual(services.balance_stats(self.project_id)['balance'], [])

    def test_stats_of_unknown_project(self):
        with self.assertRaises(LookupError):
            services.balance_stats(99)
        with self.assertRaises(LookupError):
            services.status_stats(99)
        with self.assertRaises(LookupError):
            services.export_dataset(99)

    def test_status_reports_remaining_entries(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk'))
        EntryManager.update(self.project_id, entry['entryId'], sighting('Owl'))

        self.assertEqual(services.status_stats(self.project_id), {
            'sizeTarget': 4,
            'total': 1,
            'remaining': 3
        })

    def test_status_never_goes_negative(self):
        project_id = ProjectManager.create(bird_draft(sizeTarget=1))['projectId']
        EntryManager.create(project_id, sighting('Hawk'))
        EntryManager.create(project_id, sighting('Owl'))

        self.assertEqual(services.status_stats(project_id)['remaining'], 0)

    def test_export_dataset_as_csv(self):
        entry = EntryManager.create(self.project_id, sighting('Hawk', count=2))
        EntryManager.create(self.project_id, sighting('Owl', count=5))
        EntryManager.update(self.project_id, entry['entryId'], sighting('Hawk', count=3))

        rows = list(csv.DictReader(io.StringIO(services.export_dataset(self.project_id))))

        self.assertEqual(len(rows), 2)
        self.assertEqual(list(rows[0].keys()), ['entryId', 'version', 'author', 'creationDate', 'species', 'count'])
        self.assertEqual(rows[0]['entryId'], '1')
        self.assertEqual(rows[0]['version'], '1')
        self.assertEqual(rows[0]['count'], '3')
        self.assertEqual(rows[1]['species'], 'Owl')

    def test_export_empty_dataset_keeps_header(self):
        text = services.export_dataset(self.project_id)
        self.assertEqual(text.strip(), 'entryId,version,author,creationDate,species,count')
