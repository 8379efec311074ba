from datetime import datetime
from io import StringIO
from unittest.mock import patch, MagicMock, Mock

from bson import ObjectId
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, Client
from pymongo import MongoClient
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from databyter import database
from databyter.client import DatabyterClient, ApiError
from databyter.views import serialize_document


def json_response(status_code, payload):
    response = Mock()
    response.status_code = status_code
    response.headers = {'Content-Type': 'application/json'}
    response.json.return_value = payload
    response.url = 'http://databyter.test/api/x'
    response.reason = 'Reason'
    response.text = ''
    return response


class DatabyterClientTests(SimpleTestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = DatabyterClient('http://databyter.test/api/', session=self.session)

    def test_get_project(self):
        self.session.request.return_value = json_response(200, {'project': {'projectId': 3}})

        project = self.client.get_project(3)

        self.assertEqual(project, {'projectId': 3})
        self.session.request.assert_called_once_with(
            'GET', 'http://databyter.test/api/project', json=None, params={'id': 3}, timeout=10.0
        )

    def test_update_entry_sends_body_and_lineage(self):
        self.session.request.return_value = json_response(201, {'version': 1})
        body = {'fields': [{'field': 'species', 'value': 'Owl', 'isLabel': True}]}

        result = self.client.update_entry(1, 2, body)

        self.assertEqual(result, {'version': 1})
        self.session.request.assert_called_once_with(
            'PUT', 'http://databyter.test/api/entry', json=body,
            params={'projectId': 1, 'entryId': 2}, timeout=10.0
        )

    def test_error_response_raises(self):
        self.session.request.return_value = json_response(400, {'error': 'Project must define at least one label'})

        with self.assertRaises(ApiError) as ctx:
            self.client.save_project({'pName': 'Birds', 'fields': [], 'labels': []})

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.message, 'Project must define at least one label')

    def test_error_without_json_body(self):
        response = json_response(502, None)
        response.json.side_effect = ValueError('no json')
        response.reason = 'Bad Gateway'
        self.session.request.return_value = response

        with self.assertRaises(ApiError) as ctx:
            self.client.list_projects()

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.message, 'Bad Gateway')

    def test_dataset_returns_text(self):
        response = Mock(status_code=200, headers={'Content-Type': 'text/csv'}, text='entryId\n1\n')
        self.session.request.return_value = response

        self.assertEqual(self.client.dataset(1), 'entryId\n1\n')

    def test_check_user(self):
        self.session.request.return_value = json_response(200, {'canAccess': True})

        self.assertTrue(self.client.check_user('ann', 'secret'))
        self.assertEqual(self.session.request.call_args.kwargs['json'], {'username': 'ann', 'password': 'secret'})


class ServeCommandTests(SimpleTestCase):
    def test_invalid_port_exits_with_code_2(self):
        for port in (80, 1024, 65536):
            with self.subTest(port=port):
                stderr = StringIO()
                with patch('sys.stderr', StringIO()):
                    with self.assertRaises(SystemExit) as ctx:
                        call_command('serve', port=port, stderr=stderr)
                self.assertEqual(ctx.exception.code, 2)
                self.assertIn('Invalid port', stderr.getvalue())

    @patch('databyter.management.commands.serve.call_command')
    @patch('databyter.management.commands.serve.database.ensure_indexes')
    def test_starts_server_on_interface_and_port(self, mock_ensure_indexes, mock_call_command):
        call_command('serve', iface='127.0.0.1', port=8080, stdout=StringIO())

        mock_ensure_indexes.assert_called_once()
        mock_call_command.assert_called_once_with('runserver', '127.0.0.1:8080', use_reloader=False)

    @patch('databyter.management.commands.serve.call_command')
    @patch('databyter.management.commands.serve.database.ensure_indexes')
    def test_ipv6_interface(self, mock_ensure_indexes, mock_call_command):
        call_command('serve', iface='::1', port=1025, stdout=StringIO())

        mock_call_command.assert_called_once_with('runserver', '[::1]:1025', use_reloader=False)

    @patch('databyter.management.commands.serve.call_command')
    @patch('databyter.management.commands.serve.database.ensure_indexes',
           side_effect=ServerSelectionTimeoutError('no server'))
    def test_unreachable_store(self, mock_ensure_indexes, mock_call_command):
        with self.assertRaises(CommandError):
            call_command('serve', stdout=StringIO())
        mock_call_command.assert_not_called()


class HealthCheckTests(SimpleTestCase):
    @patch('databyter.views.database.ping')
    def test_health_ok(self, mock_ping):
        response = Client().get('/health')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'OK')
        mock_ping.assert_called_once()

    @patch('databyter.views.database.ping', side_effect=PyMongoError('down'))
    def test_health_store_down(self, mock_ping):
        with self.assertLogs('databyter.views', level='ERROR'):
            response = Client().get('/health')

        self.assertEqual(response.status_code, 503)

    def test_metrics_endpoint(self):
        response = Client().get('/metrics')

        self.assertEqual(response.status_code, 200)
        self.assertIn(b'databyter_http_requests_total', response.content)

    @patch('databyter.views.database.ping')
    def test_requests_are_counted_by_route(self, mock_ping):
        Client().get('/health')
        Client().get('/no/such/page')

        body = Client().get('/metrics').content.decode()

        self.assertIn('endpoint="/health"', body)
        self.assertIn('endpoint="unmatched"', body)
        self.assertNotIn('endpoint="/no/such/page"', body)
        self.assertNotIn('endpoint="/metrics"', body)


class DatabaseTests(SimpleTestCase):
    def test_transaction_disabled_yields_no_session(self):
        with patch('databyter.database.MONGODB_TRANSACTIONS', False):
            with database.transaction() as session:
                self.assertIsNone(session)

    def test_transaction_enabled_uses_client_session(self):
        mock_client = MagicMock()
        session = mock_client.start_session.return_value.__enter__.return_value

        with patch('databyter.database.MONGODB_TRANSACTIONS', True), \
                patch('databyter.database.client', mock_client):
            with database.transaction() as active:
                self.assertIs(active, session)

        session.start_transaction.assert_called_once()

    def test_client_options_without_credentials(self):
        options = database.client_options('localhost', 27017, '', '')

        self.assertEqual(options, {'host': 'localhost', 'port': 27017})
        client = MongoClient(connect=False, **options)
        self.addCleanup(client.close)
        self.assertNotIn('authSource', options)

    def test_client_options_with_credentials(self):
        options = database.client_options('mongo', 27018, 'admin', 'secret')

        self.assertEqual(options['username'], 'admin')
        self.assertEqual(options['password'], 'secret')
        self.assertEqual(options['authSource'], 'admin')

    def test_ensure_indexes(self):
        mock_db = MagicMock()
        with patch('databyter.database.db', mock_db):
            database.ensure_indexes()

        entries = mock_db.__getitem__.return_value
        self.assertTrue(entries.create_index.called)
        partial = [
            call for call in entries.create_index.call_args_list
            if call.kwargs.get('name') == 'one_active_version'
        ]
        self.assertEqual(partial[0].kwargs['partialFilterExpression'], {'isActive': True})
        self.assertTrue(partial[0].kwargs['unique'])


class SerializeDocumentTests(SimpleTestCase):
    def test_object_ids_and_dates(self):
        oid = ObjectId()
        doc = serialize_document({'_id': oid, 'when': datetime(2024, 5, 1, 12, 0), 'projectId': 1})

        self.assertEqual(doc, {'id': str(oid), 'when': '2024-05-01T12:00:00', 'projectId': 1})

    def test_none(self):
        self.assertIsNone(serialize_document(None))
