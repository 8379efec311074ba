import json
from unittest.mock import patch

from django.test import Client, override_settings
from pymongo.errors import PyMongoError

from databyter.testing import MongoTestCase


BIRDS = {
    'pName': 'Birds',
    'fields': [{'name': 'species', 'isLabel': True}],
    'labels': ['Hawk', 'Owl'],
}


def species_entry(value):
    return {'fields': [{'field': 'species', 'value': value, 'isLabel': True}]}


class ApiTestCase(MongoTestCase):
    def setUp(self):
        super().setUp()
        self.client = Client()

    def post_json(self, path, body):
        return self.client.post(path, data=json.dumps(body), content_type='application/json')

    def put_json(self, path, body):
        return self.client.put(path, data=json.dumps(body), content_type='application/json')


class ProjectApiTests(ApiTestCase):
    def test_save_project(self):
        response = self.post_json('/api/saveProject', BIRDS)

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['projectId'], 1)
        self.assertEqual(data['entryId'], 1)
        self.assertIn('id', data)
        self.assertNotIn('_id', data)

    def test_save_project_rejects_invalid_draft(self):
        response = self.post_json('/api/saveProject', dict(BIRDS, labels=[]))

        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.json())

    def test_list_and_get_projects(self):
        self.post_json('/api/saveProject', BIRDS)
        self.post_json('/api/saveProject', dict(BIRDS, pName='Fish'))

        listing = self.client.get('/api/projects').json()
        self.assertEqual(listing['total'], 2)
        self.assertEqual([p['projectId'] for p in listing['results']], [1, 2])

        response = self.client.get('/api/project', {'id': 2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['project']['pName'], 'Fish')

    def test_unknown_project(self):
        self.assertEqual(self.client.get('/api/project', {'id': 9}).status_code, 404)
        self.assertEqual(self.client.get('/api/entries', {'id': 9}).status_code, 404)
        self.assertEqual(self.client.get('/api/piechartData', {'projectId': 9}).status_code, 404)
        self.assertEqual(self.post_json('/api/addEntry?id=9', species_entry('Hawk')).status_code, 404)

    def test_bad_query_parameters(self):
        missing = self.client.get('/api/project')
        self.assertEqual(missing.status_code, 400)
        self.assertIn('id', missing.json()['error'])

        malformed = self.client.get('/api/entry', {'projectId': 'one', 'entryId': 1})
        self.assertEqual(malformed.status_code, 400)
        self.assertIn('error', malformed.json())

    def test_delete_project_cascades(self):
        self.post_json('/api/saveProject', BIRDS)
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.post_json('/api/addEntry?id=1', species_entry('Owl'))

        response = self.client.delete('/api/project?projectId=1')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['deletedCount'], 2)
        self.assertEqual(self.client.get('/api/project', {'id': 1}).status_code, 404)
        self.assertEqual(self.db.entries.count_documents({'projectId': 1}), 0)

    def test_status_and_dataset(self):
        self.post_json('/api/saveProject', dict(BIRDS, sizeTarget=3))
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))

        status = self.client.get('/api/statusPiechart', {'projectId': 1}).json()
        self.assertEqual(status, {'sizeTarget': 3, 'total': 1, 'remaining': 2})

        response = self.client.get('/api/dataset', {'id': 1})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('attachment', response['Content-Disposition'])
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0], 'entryId,version,author,creationDate,species')
        self.assertTrue(lines[1].endswith(',Hawk'))


class EntryApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.post_json('/api/saveProject', BIRDS)

    def test_bird_scenario(self):
        created = self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.assertEqual(created.status_code, 201)
        entry = created.json()
        self.assertEqual((entry['entryId'], entry['version'], entry['isActive']), (1, 0, True))

        updated = self.put_json('/api/entry?projectId=1&entryId=1', species_entry('Owl'))
        self.assertEqual(updated.status_code, 201)
        new_version = updated.json()
        self.assertEqual(new_version['version'], 1)
        self.assertTrue(new_version['isActive'])
        self.assertEqual(new_version['fields'][0]['value'], 'Owl')

        history = self.client.get('/api/entryHistory', {'projectId': 1, 'entryId': 1}).json()
        self.assertEqual(history['total'], 2)
        self.assertEqual(
            [(row['version'], row['fields'][0]['value'], row['isActive']) for row in history['results']],
            [(1, 'Owl', True), (0, 'Hawk', False)]
        )

        current = self.client.get('/api/entry', {'projectId': 1, 'entryId': 1}).json()['entry']
        self.assertEqual(current['version'], 1)

    def test_entries_lists_only_active_rows(self):
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.put_json('/api/entry?projectId=1&entryId=1', species_entry('Owl'))

        data = self.client.get('/api/entries', {'id': 1}).json()

        self.assertEqual(data['header']['pName'], 'Birds')
        self.assertEqual(data['header']['entryId'], 3)
        self.assertEqual(data['total'], 2)
        self.assertTrue(all(row['isActive'] for row in data['results']))
        self.assertEqual([row['entryId'] for row in data['results']], [1, 2])

    def test_piechart_data(self):
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.post_json('/api/addEntry?id=1', species_entry('Owl'))
        self.post_json('/api/addEntry?id=1', species_entry('Owl'))

        data = self.client.get('/api/piechartData', {'projectId': 1}).json()

        self.assertEqual(data['sizeTarget'], 0)
        self.assertEqual(data['balance'], [{'_id': None, 'labels': [
            {'label': 'Owl', 'occurrences': 2},
            {'label': 'Hawk', 'occurrences': 1},
        ]}])

    def test_update_missing_entry(self):
        response = self.put_json('/api/entry?projectId=1&entryId=5', species_entry('Owl'))
        self.assertEqual(response.status_code, 404)

    def test_invalid_entry_body(self):
        response = self.post_json('/api/addEntry?id=1', {'fields': 'Hawk'})
        self.assertEqual(response.status_code, 400)

    def test_delete_entry(self):
        self.post_json('/api/addEntry?id=1', species_entry('Hawk'))
        self.put_json('/api/entry?projectId=1&entryId=1', species_entry('Owl'))

        response = self.client.delete('/api/entry?projectId=1&entryId=1')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['deletedCount'], 2)
        self.assertEqual(self.client.get('/api/entry', {'projectId': 1, 'entryId': 1}).status_code, 404)


class FallbackTests(ApiTestCase):
    @patch('projects.views.ProjectManager.find_all', side_effect=PyMongoError('connection refused'))
    def test_store_error_becomes_500(self, mock_find_all):
        with self.assertLogs('databyter.exceptions', level='ERROR'):
            response = self.client.get('/api/projects')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Internal server error'})
        mock_find_all.assert_called_once()

    def test_unknown_route(self):
        response = self.client.get('/api/tasks')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'error': 'Not found'})

    def test_wrong_method(self):
        response = self.client.get('/api/saveProject')
        self.assertEqual(response.status_code, 405)
        self.assertIn('error', response.json())


@override_settings(PASSWORD_HASHERS=['django.contrib.auth.hashers.MD5PasswordHasher'])
class UserApiTests(ApiTestCase):
    def register(self, email, username, password='secret', password_check='secret'):
        return self.post_json('/api/registerUser', {
            'email': email,
            'username': username,
            'password': password,
            'passwordCheck': password_check,
        }).json()

    def test_duplicate_email_registration(self):
        self.assertEqual(self.register('ann@example.com', 'ann'), {'status': True})
        self.assertEqual(self.register('ann@example.com', 'annie'), {'status': False, 'errorCode': 1})

    def test_check_user_after_registration(self):
        self.register('ann@example.com', 'ann')

        granted = self.post_json('/api/checkUser', {'username': 'ann', 'password': 'secret'}).json()
        denied = self.post_json('/api/checkUser', {'username': 'ann', 'password': 'nope'}).json()

        self.assertEqual(granted, {'canAccess': True})
        self.assertEqual(denied, {'canAccess': False})

    def test_change_password(self):
        self.register('ann@example.com', 'ann')

        response = self.put_json('/api/changePassword', {
            'email': 'ann@example.com',
            'username': 'ann',
            'password': 'better',
            'passwordCheck': 'better',
        })

        self.assertEqual(response.json(), {'status': True})
        granted = self.post_json('/api/checkUser', {'username': 'ann', 'password': 'better'}).json()
        self.assertTrue(granted['canAccess'])

    def test_register_with_missing_fields(self):
        response = self.post_json('/api/registerUser', {'email': 'ann@example.com'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('username', response.json()['error'])

    def test_non_object_bodies_are_rejected(self):
        for path in ('/api/registerUser', '/api/checkUser'):
            with self.subTest(path=path):
                response = self.post_json(path, [1, 2])
                self.assertEqual(response.status_code, 400)
                self.assertIn('error', response.json())

        response = self.put_json('/api/changePassword', 'ann')
        self.assertEqual(response.status_code, 400)
