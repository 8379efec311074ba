# users/tests.py
from unittest.mock import patch, MagicMock

from django.test import SimpleTestCase, override_settings
from pymongo.errors import DuplicateKeyError

from databyter.testing import MongoTestCase
from users.models import (
    UserManager,
    DuplicateEmail,
    DuplicateUsername,
    PasswordMismatch,
    UserNotFound,
)


@override_settings(PASSWORD_HASHERS=['django.contrib.auth.hashers.MD5PasswordHasher'])
class UserManagerTests(MongoTestCase):
    def setUp(self):
        super().setUp()
        UserManager.register('ann@example.com', 'ann', 'secret', 'secret')

    def test_password_is_stored_hashed(self):
        stored = self.db.users.find_one({'username': 'ann'})
        self.assertNotEqual(stored['password'], 'secret')
        self.assertTrue(stored['password'].startswith('md5$'))

    def test_check(self):
        self.assertTrue(UserManager.check('ann', 'secret'))
        self.assertFalse(UserManager.check('ann', 'Secret'))
        self.assertFalse(UserManager.check('bob', 'secret'))
        self.assertFalse(UserManager.check('ann', None))

    def test_register_refusals(self):
        cases = [
            (('ann@example.com', 'annie', 'pw', 'pw'), DuplicateEmail, 1),
            (('annie@example.com', 'ann', 'pw', 'pw'), DuplicateUsername, 2),
            (('annie@example.com', 'annie', 'pw', 'wp'), PasswordMismatch, 3),
        ]
        for args, error, code in cases:
            with self.subTest(error=error.__name__):
                with self.assertRaises(error) as ctx:
                    UserManager.register(*args)
                self.assertEqual(ctx.exception.error_code, code)

        self.assertEqual(self.db.users.count_documents({}), 1)

    def test_change_password(self):
        UserManager.change_password('ann@example.com', 'ann', 'better', 'better')

        self.assertTrue(UserManager.check('ann', 'better'))
        self.assertFalse(UserManager.check('ann', 'secret'))

    def test_change_password_refusals(self):
        with self.assertRaises(UserNotFound) as ctx:
            UserManager.change_password('other@example.com', 'ann', 'better', 'better')
        self.assertEqual(ctx.exception.error_code, 1)

        with self.assertRaises(PasswordMismatch) as ctx:
            UserManager.change_password('ann@example.com', 'ann', 'better', 'butter')
        self.assertEqual(ctx.exception.error_code, 2)

        self.assertTrue(UserManager.check('ann', 'secret'))


@override_settings(PASSWORD_HASHERS=['django.contrib.auth.hashers.MD5PasswordHasher'])
class RegistrationRaceTests(SimpleTestCase):
    """
    The pre-insert checks can pass for two concurrent registrations; the
    unique index then refuses the second insert.
    """

    def collection_refusing(self, key_pattern):
        users = MagicMock()
        users.count_documents.return_value = 0
        users.insert_one.side_effect = DuplicateKeyError(
            'E11000 duplicate key error', 11000, {'keyPattern': key_pattern}
        )
        return users

    @patch('users.models.database.get_collection')
    def test_duplicate_email_from_index(self, mock_get_collection):
        mock_get_collection.return_value = self.collection_refusing({'email': 1})

        with self.assertRaises(DuplicateEmail):
            UserManager.register('ann@example.com', 'ann', 'secret', 'secret')

    @patch('users.models.database.get_collection')
    def test_duplicate_username_from_index(self, mock_get_collection):
        mock_get_collection.return_value = self.collection_refusing({'username': 1})

        with self.assertRaises(DuplicateUsername):
            UserManager.register('ann@example.com', 'ann', 'secret', 'secret')
