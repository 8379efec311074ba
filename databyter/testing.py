from unittest.mock import patch

import mongomock
from django.test import SimpleTestCase


class MongoTestCase(SimpleTestCase):
    """
    Test case running against an in-memory mongomock database in place of
    the configured MongoDB.
    """

    def setUp(self):
        super().setUp()
        self.mongo = mongomock.MongoClient()
        self.db = self.mongo['databyter_test']
        for patcher in (
            patch('databyter.database.db', self.db),
            patch('databyter.database.MONGODB_TRANSACTIONS', False),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
