from contextlib import contextmanager
import logging
import os

from django.conf import settings
from pymongo import MongoClient, ASCENDING

logger = logging.getLogger(__name__)

# Get MongoDB connection details from settings or environment variables
MONGODB_HOST = getattr(settings, 'MONGODB_HOST', os.environ.get('MONGODB_HOST', 'localhost'))
MONGODB_PORT = int(getattr(settings, 'MONGODB_PORT', os.environ.get('MONGODB_PORT', 27017)))
MONGODB_USERNAME = getattr(settings, 'MONGODB_USERNAME', os.environ.get('MONGODB_USERNAME', ''))
MONGODB_PASSWORD = getattr(settings, 'MONGODB_PASSWORD', os.environ.get('MONGODB_PASSWORD', ''))
MONGODB_DATABASE = getattr(settings, 'MONGODB_DATABASE', os.environ.get('MONGODB_DATABASE', 'databyter'))
MONGODB_TRANSACTIONS = getattr(settings, 'MONGODB_TRANSACTIONS', False)


def client_options(host, port, username='', password=''):
    """Keyword arguments for MongoClient, with credentials only when a username is set"""
    options = {'host': host, 'port': port}
    if username:
        options.update(username=username, password=password or None, authSource='admin')
    return options


# Establish MongoDB connection (pymongo connects lazily on first operation)
client = MongoClient(**client_options(MONGODB_HOST, MONGODB_PORT, MONGODB_USERNAME, MONGODB_PASSWORD))

# Get database
db = client[MONGODB_DATABASE]

# Collection names
PROJECTS = 'projects'
ENTRIES = 'entries'
USERS = 'users'
ID_MANAGER = 'id-manager'


def get_collection(name):
    """Return a collection of the current database"""
    return db[name]


@contextmanager
def transaction():
    """
    Yield a session running a multi-document transaction, or None when
    transactions are disabled. The transaction commits when the block exits
    normally and aborts when it raises.
    """
    if not MONGODB_TRANSACTIONS:
        yield None
        return

    with client.start_session() as session:
        with session.start_transaction():
            yield session


def ensure_indexes():
    """Create the indexes backing the uniqueness invariants"""
    entries = db[ENTRIES]
    # At most one active version per lineage
    entries.create_index(
        [('projectId', ASCENDING), ('entryId', ASCENDING)],
        unique=True,
        partialFilterExpression={'isActive': True},
        name='one_active_version'
    )
    entries.create_index(
        [('projectId', ASCENDING), ('entryId', ASCENDING), ('version', ASCENDING)],
        unique=True
    )
    db[PROJECTS].create_index([('projectId', ASCENDING)], unique=True)
    db[ID_MANAGER].create_index([('type', ASCENDING)], unique=True)
    db[USERS].create_index([('email', ASCENDING)], unique=True)
    db[USERS].create_index([('username', ASCENDING)], unique=True)
    logger.info(f"Indexes ensured on database '{db.name}'")


def ping():
    """Check that MongoDB answers"""
    client.admin.command('ping')
