import pytest

from hubsub.content import ContentStore
from hubsub.models import open_database
from hubsub.subscriptions import SubscriptionStore


@pytest.fixture
def db():
    database = open_database(":memory:")
    yield database
    database.close()


@pytest.fixture
def subscriptions(db):
    return SubscriptionStore(db)


@pytest.fixture
def content(db):
    return ContentStore(db, entry_url="https://node.example/entry/{id}")
