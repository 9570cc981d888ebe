import pytest

from doc_query.seed import default_indexes, seed_books
from doc_query.store import InMemoryDocumentStore


@pytest.fixture
def books():
    return seed_books()


@pytest.fixture
def store():
    return InMemoryDocumentStore(seed_books())


@pytest.fixture
def indexed_store():
    return InMemoryDocumentStore(seed_books(), indexes=default_indexes())
