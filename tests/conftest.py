from __future__ import annotations

import mongomock
import pytest

from bookctl.queries import CatalogQueryService

TEST_URI = "mongodb://catalog.test:27017"
DATABASE = "plp_bookstore"
COLLECTION = "books"

BOOKS = [
    {"title": "To Kill a Mockingbird", "author": "Harper Lee", "price": 12.99, "published_year": 1960, "genre": "Fiction", "in_stock": True},
    {"title": "1984", "author": "George Orwell", "price": 10.99, "published_year": 1949, "genre": "Dystopian", "in_stock": True},
    {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "price": 9.99, "published_year": 1925, "genre": "Fiction", "in_stock": True},
    {"title": "Brave New World", "author": "Aldous Huxley", "price": 11.50, "published_year": 1932, "genre": "Dystopian", "in_stock": False},
    {"title": "The Hobbit", "author": "J.R.R. Tolkien", "price": 14.99, "published_year": 1937, "genre": "Fantasy", "in_stock": True},
    {"title": "The Catcher in the Rye", "author": "J.D. Salinger", "price": 8.99, "published_year": 1951, "genre": "Fiction", "in_stock": False},
    {"title": "Pride and Prejudice", "author": "Jane Austen", "price": 7.99, "published_year": 1813, "genre": "Romance", "in_stock": True},
    {"title": "The Lord of the Rings", "author": "J.R.R. Tolkien", "price": 19.99, "published_year": 1954, "genre": "Fantasy", "in_stock": True},
    {"title": "Animal Farm", "author": "George Orwell", "price": 8.50, "published_year": 1945, "genre": "Political Satire", "in_stock": False},
    {"title": "The Alchemist", "author": "Paulo Coelho", "price": 10.99, "published_year": 1988, "genre": "Fiction", "in_stock": True},
    {"title": "Moby Dick", "author": "Herman Melville", "price": 12.50, "published_year": 1851, "genre": "Adventure", "in_stock": False},
    {"title": "The Silmarillion", "author": "J.R.R. Tolkien", "price": 16.99, "published_year": 1977, "genre": "Fantasy", "in_stock": False},
]


class SharedMongo:
    """Client factory handing out handles onto one in-memory server."""

    def __init__(self) -> None:
        self.server = mongomock.MongoClient()
        self.opened = 0
        self.closed = 0
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, uri: str, **kwargs):
        self.opened += 1
        self.calls.append((uri, kwargs))
        return _Handle(self)

    @property
    def books(self):
        return self.server[DATABASE][COLLECTION]

    def seed(self, documents: list[dict]) -> None:
        self.books.insert_many([dict(document) for document in documents])


class _Handle:
    def __init__(self, owner: SharedMongo) -> None:
        self._owner = owner

    def __getitem__(self, name: str):
        return self._owner.server[name]

    def close(self) -> None:
        self._owner.closed += 1


@pytest.fixture
def mongo() -> SharedMongo:
    return SharedMongo()


@pytest.fixture
def seeded_mongo(mongo: SharedMongo) -> SharedMongo:
    mongo.seed(BOOKS)
    return mongo


@pytest.fixture
def service(mongo: SharedMongo) -> CatalogQueryService:
    return CatalogQueryService(TEST_URI, DATABASE, COLLECTION, client_factory=mongo)


@pytest.fixture
def seeded_service(seeded_mongo: SharedMongo) -> CatalogQueryService:
    return CatalogQueryService(TEST_URI, DATABASE, COLLECTION, client_factory=seeded_mongo)
