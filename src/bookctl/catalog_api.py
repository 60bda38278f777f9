from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

BOOK_PROJECTION = {"title": 1, "author": 1, "price": 1, "_id": 0}
AUTH_FAILURE_CODES = {13, 18}


class CatalogError(RuntimeError):
    """Raised when the data store rejects or fails a request."""


class CatalogConnectionError(CatalogError):
    """Raised when the data store cannot be reached or authenticated against."""


@dataclass(slots=True)
class BookSummary:
    title: str
    author: str
    price: float | None


@dataclass(slots=True)
class PriceUpdate:
    title: str
    new_price: float
    matched_count: int
    modified_count: int


@dataclass(slots=True)
class BookDeletion:
    title: str
    deleted_count: int


@dataclass(slots=True)
class GenrePrice:
    genre: str | None
    average_price: float | None


@dataclass(slots=True)
class AuthorBookCount:
    author: str | None
    book_count: int


ClientFactory = Callable[..., Any]


def _translate_error(exc: PyMongoError, action: str) -> CatalogError:
    if isinstance(exc, ConnectionFailure):
        return CatalogConnectionError(f"Could not reach MongoDB while trying to {action}: {exc}")
    if isinstance(exc, OperationFailure) and exc.code in AUTH_FAILURE_CODES:
        return CatalogConnectionError(f"MongoDB rejected the credentials ({exc.code}): {exc}")
    return CatalogError(f"MongoDB failed to {action}: {exc}")


def book_from_document(document: Mapping[str, Any]) -> BookSummary:
    price = document.get("price")
    return BookSummary(
        title=str(document.get("title") or ""),
        author=str(document.get("author") or ""),
        price=float(price) if isinstance(price, (int, float)) else None,
    )


class CatalogClient:
    """One short-lived connection to a single book collection."""

    def __init__(
        self,
        mongo_uri: str,
        database: str,
        collection: str,
        *,
        timeout_ms: int = 5000,
        client_factory: ClientFactory = MongoClient,
    ) -> None:
        self.mongo_uri = mongo_uri
        self.database = database
        self.collection_name = collection
        try:
            self._client = client_factory(mongo_uri, serverSelectionTimeoutMS=timeout_ms)
        except PyMongoError as exc:
            raise _translate_error(exc, "open a connection") from exc
        try:
            self._collection = self._client[database][collection]
        except PyMongoError as exc:
            self._client.close()
            raise _translate_error(exc, f"open {database}.{collection}") from exc

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CatalogClient":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def ping(self) -> dict[str, Any]:
        try:
            return self._client.admin.command("ping")
        except PyMongoError as exc:
            raise _translate_error(exc, "ping the server") from exc

    def find_books(
        self,
        query: Mapping[str, Any],
        *,
        sort: Sequence[tuple[str, int]] | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[BookSummary]:
        try:
            cursor = self._collection.find(dict(query), BOOK_PROJECTION)
            if sort:
                cursor = cursor.sort(list(sort))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            documents = list(cursor)
        except PyMongoError as exc:
            raise _translate_error(exc, "query books") from exc
        return [book_from_document(document) for document in documents]

    def set_price(self, title: str, new_price: float) -> PriceUpdate:
        try:
            result = self._collection.update_one({"title": title}, {"$set": {"price": new_price}})
        except PyMongoError as exc:
            raise _translate_error(exc, f"update the price of {title!r}") from exc
        return PriceUpdate(
            title=title,
            new_price=new_price,
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    def delete_title(self, title: str) -> BookDeletion:
        try:
            result = self._collection.delete_one({"title": title})
        except PyMongoError as exc:
            raise _translate_error(exc, f"delete {title!r}") from exc
        return BookDeletion(title=title, deleted_count=result.deleted_count)

    def aggregate(self, pipeline: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        try:
            return list(self._collection.aggregate([dict(stage) for stage in pipeline]))
        except PyMongoError as exc:
            raise _translate_error(exc, "run an aggregation") from exc

    def create_index(self, keys: Sequence[tuple[str, int]]) -> str:
        try:
            return self._collection.create_index(list(keys))
        except PyMongoError as exc:
            raise _translate_error(exc, "create an index") from exc
