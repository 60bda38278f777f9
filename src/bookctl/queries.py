"""Named catalog operations over the book collection.

Every operation validates its arguments first, then opens its own
``CatalogClient``, issues exactly one request and closes the client on the
way out, whether the request succeeded or not. Nothing is shared between
calls.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pymongo import ASCENDING, DESCENDING, MongoClient

from bookctl.catalog_api import (
    AuthorBookCount,
    BookDeletion,
    BookSummary,
    CatalogClient,
    ClientFactory,
    GenrePrice,
    PriceUpdate,
)

PAGE_SIZE = 5


class CatalogInputError(ValueError):
    """Raised when an operation argument is malformed."""


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


_SORT_ALIASES = {
    "asc": SortOrder.asc,
    "ascending": SortOrder.asc,
    "desc": SortOrder.desc,
    "descending": SortOrder.desc,
}


def require_text(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CatalogInputError(f"{field} must be a non-empty string.")
    return value


def require_year(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CatalogInputError(f"Year must be an integer, got {value!r}.")
    return value


def require_price(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CatalogInputError(f"Price must be a number, got {value!r}.")
    if not math.isfinite(value) or value < 0:
        raise CatalogInputError(f"Price must be a finite, non-negative number, got {value!r}.")
    return float(value)


def require_page(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise CatalogInputError(f"Page must be a positive integer, got {value!r}.")
    return value


def normalize_sort_order(order: SortOrder | str) -> SortOrder:
    if isinstance(order, SortOrder):
        return order
    if isinstance(order, str):
        resolved = _SORT_ALIASES.get(order.strip().lower())
        if resolved is not None:
            return resolved
    raise CatalogInputError(f"Sort order must be 'asc' or 'desc', got {order!r}.")


class CatalogQueryService:
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
        self.collection = collection
        self.timeout_ms = timeout_ms
        self._client_factory = client_factory

    def _connect(self) -> CatalogClient:
        return CatalogClient(
            self.mongo_uri,
            self.database,
            self.collection,
            timeout_ms=self.timeout_ms,
            client_factory=self._client_factory,
        )

    def ping(self) -> dict[str, Any]:
        with self._connect() as client:
            return client.ping()

    def find_by_genre(self, genre: str) -> list[BookSummary]:
        genre = require_text(genre, field="Genre")
        with self._connect() as client:
            return client.find_books({"genre": genre})

    def find_after_year(self, year: int) -> list[BookSummary]:
        year = require_year(year)
        with self._connect() as client:
            return client.find_books({"published_year": {"$gt": year}})

    def find_by_author(self, author: str) -> list[BookSummary]:
        author = require_text(author, field="Author")
        with self._connect() as client:
            return client.find_books({"author": author})

    def update_book_price(self, title: str, new_price: float) -> PriceUpdate:
        title = require_text(title, field="Title")
        price = require_price(new_price)
        with self._connect() as client:
            return client.set_price(title, price)

    def delete_by_title(self, title: str) -> BookDeletion:
        title = require_text(title, field="Title")
        with self._connect() as client:
            return client.delete_title(title)

    def find_available_after_year(self, year: int) -> list[BookSummary]:
        year = require_year(year)
        with self._connect() as client:
            return client.find_books({"in_stock": True, "published_year": {"$gt": year}})

    def find_sorted_by_price(self, order: SortOrder | str = SortOrder.asc) -> list[BookSummary]:
        resolved = normalize_sort_order(order)
        direction = ASCENDING if resolved is SortOrder.asc else DESCENDING
        with self._connect() as client:
            return client.find_books({}, sort=[("price", direction)])

    def find_paginated(self, page: int) -> list[BookSummary]:
        page = require_page(page)
        # _id order keeps consecutive pages disjoint.
        with self._connect() as client:
            return client.find_books(
                {},
                sort=[("_id", ASCENDING)],
                skip=(page - 1) * PAGE_SIZE,
                limit=PAGE_SIZE,
            )

    def average_price_by_genre(self) -> list[GenrePrice]:
        pipeline = [
            {"$group": {"_id": "$genre", "avgPrice": {"$avg": "$price"}}},
            {"$sort": {"avgPrice": -1}},
        ]
        with self._connect() as client:
            rows = client.aggregate(pipeline)
        return [GenrePrice(genre=row.get("_id"), average_price=row.get("avgPrice")) for row in rows]

    def author_with_most_books(self) -> AuthorBookCount | None:
        """Return the most prolific author; ties go to whichever group sorts first."""
        pipeline = [
            {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
            {"$sort": {"bookCount": -1}},
            {"$limit": 1},
        ]
        with self._connect() as client:
            rows = client.aggregate(pipeline)
        if not rows:
            return None
        return AuthorBookCount(author=rows[0].get("_id"), book_count=int(rows[0]["bookCount"]))

    def create_title_index(self) -> str:
        with self._connect() as client:
            return client.create_index([("title", ASCENDING)])

    def create_author_year_index(self) -> str:
        with self._connect() as client:
            return client.create_index([("author", ASCENDING), ("published_year", DESCENDING)])
