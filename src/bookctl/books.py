from __future__ import annotations

from dataclasses import asdict

from rich.markup import escape
from rich.table import Table

from bookctl.catalog_api import (
    AuthorBookCount,
    BookDeletion,
    BookSummary,
    GenrePrice,
    PriceUpdate,
)


def _format_price(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "N/A"


def book_to_dict(book: BookSummary) -> dict[str, str | float | None]:
    return asdict(book)


def genre_price_to_dict(row: GenrePrice) -> dict[str, str | float | None]:
    return {"genre": row.genre, "avgPrice": row.average_price}


def author_count_to_dict(row: AuthorBookCount) -> dict[str, str | int | None]:
    return {"author": row.author, "bookCount": row.book_count}


def render_books_table(books: list[BookSummary], *, title: str = "Books") -> Table:
    table = Table(title=escape(title))
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Author", style="magenta")
    table.add_column("Price", justify="right")

    for index, book in enumerate(books, 1):
        table.add_row(str(index), escape(book.title), escape(book.author), _format_price(book.price))

    return table


def render_genre_prices_table(rows: list[GenrePrice]) -> Table:
    table = Table(title="Average Price by Genre")
    table.add_column("Genre", style="magenta")
    table.add_column("Average Price", justify="right")

    for row in rows:
        table.add_row(escape(str(row.genre or "(none)")), _format_price(row.average_price))

    return table


def render_author_count_table(row: AuthorBookCount | None) -> Table:
    table = Table(title="Author with Most Books")
    table.add_column("Author", style="magenta")
    table.add_column("Books", justify="right")

    if row is not None:
        table.add_row(escape(str(row.author or "(none)")), str(row.book_count))

    return table


def describe_price_update(update: PriceUpdate) -> str:
    return (
        f'Updated price for "{update.title}" to {update.new_price:.2f}. '
        f"Matched: {update.matched_count}, Modified: {update.modified_count}"
    )


def describe_deletion(deletion: BookDeletion) -> str:
    return f'Deleted book "{deletion.title}". Deleted count: {deletion.deleted_count}'
