from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bookctl.books import (
    author_count_to_dict,
    book_to_dict,
    describe_deletion,
    describe_price_update,
    genre_price_to_dict,
    render_author_count_table,
    render_books_table,
    render_genre_prices_table,
)
from bookctl.catalog_api import AuthorBookCount, BookSummary, CatalogError, GenrePrice
from bookctl.config import (
    AppConfig,
    ConfigError,
    config_path,
    load_config,
    redact_mongo_uri,
    reset_config,
    resolve_mongo_uri,
    set_collection,
    set_database,
    set_mongo_uri,
    set_server_timeout,
)
from bookctl.queries import (
    CatalogInputError,
    CatalogQueryService,
    SortOrder,
    normalize_sort_order,
)

app = typer.Typer(help="Bookstore catalog CLI")
books_app = typer.Typer(help="Query and modify book records")
stats_app = typer.Typer(help="Aggregate reports over the catalog")
indexes_app = typer.Typer(help="Create collection indexes")
config_app = typer.Typer(help="Manage local bookctl config")
examples_app = typer.Typer(help="Run the example query sequence")

app.add_typer(books_app, name="books")
app.add_typer(stats_app, name="stats")
app.add_typer(indexes_app, name="indexes")
app.add_typer(config_app, name="config")
app.add_typer(examples_app, name="examples")

console = Console()

# Lets negative years through as arguments instead of unknown options.
_SIGNED_ARGUMENT_SETTINGS = {"ignore_unknown_options": True}

T = TypeVar("T")


@dataclass(slots=True)
class ExampleStep:
    label: str
    run: Callable[[CatalogQueryService], Any]
    show: Callable[[Any], None]


def _fail(message: str, *, code: int = 1) -> None:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=code)


def _load_config_or_fail() -> AppConfig:
    try:
        return load_config()
    except ConfigError as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _resolve_mongo_uri_or_fail(cfg: AppConfig, override: str | None) -> str:
    try:
        return resolve_mongo_uri(override, cfg)
    except ConfigError as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _build_service(mongo_uri_override: str | None) -> CatalogQueryService:
    cfg = _load_config_or_fail()
    mongo_uri = _resolve_mongo_uri_or_fail(cfg, mongo_uri_override)
    return CatalogQueryService(
        mongo_uri,
        cfg.database,
        cfg.collection,
        timeout_ms=cfg.server_timeout_ms,
    )


def _run_operation(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except (CatalogError, CatalogInputError) as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _print_json(payload: Any) -> None:
    console.print(json.dumps(payload, indent=2), markup=False, highlight=False, soft_wrap=True)


def _show_books(books: list[BookSummary], *, title: str, json_output: bool = False) -> None:
    if json_output:
        _print_json([book_to_dict(book) for book in books])
        return
    if not books:
        console.print(f"[yellow]{escape(title)}: no books found.[/yellow]")
        return
    console.print(render_books_table(books, title=title))


def _show_genre_prices(rows: list[GenrePrice], *, json_output: bool = False) -> None:
    if json_output:
        _print_json([genre_price_to_dict(row) for row in rows])
        return
    if not rows:
        console.print("[yellow]No books to aggregate.[/yellow]")
        return
    console.print(render_genre_prices_table(rows))


def _show_top_author(row: AuthorBookCount | None, *, json_output: bool = False) -> None:
    if json_output:
        _print_json([author_count_to_dict(row)] if row is not None else [])
        return
    if row is None:
        console.print("[yellow]No books to aggregate.[/yellow]")
        return
    console.print(render_author_count_table(row))


def _show_index(name: str) -> None:
    console.print(f"[green]Index ready:[/green] {escape(name)}")


def _example_steps() -> list[ExampleStep]:
    return [
        ExampleStep(
            label='Books in genre "Fiction"',
            run=lambda service: service.find_by_genre("Fiction"),
            show=lambda books: _show_books(books, title='Books in genre "Fiction"'),
        ),
        ExampleStep(
            label="Books published after 1950",
            run=lambda service: service.find_after_year(1950),
            show=lambda books: _show_books(books, title="Books published after 1950"),
        ),
        ExampleStep(
            label='Books by "J.R.R. Tolkien"',
            run=lambda service: service.find_by_author("J.R.R. Tolkien"),
            show=lambda books: _show_books(books, title='Books by "J.R.R. Tolkien"'),
        ),
        ExampleStep(
            label="Average price by genre",
            run=lambda service: service.average_price_by_genre(),
            show=_show_genre_prices,
        ),
        ExampleStep(
            label="Author with most books",
            run=lambda service: service.author_with_most_books(),
            show=_show_top_author,
        ),
        ExampleStep(
            label="Index on 'title'",
            run=lambda service: service.create_title_index(),
            show=_show_index,
        ),
        ExampleStep(
            label="Compound index on 'author' and 'published_year'",
            run=lambda service: service.create_author_year_index(),
            show=_show_index,
        ),
    ]


def _render_config_table(cfg: AppConfig) -> Table:
    table = Table(title="bookctl Config")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("config_path", escape(str(config_path())))
    table.add_row("mongo_uri", escape(redact_mongo_uri(cfg.mongo_uri)) if cfg.mongo_uri else "")
    table.add_row("database", escape(cfg.database))
    table.add_row("collection", escape(cfg.collection))
    table.add_row("server_timeout_ms", str(cfg.server_timeout_ms))
    try:
        effective_uri = resolve_mongo_uri(None, cfg)
    except ConfigError as exc:
        effective_uri = f"invalid: {exc}"
    table.add_row("effective_mongo_uri", escape(redact_mongo_uri(effective_uri)))
    return table


@books_app.command("genre")
def books_genre(
    genre: str,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List books in a genre."""
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_by_genre(genre))
    _show_books(books, title=f'Books in genre "{genre}"', json_output=json_output)


@books_app.command("after-year", context_settings=_SIGNED_ARGUMENT_SETTINGS)
def books_after_year(
    year: int,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List books published after a year."""
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_after_year(year))
    _show_books(books, title=f"Books published after {year}", json_output=json_output)


@books_app.command("author")
def books_author(
    author: str,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List books by an author."""
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_by_author(author))
    _show_books(books, title=f'Books by "{author}"', json_output=json_output)


@books_app.command("available", context_settings=_SIGNED_ARGUMENT_SETTINGS)
def books_available(
    year: int,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List in-stock books published after a year."""
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_available_after_year(year))
    _show_books(
        books,
        title=f"Books in stock and published after {year}",
        json_output=json_output,
    )


@books_app.command("sorted")
def books_sorted(
    order: str = typer.Option(
        SortOrder.asc.value,
        "--order",
        help="Price order: asc/ascending or desc/descending.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List all books ordered by price."""
    resolved = _run_operation(lambda: normalize_sort_order(order))
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_sorted_by_price(resolved))
    _show_books(books, title=f"Books sorted by price ({resolved.value})", json_output=json_output)


@books_app.command("page")
def books_page(
    page: int,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """List one page of five books."""
    service = _build_service(mongo_uri)
    books = _run_operation(lambda: service.find_paginated(page))
    _show_books(books, title=f"Books on page {page}", json_output=json_output)


@books_app.command("update-price")
def books_update_price(
    title: str,
    price: float,
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Set the price of the first book with a title."""
    service = _build_service(mongo_uri)
    update = _run_operation(lambda: service.update_book_price(title, price))
    style = "green" if update.matched_count else "yellow"
    console.print(f"[{style}]{escape(describe_price_update(update))}[/{style}]")


@books_app.command("delete")
def books_delete(
    title: str,
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Delete the first book with a title."""
    service = _build_service(mongo_uri)
    deletion = _run_operation(lambda: service.delete_by_title(title))
    style = "green" if deletion.deleted_count else "yellow"
    console.print(f"[{style}]{escape(describe_deletion(deletion))}[/{style}]")


@stats_app.command("avg-price")
def stats_avg_price(
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Show the average price per genre, highest first."""
    service = _build_service(mongo_uri)
    rows = _run_operation(service.average_price_by_genre)
    _show_genre_prices(rows, json_output=json_output)


@stats_app.command("top-author")
def stats_top_author(
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Show the author with the most books."""
    service = _build_service(mongo_uri)
    row = _run_operation(service.author_with_most_books)
    _show_top_author(row, json_output=json_output)


@indexes_app.command("create-title")
def indexes_create_title(
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Create an ascending index on title."""
    service = _build_service(mongo_uri)
    _show_index(_run_operation(service.create_title_index))


@indexes_app.command("create-author-year")
def indexes_create_author_year(
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Create a compound index on author (asc) and published_year (desc)."""
    service = _build_service(mongo_uri)
    _show_index(_run_operation(service.create_author_year_index))


@app.command("health")
def health(
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Check that the configured MongoDB server answers a ping."""
    service = _build_service(mongo_uri)
    reply = _run_operation(service.ping)

    table = Table(title="MongoDB Health")
    table.add_column("Check", style="cyan")
    table.add_column("Value")
    table.add_row("mongo_uri", escape(redact_mongo_uri(service.mongo_uri)))
    table.add_row("database", escape(service.database))
    table.add_row("collection", escape(service.collection))
    table.add_row("ping", "ok" if reply.get("ok") else escape(str(reply)))
    console.print(table)


@examples_app.command("run")
def examples_run(
    mongo_uri: str | None = typer.Option(None, "--mongo-uri", help="MongoDB URI override."),
) -> None:
    """Run the example queries in order, reporting each step's outcome."""
    service = _build_service(mongo_uri)
    failures: list[str] = []

    for step in _example_steps():
        console.rule(step.label)
        try:
            result = step.run(service)
        except (CatalogError, CatalogInputError) as exc:
            failures.append(step.label)
            console.print(f"[red]{escape(str(exc))}[/red]")
            continue
        step.show(result)

    if failures:
        console.print(f"[red]{len(failures)} example step(s) failed:[/red] {escape(', '.join(failures))}")
        raise typer.Exit(code=1)
    console.print("[green]All example steps completed.[/green]")


@config_app.command("set-uri")
def config_set_uri(uri: str) -> None:
    """Persist the MongoDB connection URI."""
    try:
        cfg = set_mongo_uri(uri)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved mongo_uri:[/green] {escape(redact_mongo_uri(cfg.mongo_uri or ''))}")


@config_app.command("set-database")
def config_set_database(name: str) -> None:
    """Persist the database name."""
    try:
        cfg = set_database(name)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved database:[/green] {escape(cfg.database)}")


@config_app.command("set-collection")
def config_set_collection(name: str) -> None:
    """Persist the collection name."""
    try:
        cfg = set_collection(name)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved collection:[/green] {escape(cfg.collection)}")


@config_app.command("set-timeout")
def config_set_timeout(timeout_ms: int) -> None:
    """Persist the server selection timeout in milliseconds."""
    try:
        cfg = set_server_timeout(timeout_ms)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved server_timeout_ms:[/green] {cfg.server_timeout_ms}")


@config_app.command("reset")
def config_reset() -> None:
    """Restore default connection settings."""
    try:
        reset_config()
    except OSError as exc:
        _fail(f"Could not write config file: {exc}")
    console.print("[green]Config reset to defaults.[/green]")


@config_app.command("show")
def config_show() -> None:
    """Show effective local config."""
    cfg = _load_config_or_fail()
    console.print(_render_config_table(cfg))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
