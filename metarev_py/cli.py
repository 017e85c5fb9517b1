"""
Command-line interface for MetaRev.

This module provides the command-line entry point for working with posts,
their revisions and versioned metadata in a MetaRev SQLite store.
"""

import logging
import os
import sqlite3
import sys
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Tuple

import orjson
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from metarev_py import __version__
from metarev_py.config import MetarevConfig, default_database_path
from metarev_py.keys import TrackedKeyRegistry
from metarev_py.revisions import RevisionManager
from metarev_py.store import BaseStore, StoreError
from metarev_py.store.sqlite import SqliteStore
from metarev_py.synchronizer import MetaRevisionSynchronizer

# Set up the console and logger
console = Console()
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("metarev")

# Create the Typer app
app = typer.Typer(
    help="Versioned post metadata for revisioned content.",
    add_completion=False,
)
meta_app = typer.Typer(help="Read and write post metadata.")
app.add_typer(meta_app, name="meta")

DbOption = Annotated[
    Optional[str],
    typer.Option(
        "--db",
        "-d",
        help="Path to the SQLite store. Uses METAREV_DB env var if not set.",
    ),
]
TrackOption = Annotated[
    Optional[List[str]],
    typer.Option(
        "--track",
        "-k",
        help="Metadata key to version, in addition to the configured keys.",
    ),
]
JsonValueOption = Annotated[
    bool,
    typer.Option("--json-value", help="Parse values as JSON instead of plain text."),
]


def log_error(message: str) -> None:
    """Log an error message to both logger and console."""
    logger.error(message)
    console.print(f"[red]{message}[/red]")
    return None


def resolve_database(db: Optional[str], config: MetarevConfig) -> Path:
    """
    Work out which database file to use.

    The order of precedence is:
    1. Command-line argument
    2. METAREV_DB environment variable
    3. ``database`` in the configuration file
    4. The default data directory
    """
    db_path = db or os.environ.get("METAREV_DB")
    if db_path:
        return Path(db_path).expanduser()
    if config.database:
        return config.database
    return default_database_path()


def build_registry(
    config: MetarevConfig, track: Optional[List[str]] = None
) -> TrackedKeyRegistry:
    """Collect tracked keys from the configuration file and --track options."""
    registry = TrackedKeyRegistry()
    if config.tracked_keys:
        registry.track(*config.tracked_keys)
    if track:
        registry.track(*track)
    return registry


def build_manager(
    store: BaseStore, config: MetarevConfig, track: Optional[List[str]] = None
) -> Tuple[RevisionManager, TrackedKeyRegistry]:
    """Wire a revision manager with the metadata synchronizer attached."""
    registry = build_registry(config, track)
    manager = RevisionManager(store, policy=config.retention)
    manager.add_listener(MetaRevisionSynchronizer(store, registry))
    return manager, registry


def open_store(db: Optional[str], config: MetarevConfig) -> SqliteStore:
    """Open the store, exiting with an error if the database cannot be opened."""
    db_path = resolve_database(db, config)
    logger.debug(f"Using store at {db_path}")
    try:
        return SqliteStore(db_path)
    except (OSError, sqlite3.Error) as e:
        log_error(f"Cannot open store at {db_path}: {e}")
        raise typer.Exit(1) from e


def parse_value(raw: str, as_json: bool) -> Any:
    """Turn a command-line value into a metadata value."""
    if not as_json:
        return raw
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON value {raw!r}: {e}") from e


def parse_fields(fields: Optional[List[str]], as_json: bool) -> Dict[str, Any]:
    """Parse repeated ``key=value`` options into a dictionary."""
    parsed: Dict[str, Any] = {}
    for entry in fields or []:
        key, sep, raw = entry.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {entry!r}")
        parsed[key] = parse_value(raw, as_json)
    return parsed


def format_value(value: Any) -> str:
    """Render a metadata value as JSON text."""
    return orjson.dumps(value).decode("utf-8")


@app.callback()
def callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output."
    ),
    json: bool = typer.Option(False, "--json", help="Output logs in JSON format."),
    version: bool = typer.Option(
        False, "--version", help="Show the application version and exit."
    ),
) -> None:
    """
    MetaRev: snapshot the fields that matter alongside every revision.
    """
    if version:
        console.print(f"MetaRev version: {__version__}")
        raise typer.Exit()

    # Configure logging level based on verbosity
    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Configure JSON logging if requested
    if json:
        # Reconfigure logging for JSON output
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)
        logging.basicConfig(
            level=logging.INFO if not verbose else logging.DEBUG,
            format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stdout,
        )
        logger.debug("JSON logging enabled")


@app.command()
def init(db: DbOption = None) -> None:
    """
    Create the store database if it does not exist yet.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        typer.echo(f"Store ready at {store.db_path}")


@app.command()
def create(
    title: Annotated[str, typer.Option("--title", help="Post title.")] = "",
    content: Annotated[str, typer.Option("--content", help="Post content.")] = "",
    db: DbOption = None,
) -> None:
    """
    Create a new post.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        manager, _ = build_manager(store, config)
        post = manager.create_post(title=title, content=content)
        typer.echo(f"Created post {post.id}")


@app.command()
def update(
    item: Annotated[int, typer.Argument(help="Post ID.")],
    title: Annotated[
        Optional[str], typer.Option("--title", help="New post title.")
    ] = None,
    content: Annotated[
        Optional[str], typer.Option("--content", help="New post content.")
    ] = None,
    db: DbOption = None,
    track: TrackOption = None,
) -> None:
    """
    Update a post and save a revision if anything changed.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        manager, _ = build_manager(store, config, track)
        try:
            revision = manager.update_post(item, title=title, content=content)
        except (StoreError, ValueError) as e:
            log_error(f"Failed to update post {item}: {e}")
            raise typer.Exit(1) from e

        if revision is None:
            typer.echo("No changes detected; no revision saved.")
        else:
            typer.echo(f"Saved revision {revision.id} of post {item}")


@app.command(name="revisions")
def list_revisions(
    item: Annotated[int, typer.Argument(help="Post ID.")],
    json_output: Annotated[
        bool, typer.Option("--json", help="Output revisions in JSON format.")
    ] = False,
    db: DbOption = None,
    track: TrackOption = None,
) -> None:
    """
    List the revisions of a post with their versioned metadata.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        _, registry = build_manager(store, config, track)
        tracked = registry.keys()
        revisions = store.revisions(item)

        if not revisions:
            logger.info(f"No revisions found for post {item}")
            return

        rows = []
        for rev in revisions:
            meta = {
                key: store.get_metadata(rev.id, key)
                for key in tracked
                if key in store.metadata_keys(rev.id)
            }
            rows.append((rev, meta))

    if json_output:
        revision_data = [
            {
                "id": rev.id,
                "created": rev.created.isoformat(),
                "title": rev.title,
                "content": rev.content,
                "meta": meta,
            }
            for rev, meta in rows
        ]
        typer.echo(orjson.dumps(revision_data, option=orjson.OPT_INDENT_2).decode())
        return

    table = Table(title=f"Revisions of post {item}")
    table.add_column("ID")
    table.add_column("Created")
    table.add_column("Title")
    table.add_column("Meta")

    for rev, meta in rows:
        table.add_row(
            str(rev.id),
            rev.created.strftime("%Y-%m-%d %H:%M:%S"),
            rev.title,
            "\n".join(f"{k}={format_value(v)}" for k, v in meta.items()),
        )
    console.print(table)


@app.command()
def restore(
    revision: Annotated[int, typer.Argument(help="Revision ID to restore.")],
    db: DbOption = None,
    track: TrackOption = None,
) -> None:
    """
    Restore a post, including its versioned metadata, from a revision.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        manager, _ = build_manager(store, config, track)
        try:
            post = manager.restore_revision(revision)
        except (StoreError, ValueError) as e:
            log_error(f"Failed to restore revision {revision}: {e}")
            raise typer.Exit(1) from e
        typer.echo(f"Successfully restored post {post.id} from revision {revision}")


@app.command()
def autosave(
    item: Annotated[int, typer.Argument(help="Post ID.")],
    field: Annotated[
        Optional[List[str]],
        typer.Option("--field", "-f", help="Draft field as key=value."),
    ] = None,
    title: Annotated[
        Optional[str], typer.Option("--title", help="Draft title.")
    ] = None,
    content: Annotated[
        Optional[str], typer.Option("--content", help="Draft content.")
    ] = None,
    slashed: Annotated[
        bool,
        typer.Option("--slashed", help="Field values are backslash-escaped."),
    ] = False,
    json_value: JsonValueOption = False,
    db: DbOption = None,
    track: TrackOption = None,
) -> None:
    """
    Write an autosave draft of a post.
    """
    fields = parse_fields(field, json_value)
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        manager, _ = build_manager(store, config, track)
        try:
            draft = manager.autosave(
                item, fields, title=title, content=content, slashed=slashed
            )
        except (StoreError, ValueError) as e:
            log_error(f"Failed to autosave post {item}: {e}")
            raise typer.Exit(1) from e
        typer.echo(f"Autosaved post {item} as {draft.id}")


@app.command()
def preview(
    item: Annotated[int, typer.Argument(help="Post ID.")],
    key: Annotated[str, typer.Argument(help="Metadata key.")],
    single: Annotated[
        bool, typer.Option("--single", help="Return only the first value.")
    ] = False,
    db: DbOption = None,
    track: TrackOption = None,
) -> None:
    """
    Read a metadata value the way a preview of the post would see it.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        manager, _ = build_manager(store, config, track)
        value = manager.get_meta(item, key, single=single, preview=True)
        typer.echo(format_value(value))


@app.command()
def keys(track: TrackOption = None) -> None:
    """
    List the metadata keys that are versioned with each revision.
    """
    tracked = build_registry(MetarevConfig.load(), track).keys()
    if not tracked:
        logger.info("No tracked keys configured")
        return
    for key in tracked:
        typer.echo(key)


@meta_app.command("get")
def meta_get(
    item: Annotated[int, typer.Argument(help="Item ID.")],
    key: Annotated[str, typer.Argument(help="Metadata key.")],
    single: Annotated[
        bool, typer.Option("--single", help="Return only the first value.")
    ] = False,
    db: DbOption = None,
) -> None:
    """
    Print the values stored under a key as JSON.
    """
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        typer.echo(format_value(store.get_metadata(item, key, single)))


@meta_app.command("set")
def meta_set(
    item: Annotated[int, typer.Argument(help="Item ID.")],
    key: Annotated[str, typer.Argument(help="Metadata key.")],
    value: Annotated[str, typer.Argument(help="Value to store.")],
    prev: Annotated[
        Optional[str],
        typer.Option("--prev", help="Only replace entries equal to this value."),
    ] = None,
    json_value: JsonValueOption = False,
    db: DbOption = None,
) -> None:
    """
    Set a key to a single value, replacing what is stored.
    """
    new_value = parse_value(value, json_value)
    prev_value = parse_value(prev, json_value) if prev is not None else None
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        try:
            store.update_metadata(item, key, new_value, prev_value)
        except StoreError as e:
            log_error(f"Failed to set '{key}' on {item}: {e}")
            raise typer.Exit(1) from e
        typer.echo(f"Set '{key}' on {item}")


@meta_app.command("add")
def meta_add(
    item: Annotated[int, typer.Argument(help="Item ID.")],
    key: Annotated[str, typer.Argument(help="Metadata key.")],
    value: Annotated[str, typer.Argument(help="Value to append.")],
    json_value: JsonValueOption = False,
    db: DbOption = None,
) -> None:
    """
    Append a value under a key.
    """
    new_value = parse_value(value, json_value)
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        try:
            store.add_metadata(item, key, new_value)
        except StoreError as e:
            log_error(f"Failed to add '{key}' on {item}: {e}")
            raise typer.Exit(1) from e
        typer.echo(f"Added '{key}' on {item}")


@meta_app.command("delete")
def meta_delete(
    item: Annotated[int, typer.Argument(help="Item ID.")],
    key: Annotated[str, typer.Argument(help="Metadata key.")],
    value: Annotated[
        Optional[str],
        typer.Option("--value", help="Only delete entries equal to this value."),
    ] = None,
    json_value: JsonValueOption = False,
    db: DbOption = None,
) -> None:
    """
    Delete the values stored under a key.
    """
    match = parse_value(value, json_value) if value is not None else None
    config = MetarevConfig.load()
    with open_store(db, config) as store:
        if store.delete_metadata(item, key, match):
            typer.echo(f"Deleted '{key}' on {item}")
        else:
            typer.echo(f"Nothing to delete for '{key}' on {item}")


@app.command()
def version() -> None:
    """Show the application version and exit."""
    console.print(f"MetaRev version: {__version__}")


if __name__ == "__main__":
    app()
