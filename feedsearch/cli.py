#!/usr/bin/env python3
"""
feedsearch - search query compiler

Command-line interface for trying out search queries: show how a query is
parsed, print the SQL it compiles to, or run it against a database.
"""
import sys
import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from feedsearch.config import init_config, get_config
from feedsearch.constants import SORT_KEYS
from feedsearch.db import get_db
from feedsearch.errors import SearchError
from feedsearch.query import compile_search, parse_query, query_complexity, search, walk_with_scope
from feedsearch.query.lexer import is_uuid

logger = logging.getLogger(__name__)


console = Console()


def output_tokens(query: str, format: str = "table"):
    """Output the parsed tokens of a query."""
    config = get_config()
    tokens = parse_query(query, min_prefix_length=config.min_prefix_length)
    complexity = query_complexity(tokens)

    if format == "json":
        print(json.dumps({
            "query": query,
            "complexity": complexity,
            "tokens": [
                {"type": type(t).__name__, "scope": scope.name, "token": repr(t), "complexity": t.complexity()}
                for t, scope in walk_with_scope(tokens)
            ],
        }, indent=2))
        return

    if format == "plain":
        for token, scope in walk_with_scope(tokens):
            print(f"{scope.name}\t{token!r}")
        return

    table = Table(title=f"Complexity: {complexity}")
    table.add_column("Type", style="cyan")
    table.add_column("Scope", style="yellow")
    table.add_column("Token", style="green")
    table.add_column("Cost", style="magenta")

    for token, scope in walk_with_scope(tokens):
        table.add_row(type(token).__name__, scope.name, repr(token), str(token.complexity()))

    console.print(table)


def cmd_parse(args):
    """Show how a query is parsed."""
    output_tokens(args.query, args.output)


def _check_viewer(viewer: Optional[str]):
    if viewer is not None and not is_uuid(viewer):
        raise SearchError(f"Viewer must be a user id (UUID), got {viewer!r}")


def cmd_sql(args):
    """Print the SQL a query compiles to."""
    _check_viewer(args.viewer)
    db = get_db(args.db)
    compiled = asyncio.run(compile_search(
        db, args.query,
        viewer_id=args.viewer,
        limit=args.limit,
        offset=args.offset,
        sort=args.sort,
    ))

    if args.output == "json":
        print(json.dumps({
            "sql": compiled.sql,
            "params": compiled.params,
            "complexity": compiled.complexity,
        }, indent=2, default=str))
        return

    console.print(Syntax(compiled.sql, "sql", word_wrap=True))
    for name, value in compiled.params.items():
        console.print(f"  [cyan]:{name}[/cyan] = {value!r}")


def cmd_search(args):
    """Run a query and print the matching post ids."""
    _check_viewer(args.viewer)
    db = get_db(args.db)
    post_ids = asyncio.run(search(
        db, args.query,
        viewer_id=args.viewer,
        limit=args.limit,
        offset=args.offset,
        sort=args.sort,
    ))

    if args.output == "json":
        print(json.dumps(post_ids))
    elif args.output == "plain":
        for post_id in post_ids:
            print(post_id)
    else:
        table = Table(title=f"{len(post_ids)} posts")
        table.add_column("#", style="cyan")
        table.add_column("Post", style="green")
        for i, post_id in enumerate(post_ids, start=args.offset + 1):
            table.add_row(str(i), post_id)
        console.print(table)


def cmd_db(args):
    """Database management."""
    db = get_db(args.db)

    if args.db_command == "init":
        db.create_schema()
        console.print("[green]Schema created[/green]")
    elif args.db_command == "info":
        info = db.info()
        if args.output == "json":
            print(json.dumps(info, indent=2))
        else:
            for key, value in info.items():
                console.print(f"[cyan]{key}:[/cyan] {value}")


def cmd_config(args):
    """Configuration management."""
    config = get_config()

    if args.config_command == "show":
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in vars(config).items():
            table.add_row(key, str(value))
        console.print(table)
    elif args.config_command == "save":
        path = Path(args.path) if args.path else None
        config.save(path)
        console.print("[green]Configuration saved[/green]")


def _add_query_args(parser: argparse.ArgumentParser):
    parser.add_argument("query", help="Search query")
    parser.add_argument("--viewer", help="Id of the signed-in user (default: anonymous)")
    parser.add_argument("--limit", type=int, help="Page size")
    parser.add_argument("--offset", type=int, default=0, help="Page offset")
    parser.add_argument("--sort", choices=SORT_KEYS, help="Sort order")


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="feedsearch - compile search queries into PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  feedsearch parse 'cat + mouse | dog -from:alice'
  feedsearch sql 'in:cats comments:>=3' --output json
  feedsearch search 'in-my:discussions date:2020-06' --viewer <uuid>
  feedsearch db info

Configuration:
  Config file: ~/.config/feedsearch/config.toml or ./feedsearch.toml
  Environment: FEEDSEARCH_DATABASE_URL, FEEDSEARCH_MAX_QUERY_COMPLEXITY
        """
    )

    # Global options
    parser.add_argument("--db", help="Database URL")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-o", "--output", choices=["table", "json", "plain"], help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    parse_parser = subparsers.add_parser("parse", help="Show parsed tokens")
    parse_parser.add_argument("query", help="Search query")
    parse_parser.set_defaults(func=cmd_parse)

    sql_parser = subparsers.add_parser("sql", help="Print compiled SQL")
    _add_query_args(sql_parser)
    sql_parser.set_defaults(func=cmd_sql)

    search_parser = subparsers.add_parser("search", help="Run a search")
    _add_query_args(search_parser)
    search_parser.set_defaults(func=cmd_search)

    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_subparsers.add_parser("info", help="Show connection info").set_defaults(func=cmd_db)
    db_subparsers.add_parser("init", help="Create missing tables").set_defaults(func=cmd_db)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)
    config_subparsers.add_parser("show", help="Show effective configuration").set_defaults(func=cmd_config)
    config_save = config_subparsers.add_parser("save", help="Save configuration to a file")
    config_save.add_argument("path", nargs="?", help="Target file (default: user config)")
    config_save.set_defaults(func=cmd_config)

    # Parse arguments
    args = parser.parse_args(argv)

    # Initialize configuration with CLI overrides
    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.config:
        config_args["config_file"] = Path(args.config)

    config = init_config(database_url=args.db, **config_args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Set default output format if not specified
    if not args.output:
        args.output = config.output_format

    # Execute command
    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except SearchError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
