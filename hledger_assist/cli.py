"""CLI for the ``hledger_assist`` package.

Typer-based console interface over the aggregator, query surface and
completion engine. The root callback loads a local ``.env`` with
``python-dotenv`` (without overriding variables already set) and configures
logging before any command runs; commands read their tunables through
:func:`hledger_assist.config.load_settings`.

Commands:

- ``summary PATH``: JSON overview of a journal (includes followed) or of every
  journal under a directory.
- ``query KIND PATH``: one list from the query surface, one item per line.
- ``classify LINE COLUMN``: the cursor context of a single line.
- ``complete PATH LINE``: the completions the engine offers for ``LINE``.
- ``repl PATH``: interactive prompt with live completion.
"""

from __future__ import annotations

import json
import sys
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from typer.models import ArgumentInfo

from .logging_setup import configure_logging, get_logger

_logger = get_logger("hledger_assist.cli")


class QueryKind(str, Enum):
    ACCOUNTS = "accounts"
    DEFINED_ACCOUNTS = "defined-accounts"
    USED_ACCOUNTS = "used-accounts"
    PAYEES = "payees"
    COMMODITIES = "commodities"
    TAGS = "tags"
    TAG_VALUES = "tag-values"
    TEMPLATES = "templates"
    LAST_DATE = "last-date"


class CompletionOut(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    label: str
    kind: str
    insert_text: str
    replace_start: int
    score: float
    sort_key: str
    detail: str | None


# ---- Small module-level helpers used by CLI commands -------------------------


def _load_entry(path: Path):
    """Aggregate ``path`` (file or directory); exits with status 1 on failure."""

    from .aggregator import ProjectCache
    from .config import load_settings
    from .errors import AggregationCancelled

    cache = ProjectCache(load_settings())
    try:
        if path.is_dir():
            return cache, cache.load_workspace(path)
        return cache, cache.get(path)
    except FileNotFoundError:
        print(f"Error: File not found: {path}", file=sys.stderr)
    except PermissionError:
        print(f"Error: Permission denied: {path}", file=sys.stderr)
    except UnicodeDecodeError as e:
        print(f"Error: {path} is not valid UTF-8: {e}", file=sys.stderr)
    except AggregationCancelled as e:
        print(f"Error: {e}", file=sys.stderr)
    raise typer.Exit(1)


def _print_lines(items) -> None:
    for item in items:
        print(item)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Completion and query tooling for hledger journals. "
        "Reads HLA_* settings (and a local .env) before running."
    ),
)

# Module-level argument objects (no calls in parameter defaults).
JOURNAL_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Journal file, or a directory to scan for journal files.",
    exists=False,  # the handler reports missing files itself
)


@app.command("summary")
def summary_cmd(path: Annotated[Path, JOURNAL_ARGUMENT]) -> None:
    """Print a JSON overview of the aggregated snapshot."""

    from .models import SnapshotSummary

    _cache, entry = _load_entry(path)
    print(SnapshotSummary.from_entry(entry).model_dump_json(indent=2))


@app.command("query")
def query_cmd(
    kind: QueryKind,
    path: Annotated[Path, JOURNAL_ARGUMENT],
    *,
    key: str | None = typer.Option(None, help="Tag name for 'tag-values'."),
    payee: str | None = typer.Option(None, help="Payee for 'templates'."),
) -> None:
    """List accounts, payees, commodities, tags, tag values or templates."""

    from . import api
    from .models import TemplateSummary

    _cache, entry = _load_entry(path)
    data = entry.data

    if kind is QueryKind.TAG_VALUES:
        if not key:
            print("Error: --key is required for tag-values", file=sys.stderr)
            raise typer.Exit(1)
        _print_lines(api.get_tag_values(data, key))
    elif kind is QueryKind.TEMPLATES:
        if not payee:
            print("Error: --payee is required for templates", file=sys.stderr)
            raise typer.Exit(1)
        rows = [
            TemplateSummary(
                payee=t.payee,
                accounts=[p.account for p in t.postings],
                usage_count=t.usage_count,
                recent_count=api.recent_template_count(data, t),
                last_used_date=t.last_used_date,
            ).model_dump()
            for t in api.get_transaction_templates(data, payee)
        ]
        print(json.dumps(rows, indent=2, ensure_ascii=False))
    elif kind is QueryKind.LAST_DATE:
        last = api.get_last_date(data)
        if last:
            print(last)
    else:
        getters = {
            QueryKind.ACCOUNTS: api.get_all_accounts,
            QueryKind.DEFINED_ACCOUNTS: api.get_defined_accounts,
            QueryKind.USED_ACCOUNTS: api.get_used_accounts,
            QueryKind.PAYEES: api.get_payees,
            QueryKind.COMMODITIES: api.get_commodities,
            QueryKind.TAGS: api.get_tag_keys,
        }
        _print_lines(getters[kind](data))


@app.command("classify")
def classify_cmd(
    line: str,
    column: int | None = typer.Argument(None, help="Cursor column; end of line when omitted."),
) -> None:
    """Print the editing context at COLUMN of LINE."""

    from .position import analyze

    col = len(line) if column is None else column
    try:
        info = analyze(line, col)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    domain = info.domain
    print(f"{info.context.value}\t{domain.value if domain else '-'}")


@app.command("complete")
def complete_cmd(
    path: Annotated[Path, JOURNAL_ARGUMENT],
    line: str,
    *,
    column: int | None = typer.Option(None, help="Cursor column; end of line when omitted."),
    payee: str | None = typer.Option(None, help="Payee of the transaction being edited."),
    as_json: bool = typer.Option(False, "--json", help="Emit completion items as JSON."),
) -> None:
    """Print the completions offered for LINE against the journal at PATH."""

    from .completion import CompletionEngine
    from .config import load_settings

    _cache, entry = _load_entry(path)
    engine = CompletionEngine(entry.data, settings=load_settings())
    col = len(line) if column is None else column
    try:
        items = engine.complete(line, col, payee=payee)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    if as_json:
        rows = [
            CompletionOut(
                label=i.label,
                kind=i.kind.value,
                insert_text=i.insert_text,
                replace_start=i.replace_start,
                score=i.score,
                sort_key=i.sort_key,
                detail=i.detail,
            ).model_dump()
            for i in items
        ]
        print(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    for i in items:
        label = i.label.replace("\n", "\\n")
        print(f"{i.kind.value}\t{label}\t{i.detail or ''}")


@app.command("repl")
def repl_cmd(path: Annotated[Path, JOURNAL_ARGUMENT]) -> None:
    """Type journal lines with live completion (Tab, Esc to quit)."""

    from .completion import CompletionEngine
    from .config import load_settings
    from .position import AFTER_DATE_RE
    from .term_ui import prompt_journal_line

    cache, entry = _load_entry(path)
    engine = CompletionEngine(entry.data, settings=load_settings())
    current_payee: str | None = None

    while True:
        try:
            text = prompt_journal_line(engine, payee=lambda: current_payee)
        except (EOFError, KeyboardInterrupt):
            break
        if text is None:
            break
        m = AFTER_DATE_RE.match(text)
        if m is not None:
            current_payee = m.group("payee").split("|")[0].strip() or None
        print(text)
        if not path.is_dir():
            engine.refresh(cache, path)
    engine.dispose()
    cache.dispose()


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m hledger_assist.cli`
    app()
