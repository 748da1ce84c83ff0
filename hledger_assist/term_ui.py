"""Terminal front end for the completion engine (prompt_toolkit-based).

- ``JournalCompleter`` adapts :class:`~hledger_assist.completion.CompletionEngine`
  to prompt_toolkit's ``Completer`` protocol. It completes the current line
  of the document, so it works in single-line prompts and multi-line buffers
  alike.
- ``JournalAutoSuggest`` shows the remainder of the best-ranked completion
  as greyed inline text when it extends what is typed.
- ``prompt_journal_line`` runs one prompt with both attached; ``hledger-assist
  repl`` is a loop around it.

Kept apart from the engine so the engine stays free of terminal concerns and
the prompt can be driven headlessly in tests (pipe input + ``DummyOutput``).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import date

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style

from .completion import CompletionEngine, CompletionItem, CompletionKind
from .logging_setup import get_logger

_logger = get_logger("hledger_assist.term_ui")

_STYLE = Style.from_dict({"auto-suggestion": "fg:#888888"})


class JournalCompleter(Completer):
    """Completions for the cursor's line from a :class:`CompletionEngine`.

    Parameters
    ----------
    engine:
        Source of suggestions.
    payee:
        Optional callable returning the payee of the transaction being
        edited; used to rank posting accounts.
    today:
        Optional callable returning the reference date for date candidates.
    """

    def __init__(
        self,
        engine: CompletionEngine,
        *,
        payee: Callable[[], str | None] | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.engine = engine
        self._payee = payee
        self._today = today

    def items(self, document: Document) -> list[CompletionItem]:
        return self.engine.complete(
            document.current_line,
            document.cursor_position_col,
            payee=self._payee() if self._payee else None,
            today=self._today() if self._today else None,
        )

    def get_completions(
        self, document: Document, complete_event: CompleteEvent
    ) -> Iterator[Completion]:
        col = document.cursor_position_col
        for item in self.items(document):
            yield Completion(
                item.insert_text,
                start_position=item.replace_start - col,
                display=item.label,
                display_meta=item.detail or item.kind.value,
            )


class JournalAutoSuggest(AutoSuggest):
    """Inline remainder of the top completion when it extends the typed text."""

    def __init__(self, completer: JournalCompleter) -> None:
        self._completer = completer

    def remainder(self, document: Document) -> str | None:
        """Text the top completion would add after the cursor, if it extends the typed text."""

        items = self._completer.items(document)
        if not items:
            return None
        top = items[0]
        # Multi-line template snippets are offered from the menu only.
        if top.kind is CompletionKind.TEMPLATE or "\n" in top.insert_text:
            return None
        typed = document.current_line_before_cursor[top.replace_start :]
        if not typed or not top.insert_text.lower().startswith(typed.lower()):
            return None
        return top.insert_text[len(typed) :] or None

    def get_suggestion(self, buffer, document: Document) -> Suggestion | None:
        rest = self.remainder(document)
        return Suggestion(rest) if rest else None


def prompt_journal_line(
    engine: CompletionEngine,
    *,
    message: str = "> ",
    session: PromptSession | None = None,
    default: str = "",
    payee: Callable[[], str | None] | None = None,
) -> str | None:
    """Read one journal line with completion; ``None`` when cancelled (Esc).

    Tab accepts the inline suggestion when one is shown and otherwise opens
    (or advances) the completion menu.
    """

    completer = JournalCompleter(engine, payee=payee)
    suggest = JournalAutoSuggest(completer)
    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        b = event.app.current_buffer
        s = getattr(b, "suggestion", None)
        suggestion_text = getattr(s, "text", None)
        # Suggestions arrive asynchronously; compute one when none is shown yet.
        if not suggestion_text:
            suggestion_text = suggest.remainder(b.document)
        if suggestion_text:
            b.insert_text(suggestion_text)
        elif b.complete_state is None:
            b.start_completion(select_first=True)
        else:
            b.complete_next()

    if session is None:
        sess: PromptSession = PromptSession(key_bindings=kb)
    else:
        sess = PromptSession(
            input=getattr(session, "input", None),
            output=getattr(session, "output", None),
            key_bindings=kb,
        )

    result = sess.prompt(
        message,
        default=default,
        completer=completer,
        auto_suggest=suggest,
        complete_while_typing=True,
        key_bindings=kb,
        style=_STYLE,
    )
    _logger.debug("term_ui:accepted chars=%d", len(result or ""))
    return result


__all__ = ["JournalAutoSuggest", "JournalCompleter", "prompt_journal_line"]
