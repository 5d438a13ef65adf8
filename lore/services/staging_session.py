"""Interactive staging session for the `watch` command.

Text is buffered line by line; a blank line sends the buffer through extraction and
consistency checking. Extracted facts wait as pending until the operator saves or
discards them. Saving is gated on critical consistency issues.
"""

import logging
from collections.abc import Callable
from enum import StrEnum

from lore.memory.entities import ConsistencyIssue, Fact
from lore.services.context import RequestContext
from lore.services.extraction_service import ExtractionOptions, ExtractionService
from lore.services.fact_service import FactService
from lore.utils.logging_config import log_context

logger = logging.getLogger(__name__)

QUIT_COMMANDS = ("quit", "exit")
CONFIRM_ANSWERS = ("y", "yes")
SAVE_CONFIRM_PROMPT = "Warning: There are CRITICAL consistency issues. Save anyway? [y/N] "

BANNER = (
    "Lore interactive mode. Enter text and press Enter twice to check.\n"
    "Commands: 'save' to save pending facts, 'discard' to clear, 'list' to show pending, "
    "'quit' to exit"
)

HELP_TEXT = """Commands:
  save    - Save all pending facts to database
  discard - Discard all pending facts
  list    - Show pending facts
  quit    - Exit interactive mode
  help    - Show this help

Enter text and press Enter twice to extract and check facts."""


class SessionState(StrEnum):
    IDLE = "idle"
    BUFFERING = "buffering"
    CHECKING = "checking"
    PENDING = "pending"
    CONFIRM_QUIT = "confirm_quit"
    CLOSED = "closed"


def has_critical(issues: list[ConsistencyIssue]) -> bool:
    return any(issue.is_critical for issue in issues)


def format_fact(fact: Fact) -> str:
    return f"[{fact.type}] {fact.subject} {fact.predicate} {fact.object}"


class StagingSession:
    """Line-driven controller holding pending facts for one watch session.

    Args:
        ctx: World and settings for extraction and saving.
        extraction: Service used with check_only=True to extract and compare.
        facts: Service that commits pending facts with ledger and audit entries.
        source: Source name attached to extracted facts.
        auto_save: Save each batch immediately when it has no critical issue.
        output: Receives every line the session prints.
        ask: Reads the operator's answer to a confirmation prompt.
    """

    def __init__(
        self,
        ctx: RequestContext,
        extraction: ExtractionService,
        facts: FactService,
        source: str = "interactive",
        auto_save: bool = False,
        output: Callable[[str], None] = print,
        ask: Callable[[str], str] = input,
    ):
        self.ctx = ctx
        self.extraction = extraction
        self.facts = facts
        self.source = source
        self.auto_save = auto_save
        self.output = output
        self.ask = ask

        self.pending_facts: list[Fact] = []
        self.pending_issues: list[ConsistencyIssue] = []
        self._buffer: list[str] = []
        self._batch_count = 0
        self._checking = False
        self._quit_requested = False
        self._closed = False

    @property
    def state(self) -> SessionState:
        if self._closed:
            return SessionState.CLOSED
        if self._quit_requested:
            return SessionState.CONFIRM_QUIT
        if self._checking:
            return SessionState.CHECKING
        if self._buffer:
            return SessionState.BUFFERING
        if self.pending_facts:
            return SessionState.PENDING
        return SessionState.IDLE

    def has_critical_issues(self) -> bool:
        """True if any pending issue is critical."""
        return has_critical(self.pending_issues)

    def banner(self) -> None:
        self.output(BANNER)
        self.output("")

    def handle_line(self, line: str) -> bool:
        """Process one input line.

        Returns:
            False once the session has ended, True otherwise.
        """
        if self._closed:
            return False

        command = line.strip().lower()

        if self._quit_requested:
            self._quit_requested = False
            if command in QUIT_COMMANDS:
                return self._close()
            self.output("Quit cancelled.")
            return True

        if command in QUIT_COMMANDS:
            return self.quit()
        if command == "save":
            self.save()
            return True
        if command == "discard":
            self.discard()
            return True
        if command == "list":
            self.list_pending()
            return True
        if command == "help":
            self.help()
            return True

        if not command:
            if self._buffer:
                text = "\n".join(self._buffer).strip()
                self._buffer.clear()
                if text:
                    self.process_input(text)
            return True

        self._buffer.append(line)
        return True

    def process_input(self, text: str) -> None:
        """Extract and check *text*, then queue the results as pending."""
        self._batch_count += 1
        with log_context(prefix=f"batch{self._batch_count}"):
            self._process_batch(text)

    def _process_batch(self, text: str) -> None:
        self.output("Checking...")
        self._checking = True
        try:
            result = self.extraction.extract(
                self.ctx,
                text,
                self.source,
                ExtractionOptions(check_consistency=True, check_only=True),
            )
        except Exception as e:
            logger.exception("Extraction failed in watch session")
            self.output(f"Error: {e}")
            return
        finally:
            self._checking = False

        if not result.facts:
            self.output("No facts found in input.")
            return

        self.output(f"Found {len(result.facts)} facts:")
        for i, fact in enumerate(result.facts, start=1):
            self.output(f"  {i}. {format_fact(fact)}")

        if result.issues:
            self.output("")
            for issue in result.issues:
                self.output(f"{issue.severity.upper()}: {issue.description}")
                self.output(f"  New:      {issue.new_fact.as_text()}")
                existing = issue.existing_fact
                self.output(f"  Existing: {existing.as_text()} ({existing.source_file})")

        self.pending_facts.extend(result.facts)
        self.pending_issues.extend(result.issues)
        self.output(
            f"Facts queued ({len(self.pending_facts)} total pending). "
            "Type 'save' to commit or continue adding."
        )

        if self.auto_save and not has_critical(result.issues):
            logger.debug("Auto-saving batch of %d facts", len(result.facts))
            self.save()

    def save(self) -> int:
        """Commit all pending facts, asking first if a critical issue is pending.

        Returns:
            Number of facts saved; 0 when nothing was saved.
        """
        if not self.pending_facts:
            self.output("No pending facts to save.")
            return 0

        if self.has_critical_issues():
            try:
                answer = self.ask(SAVE_CONFIRM_PROMPT)
            except EOFError:
                answer = ""
            if answer.strip().lower() not in CONFIRM_ANSWERS:
                self.output("Save cancelled.")
                return 0

        try:
            saved = self.facts.save_batch(
                self.ctx, list(self.pending_facts), reason="watch", source=self.source
            )
        except Exception as e:
            logger.exception("Saving pending facts failed")
            self.output(f"Error: {e}")
            return 0

        self.output(f"Saved {saved} facts.")
        self.pending_facts.clear()
        self.pending_issues.clear()
        return saved

    def discard(self) -> None:
        """Drop all pending facts and issues without confirmation."""
        logger.debug("Discarding %d pending facts", len(self.pending_facts))
        self.pending_facts.clear()
        self.pending_issues.clear()
        self.output("Pending facts discarded.")

    def list_pending(self) -> None:
        if not self.pending_facts:
            self.output("No pending facts.")
            return

        self.output(f"Pending facts ({len(self.pending_facts)}):")
        for i, fact in enumerate(self.pending_facts, start=1):
            self.output(f"  {i}. {format_fact(fact)}")

        if self.pending_issues:
            self.output("")
            self.output(f"Pending issues ({len(self.pending_issues)}):")
            for issue in self.pending_issues:
                self.output(f"  - {issue.severity.upper()}: {issue.description}")

    def help(self) -> None:
        self.output(HELP_TEXT)

    def quit(self) -> bool:
        """Request the end of the session; pending facts require a second quit."""
        if self.pending_facts:
            self._quit_requested = True
            self.output(
                f"Warning: {len(self.pending_facts)} pending facts will be lost. "
                "Type 'quit' again to confirm."
            )
            return True
        return self._close()

    def _close(self) -> bool:
        self._closed = True
        self.output("Goodbye!")
        return False

    def run(self, read_line: Callable[[str], str] = input) -> None:
        """Read lines until the session ends or input is exhausted."""
        self.banner()
        while True:
            try:
                line = read_line("> ")
            except EOFError:
                break
            if not self.handle_line(line):
                break
        if not self._closed:
            if self.pending_facts:
                logger.warning("Input ended with %d unsaved facts", len(self.pending_facts))
            self._closed = True
