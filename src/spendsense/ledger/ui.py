"""Interactive prompts for picking members and confirming destructive actions."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import Member

logger = logging.getLogger(__name__)


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="al" matches "Alice"
        query="bb" matches "Bob B."
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class MemberCompleter(Completer):
    """Fuzzy search completer for group members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the selectable members."""
        self.members = members
        self.name_to_id = {}
        for member in members:
            # Duplicate names are disambiguated by id
            label = member.name
            if label in self.name_to_id:
                label = f"{member.name} ({member.id})"
            self.name_to_id[label] = member.id

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()
        for label in self.name_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def select_member_interactive(
    members: list[Member],
    prompt: str,
    suggested_member_id: str | None = None,
) -> str | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Selectable members
        prompt: Label shown before the input
        suggested_member_id: Member pre-filled as the default answer

    Returns:
        Selected member id, or None to cancel
    """
    if not members:
        print("\n⚠️  No members to choose from")
        return None

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    default_text = ""
    for label, member_id in completer.name_to_id.items():
        if member_id == suggested_member_id:
            default_text = label
            break

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    try:
        while True:
            result = session.prompt(
                f"{prompt}: ", default=default_text, complete_while_typing=True
            )
            if not result:
                return None

            member_id = completer.name_to_id.get(result.strip())
            if member_id:
                logger.debug(f"User selected member {member_id}")
                return member_id

            print("❌ Unknown member. Press Tab to complete from the list.")
            default_text = ""

    except (KeyboardInterrupt, EOFError):
        print("\n⏭️  Cancelled")
        return None


def confirm_action(message: str) -> bool:
    """Simple yes/no confirmation, defaulting to no."""
    try:
        response = input(f"{message} [y/N] ").strip().lower()
    except (KeyboardInterrupt, EOFError):
        return False
    return response in ("y", "yes")
