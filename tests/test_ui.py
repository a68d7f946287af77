"""Tests for interactive member selection helpers."""

from unittest.mock import patch

from prompt_toolkit.document import Document

from spendsense.ledger.ui import MemberCompleter, confirm_action, fuzzy_match
from spendsense.models import Member


def test_fuzzy_match():
    """Query characters must appear in order."""
    assert fuzzy_match("al", "alice")
    assert fuzzy_match("", "anything")
    assert not fuzzy_match("la", "al")


def test_completer_filters_and_disambiguates():
    """Duplicate names get their id appended; completions are fuzzy."""
    members = [
        Member(id="1", name="Alice"),
        Member(id="2", name="Bob"),
        Member(id="3", name="Alice"),
    ]
    completer = MemberCompleter(members)

    assert completer.name_to_id == {"Alice": "1", "Bob": "2", "Alice (3)": "3"}

    completions = [c.text for c in completer.get_completions(Document("ali"), None)]
    assert completions == ["Alice", "Alice (3)"]


def test_confirm_action_defaults_to_no():
    """Only an explicit yes confirms."""
    with patch("builtins.input", return_value=""):
        assert confirm_action("Delete?") is False
    with patch("builtins.input", return_value="Y"):
        assert confirm_action("Delete?") is True
    with patch("builtins.input", side_effect=EOFError):
        assert confirm_action("Delete?") is False
