from types import SimpleNamespace

import pytest

from app.services.name_normalizer import RosterIndex, normalize_name


def _user(user_id, first_name, last_name, middle_name=None):
    return SimpleNamespace(id=user_id, first_name=first_name, middle_name=middle_name, last_name=last_name)


@pytest.mark.parametrize("raw", ["  JOHN   Dela Cruz ", "john dela cruz", "John\tDela  Cruz"])
def test_normalize_is_case_and_whitespace_insensitive(raw):
    assert normalize_name(raw) == "john dela cruz"


def test_normalize_is_idempotent():
    once = normalize_name("  Maria  CLARA   Santos ")
    assert normalize_name(once) == once


def test_normalize_empty_values():
    assert normalize_name(None) == ""
    assert normalize_name("   ") == ""


def test_roster_matches_last_name_first_order():
    roster = RosterIndex([_user(1, "Juan", "Dela Cruz"), _user(2, "Maria", "Santos")])

    assert roster.match("DELA CRUZ JUAN").id == 1
    assert roster.match("Santos, Maria").id == 2


def test_roster_matches_middle_initial():
    roster = RosterIndex([_user(1, "Maria", "Santos", middle_name="Lopez")])

    assert roster.match("Maria L. Santos").id == 1
    assert roster.match("santos maria lopez").id == 1


def test_roster_matches_first_word_of_compound_first_name():
    roster = RosterIndex([_user(1, "Mary Grace", "Reyes")])

    assert roster.match("Mary Reyes").id == 1


def test_roster_exact_match_wins_over_loose_match():
    roster = RosterIndex([_user(1, "Ana", "Cruz"), _user(2, "Anabelle", "Cruz")])

    assert roster.match("Cruz Ana").id == 1
    assert roster.match("Cruz Anabelle").id == 2


def test_roster_ambiguous_match_returns_none():
    roster = RosterIndex([_user(1, "Jose", "Garcia"), _user(2, "Juan", "Garcia")])

    # 只有姓氏時兩位員工都符合
    assert roster.match("Garcia") is None


def test_roster_unknown_name_returns_none():
    roster = RosterIndex([_user(1, "Jose", "Garcia")])

    assert roster.match("Pedro Penduko") is None
    assert roster.match("") is None
