"""Tests for entity resolution against the club roster."""

import pytest

from club_stats_intelligence.config.club_entities import EntityType
from club_stats_intelligence.src.entity_resolver import EntityResolver
from club_stats_intelligence.src.normalizer import normalize_question


@pytest.fixture
def resolver(roster):
    return EntityResolver(roster)


def resolve(resolver, question, user_context=None, allow_implicit_context=True):
    return resolver.resolve(normalize_question(question), user_context, allow_implicit_context)


def test_full_name_exact_match(resolver):
    result = resolve(resolver, "How many goals has Luke Bangs scored?")

    assert len(result.entities) == 1
    entity = result.entities[0]
    assert entity.canonical_name == "Luke Bangs"
    assert entity.entity_type == EntityType.PLAYER
    assert entity.match_confidence == 1.0
    assert result.unresolved == ()


def test_lowercase_name_still_matches(resolver):
    result = resolve(resolver, "how many goals has jonny sourris scored")
    assert [e.canonical_name for e in result.entities] == ["Jonny Sourris"]


def test_unique_surname_resolves(resolver):
    result = resolve(resolver, "How many goals has Goddard scored?")

    assert [e.canonical_name for e in result.entities] == ["Oli Goddard"]
    assert result.entities[0].match_confidence < 1.0


def test_shared_surname_is_ambiguous(resolver):
    result = resolve(resolver, "How many goals has Smith scored?")

    assert result.entities == ()
    assert len(result.ambiguous) == 1
    assert result.ambiguous[0].term == "Smith"
    assert result.ambiguous[0].candidates == ("Dan Smith", "Tom Smith")


def test_misspelled_name_fuzzy_matches(resolver):
    result = resolve(resolver, "How many goals has Luke Bangz scored?")

    assert [e.canonical_name for e in result.entities] == ["Luke Bangs"]
    assert 0.85 <= result.entities[0].match_confidence < 1.0


def test_unknown_name_is_unresolved(resolver):
    result = resolve(resolver, "How many goals has Joe Bloggs scored?")

    assert result.entities == ()
    assert result.unresolved == ("Joe Bloggs",)


def test_team_alias(resolver):
    result = resolve(resolver, "How many goals have the first team scored?")

    assert [(e.canonical_name, e.entity_type) for e in result.entities] == [("1s", EntityType.TEAM)]


def test_multiple_players(resolver):
    result = resolve(resolver, "Compare Luke Bangs and Oli Goddard")
    assert {e.canonical_name for e in result.entities} == {"Luke Bangs", "Oli Goddard"}


def test_user_context_for_first_person(resolver):
    result = resolve(resolver, "What are my stats?", user_context="Luke Bangs")
    assert [e.canonical_name for e in result.entities] == ["Luke Bangs"]


def test_user_context_ignored_when_someone_else_is_named(resolver):
    result = resolve(resolver, "How many goals has Oli Goddard scored?", user_context="Luke Bangs")
    assert [e.canonical_name for e in result.entities] == ["Oli Goddard"]


def test_implicit_user_context(resolver):
    implicit = resolve(resolver, "How many goals?", user_context="Luke Bangs")
    assert [e.canonical_name for e in implicit.entities] == ["Luke Bangs"]

    not_allowed = resolve(resolver, "How many goals?", user_context="Luke Bangs", allow_implicit_context=False)
    assert not_allowed.entities == ()


def test_unregistered_user_context_is_ignored(resolver):
    result = resolve(resolver, "What are my stats?", user_context="Someone Else")
    assert result.entities == ()


def test_resolution_is_deterministic(resolver):
    question = "Compare Luke Bangs, Goddard and the 2s"
    first = resolve(resolver, question)
    assert all(resolve(resolver, question) == first for _ in range(3))


@pytest.mark.parametrize("question,expected", [
    ("Has Luke Bangs got more goals than Oli Goddard?", ["Luke Bangs", "Oli Goddard"]),
    ("Has Oli Goddard got more goals than Luke Bangs?", ["Oli Goddard", "Luke Bangs"]),
    ("Has Goddard got more goals than Sourris?", ["Oli Goddard", "Jonny Sourris"]),
])
def test_equal_confidence_keeps_mention_order(resolver, question, expected):
    result = resolve(resolver, question)
    assert [e.canonical_name for e in result.entities] == expected
