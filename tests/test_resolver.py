"""Unit tests for the content identity resolver."""
import asyncio

import pytest

from app.resolve.resolver import ContentIdentityResolver, ResolverConfig
from app.resolve.youtube_search import SearchHit
from fakes import FakeSearch


def _resolver(search, **overrides):
    return ContentIdentityResolver(search, ResolverConfig(**overrides))


def test_query_variants_order():
    r = _resolver(FakeSearch())
    assert r.build_query_variants("Deep Work: Habits!", "Cal Newport") == [
        '"Deep Work Habits" "Cal Newport"',
        "Deep Work Habits Cal Newport",
        '"Deep Work Habits"',
        "Deep Work Habits",
        '"Cal Newport"',
    ]


def test_query_variants_without_channel():
    r = _resolver(FakeSearch())
    assert r.build_query_variants("Deep Work Habits", None) == ['"Deep Work Habits"', "Deep Work Habits"]


def test_query_variants_dedup_case_insensitive():
    r = _resolver(FakeSearch(), fallback_queries=["deep work habits", "Limitless Podcast", ""], min_title_length=50)
    variants = r.build_query_variants("Deep Work Habits")
    assert variants == ['"Deep Work Habits"', "Deep Work Habits", "Limitless Podcast"]


def test_fallback_queries_only_for_noisy_titles():
    r = _resolver(FakeSearch(), fallback_queries=["limitless podcast"], junk_title_phrases=["up next"])
    assert "limitless podcast" not in r.build_query_variants("Deep Work Habits", "Cal Newport")
    assert "limitless podcast" in r.build_query_variants("Up next", None)
    assert "limitless podcast" in r.build_query_variants("Hi", None)


def test_looks_like_ui_noise():
    r = _resolver(FakeSearch(), junk_title_phrases=["the only way", "subscribe"])
    assert r.looks_like_ui_noise("THE ONLY WAY") is True
    assert r.looks_like_ui_noise("Subscribe now for more") is True
    assert r.looks_like_ui_noise("abc") is True
    assert r.looks_like_ui_noise("Deep Work Habits") is False
    # phrase match is on word boundaries
    assert r.looks_like_ui_noise("Subscribers explained in depth") is False


def test_early_termination_after_confident_match():
    hit = SearchHit(title="Deep Work Habits", channel="Cal Newport", external_id="dw123")
    search = FakeSearch(default=[hit])
    r = _resolver(search, anchor_bonuses={"newport": 0.15})

    match = asyncio.run(r.resolve("Deep Work Habits", "Cal Newport"))

    assert match is not None
    assert match.combined_score == pytest.approx(0.95)
    assert match.external_id == "dw123"
    assert match.url == "https://www.youtube.com/watch?v=dw123"
    assert len(search.calls) == 1


def test_returns_none_below_accept_threshold():
    search = FakeSearch(default=[SearchHit(title="Zz Qq", channel="Q", external_id="x1")])
    r = _resolver(search)

    assert asyncio.run(r.resolve("Deep Work Habits", "Cal Newport")) is None
    # no early exit, so every variant was tried
    assert len(search.calls) == len(r.build_query_variants("Deep Work Habits", "Cal Newport"))


def test_returns_none_when_search_has_nothing():
    assert asyncio.run(_resolver(FakeSearch()).resolve("Deep Work Habits")) is None


def test_keeps_best_candidate_across_variants():
    weak = SearchHit(title="Deep Work Habbits", channel="Someone", external_id="weak")
    strong = SearchHit(title="Deep Work Habits", channel="Someone Else", external_id="strong")
    search = FakeSearch(results={'"Deep Work Habits"': [weak], "Deep Work Habits": [strong]})
    r = _resolver(search, high_confidence_threshold=0.99)

    match = asyncio.run(r.resolve("Deep Work Habits"))

    assert match.external_id == "strong"
    assert match.title_score == 1.0


def test_failing_variant_is_skipped():
    hit = SearchHit(title="Deep Work Habits", channel="Cal Newport", external_id="dw123")
    first = '"Deep Work Habits" "Cal Newport"'
    search = FakeSearch(default=[hit], failing=[first])

    match = asyncio.run(_resolver(search).resolve("Deep Work Habits", "Cal Newport"))

    assert match is not None
    assert search.calls[0] == first
    assert len(search.calls) == 2


def test_combined_score_is_clamped():
    hit = SearchHit(title="Deep Work Habits", channel="Cal Newport", external_id="dw123")
    r = _resolver(FakeSearch(), anchor_bonuses={"deep": 0.5, "work": 0.5})
    candidate = r.score(hit, "Deep Work Habits", "Cal Newport")
    assert candidate.bonus == 1.0
    assert candidate.combined_score == 1.0


def test_only_way_title_uses_anchor_fallback():
    anchor_hit = SearchHit(title="Limitless Podcast Ep 12 Focus", channel="Limitless", external_id="lim12")
    search = FakeSearch(results={"limitless podcast": [anchor_hit]})
    r = _resolver(
        search,
        junk_title_phrases=["the only way"],
        fallback_queries=["limitless podcast"],
        anchor_bonuses={"limitless": 0.4},
    )

    match = asyncio.run(r.resolve("THE ONLY WAY"))

    assert "limitless podcast" in search.calls
    assert match is not None
    assert match.external_id == "lim12"
    assert match.title_score < 0.5
    assert match.bonus == 0.4
    assert match.combined_score > 0.4
    assert match.query == "limitless podcast"
