"""Unit tests for the web search gatherer."""

import asyncio
from typing import List

import httpx
import pytest

from modelrelay.agent.schemas import SearchResult
from modelrelay.agent.web_search import (
    BraveProvider,
    DuckDuckGoProvider,
    SearchProvider,
    WebSearchGatherer,
    WikipediaProvider,
    deduplicate,
    extract_domain,
    format_search_context,
    make_result,
    normalize_url,
    rank_results,
    score_result,
    topic_sources,
)


class StaticProvider(SearchProvider):
    """Returns fixed results."""

    def __init__(self, name: str, results: List[SearchResult]):
        self.name = name
        self.results = results

    async def search(self, client, query, language):
        return list(self.results)


class FailingProvider(SearchProvider):
    name = "failing"

    async def search(self, client, query, language):
        raise httpx.ConnectError("unreachable")


class HangingProvider(SearchProvider):
    name = "hanging"

    async def search(self, client, query, language):
        await asyncio.sleep(10)
        return []


class TestUrlHelpers:

    def test_extract_domain_strips_www(self):
        assert extract_domain("https://www.example.com/path") == "example.com"

    def test_normalize_url(self):
        assert normalize_url("HTTPS://WWW.Example.com/a/b/#frag") == "https://example.com/a/b"
        assert normalize_url("https://example.com/a?q=1") == "https://example.com/a?q=1"

    def test_deduplicate_keeps_first(self):
        first = make_result("First", "", "https://www.example.com/page/")
        second = make_result("Second", "", "https://example.com/page")
        third = make_result("Third", "", "https://example.com/other")

        unique = deduplicate([first, second, third])

        assert [r.title for r in unique] == ["First", "Third"]


class TestRanking:
    """Encyclopedia > docs > community > generic engines."""

    def test_scores(self):
        query = "python error"
        assert score_result(make_result("x", "", "https://en.wikipedia.org/wiki/X"), query) == 10
        assert score_result(make_result("x", "", "https://developer.mozilla.org/x"), query) == 8
        assert score_result(make_result("x", "", "https://stackoverflow.com/q/1"), query) == 6
        assert score_result(make_result("x", "", "https://github.com/a/b"), query) == 5
        assert score_result(make_result("x", "", "https://www.google.com/search?q=x"), query) == 0

    def test_community_bonus_only_for_code_queries(self):
        result = make_result("x", "", "https://stackoverflow.com/q/1")
        assert score_result(result, "history of rome") == 0

    def test_title_match_bonus(self):
        result = make_result("Learn Rust Today", "", "https://blog.example.com/rust")
        assert score_result(result, "learn rust") == 3

    def test_rank_is_stable(self):
        a = make_result("A", "", "https://a.example.com")
        b = make_result("B", "", "https://b.example.com")
        wiki = make_result("W", "", "https://en.wikipedia.org/wiki/W")

        ranked = rank_results([a, b, wiki], "nothing")

        assert [r.title for r in ranked] == ["W", "A", "B"]


class TestTopicSources:

    def test_code_query_adds_dev_sources(self):
        domains = {r.domain for r in topic_sources("react hooks bug")}
        assert {"stackoverflow.com", "github.com", "developer.mozilla.org"} <= domains

    def test_plain_query_adds_nothing(self):
        assert topic_sources("weather tomorrow") == []

    def test_context_format(self):
        results = [make_result(f"T{i}", f"S{i}", f"https://e{i}.com") for i in range(10)]
        context = format_search_context(results)
        lines = context.splitlines()
        assert len(lines) == 8
        assert lines[0] == "[1] T0: S0"


class TestGatherer:
    """Concurrent fan-out and merging."""

    @pytest.mark.asyncio
    async def test_merges_and_dedupes(self):
        shared = make_result("Shared", "s", "https://example.com/page")
        gatherer = WebSearchGatherer(
            httpx.AsyncClient(),
            providers=[
                StaticProvider("one", [shared]),
                StaticProvider("two", [make_result("Shared again", "s", "https://www.example.com/page/")]),
            ],
        )

        results = await gatherer.search("some topic", "en")

        assert [r.title for r in results].count("Shared") == 1
        assert "Shared again" not in [r.title for r in results]

    @pytest.mark.asyncio
    async def test_never_empty(self):
        gatherer = WebSearchGatherer(httpx.AsyncClient(), providers=[FailingProvider()])

        results = await gatherer.search("anything at all", "en")

        assert {"google.com", "bing.com"} <= {r.domain for r in results}

    @pytest.mark.asyncio
    async def test_provider_failure_isolated(self):
        good = make_result("Good", "g", "https://good.example.com")
        gatherer = WebSearchGatherer(
            httpx.AsyncClient(),
            providers=[FailingProvider(), StaticProvider("ok", [good])],
        )

        results = await gatherer.search("query", "en")

        assert "Good" in [r.title for r in results]

    @pytest.mark.asyncio
    async def test_provider_timeout_isolated(self):
        good = make_result("Good", "g", "https://good.example.com")
        gatherer = WebSearchGatherer(
            httpx.AsyncClient(),
            providers=[HangingProvider(), StaticProvider("ok", [good])],
            provider_timeout=0.1,
        )

        results = await gatherer.search("query", "en")

        assert "Good" in [r.title for r in results]

    @pytest.mark.asyncio
    async def test_limit_applied(self):
        many = [make_result(f"R{i}", "", f"https://r{i}.example.com") for i in range(30)]
        gatherer = WebSearchGatherer(httpx.AsyncClient(), providers=[StaticProvider("many", many)])

        results = await gatherer.search("query", "en")

        assert len(results) == 12

    @pytest.mark.asyncio
    async def test_arabic_generic_titles(self):
        gatherer = WebSearchGatherer(httpx.AsyncClient(), providers=[])

        results = await gatherer.search("ما هو الذكاء الاصطناعي")

        assert any(r.title.startswith("بحث Google") for r in results)


class TestProviders:
    """Provider payload parsing against mock HTTP."""

    @pytest.mark.asyncio
    async def test_duckduckgo(self):
        def handler(request):
            return httpx.Response(200, json={
                "Heading": "Python",
                "AbstractText": "A programming language.",
                "AbstractURL": "https://en.wikipedia.org/wiki/Python",
                "RelatedTopics": [
                    {"Text": "Python 3 - latest major version", "FirstURL": "https://duckduckgo.com/Python_3"},
                    {"Name": "group without text"},
                ],
            })

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await DuckDuckGoProvider().search(client, "python", "en")

        assert [r.title for r in results] == ["Python", "Python 3"]

    @pytest.mark.asyncio
    async def test_duckduckgo_empty_body(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
            assert await DuckDuckGoProvider().search(client, "x", "en") == []

    @pytest.mark.asyncio
    async def test_wikipedia_uses_query_language(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return httpx.Response(200, json={"query": {"search": [
                {"title": "بغداد", "snippet": "<span>عاصمة</span> العراق"},
                {"title": "Second", "snippet": ""},
                {"title": "Third", "snippet": "dropped"},
            ]}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await WikipediaProvider().search(client, "بغداد", "ar")

        assert seen == ["ar.wikipedia.org"]
        assert len(results) == 2
        assert results[0].snippet == "عاصمة العراق"
        assert results[1].snippet == "مقالة موسوعية"

    @pytest.mark.asyncio
    async def test_brave_without_key_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await BraveProvider("").search(client, "x", "en") == []
        assert calls == []

    @pytest.mark.asyncio
    async def test_brave_with_key(self):
        def handler(request):
            assert request.headers["X-Subscription-Token"] == "brave-key"
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Result", "description": "Desc", "url": "https://site.example.com"},
            ]}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await BraveProvider("brave-key").search(client, "x", "en")

        assert results[0].domain == "site.example.com"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
