"""Web-Augmentation Gatherer - concurrent web search for deep-search turns.

Providers are queried in parallel, each under its own timeout. A provider
that errors or times out contributes nothing and never aborts the others.
Results are merged with topic-matched community links and generic search
engine links, de-duplicated by normalized URL, ranked and truncated.
"""

import asyncio
import logging
import re
from typing import List, Optional, Sequence
from urllib.parse import quote, quote_plus, urlsplit, urlunsplit

import httpx

from modelrelay.agent.prompts import detect_language
from modelrelay.agent.schemas import SearchResult

logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 12
CONTEXT_RESULT_LIMIT = 8

_HTML_TAG = re.compile(r"<[^>]*>")

CODE_QUERY = re.compile(r"code|برمج|كود|javascript|python|react|api|function|error|bug")
RESEARCH_QUERY = re.compile(r"research|study|paper|علمي|بحث|دراسة")
NEWS_QUERY = re.compile(r"news|خبر|أخبار|breaking")
VIDEO_QUERY = re.compile(r"video|tutorial|شرح|how to")

GENERIC_ENGINE_DOMAINS = ("google.com", "bing.com")


def extract_domain(url: str) -> str:
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return url
    return host[4:] if host.startswith("www.") else host or url


def favicon_for(domain: str) -> str:
    return f"https://www.google.com/s2/favicons?domain={domain}&sz=32"


def make_result(title: str, snippet: str, url: str) -> SearchResult:
    domain = extract_domain(url)
    return SearchResult(title=title, snippet=snippet, url=url, domain=domain, favicon=favicon_for(domain))


def normalize_url(url: str) -> str:
    """Canonical form used for de-duplication.

    Lower-cases scheme and host, drops a leading ``www.``, the fragment and
    any trailing slash on the path. The query string is kept.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url.strip().lower()
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if parts.port:
        host = f"{host}:{parts.port}"
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), host, path, parts.query, ""))


def deduplicate(results: Sequence[SearchResult]) -> List[SearchResult]:
    """Keep the first result for each normalized URL."""
    seen = set()
    unique = []
    for result in results:
        key = normalize_url(result.url)
        if key not in seen:
            seen.add(key)
            unique.append(result)
    return unique


def score_result(result: SearchResult, query: str) -> int:
    """Relevance score: encyclopedia > official docs > community > generic engines."""
    domain = result.domain.lower()
    query_lower = query.lower()

    if any(domain == d or domain.endswith("." + d) for d in GENERIC_ENGINE_DOMAINS):
        if not domain.startswith(("scholar.", "news.")):
            return 0

    score = 0
    if "wikipedia" in domain:
        score += 10
    if "mozilla.org" in domain or domain.startswith("developer."):
        score += 8
    if "stackoverflow" in domain and CODE_QUERY.search(query_lower):
        score += 6
    if "github" in domain and CODE_QUERY.search(query_lower):
        score += 5
    if query_lower and query_lower in result.title.lower():
        score += 3
    return score


def rank_results(results: Sequence[SearchResult], query: str) -> List[SearchResult]:
    """Stable sort by score; ties keep arrival order."""
    return sorted(results, key=lambda r: score_result(r, query), reverse=True)


def topic_sources(query: str) -> List[SearchResult]:
    """Community and reference links matched to the query's topic."""
    query_lower = query.lower()
    encoded = quote_plus(query)
    sources: List[SearchResult] = []

    if CODE_QUERY.search(query_lower):
        sources.extend([
            make_result("Stack Overflow - Programming Q&A",
                        "Community-driven programming questions and answers",
                        f"https://stackoverflow.com/search?q={encoded}"),
            make_result("GitHub - Code Repository",
                        "Open source code examples and projects",
                        f"https://github.com/search?q={encoded}"),
            make_result("MDN Web Docs",
                        "Web development documentation and tutorials",
                        f"https://developer.mozilla.org/en-US/search?q={encoded}"),
        ])

    if RESEARCH_QUERY.search(query_lower):
        sources.extend([
            make_result("Google Scholar - Academic Research",
                        "Academic papers and scholarly articles",
                        f"https://scholar.google.com/scholar?q={encoded}"),
            make_result("arXiv - Scientific Papers",
                        "Open access scientific research papers",
                        f"https://arxiv.org/search/?query={encoded}"),
        ])

    if NEWS_QUERY.search(query_lower):
        sources.append(make_result("Google News - Latest Headlines",
                                   "Breaking news and current events",
                                   f"https://news.google.com/search?q={encoded}"))

    if VIDEO_QUERY.search(query_lower):
        sources.append(make_result("YouTube - Video Tutorials",
                                   "Educational videos and tutorials",
                                   f"https://www.youtube.com/results?search_query={encoded}"))
    return sources


def generic_sources(query: str, language: str) -> List[SearchResult]:
    """Plain search-engine links; always present so results are never empty."""
    encoded = quote_plus(query)
    if language == "ar":
        google_title, bing_title = f"بحث Google: {query}", f"بحث Bing: {query}"
    else:
        google_title, bing_title = f"Google Search: {query}", f"Bing Search: {query}"
    return [
        make_result(google_title, "Web search results", f"https://www.google.com/search?q={encoded}"),
        make_result(bing_title, "Web search results", f"https://www.bing.com/search?q={encoded}"),
    ]


def format_search_context(results: Sequence[SearchResult], limit: int = CONTEXT_RESULT_LIMIT) -> str:
    """Numbered '[i] title: snippet' lines for the LLM prompt."""
    return "\n".join(
        f"[{i}] {result.title}: {result.snippet}"
        for i, result in enumerate(results[:limit], start=1)
    )


# ============== Providers ==============

class SearchProvider:
    """Base class for a web search backend."""

    name = "base"

    async def search(self, client: httpx.AsyncClient, query: str, language: str) -> List[SearchResult]:
        raise NotImplementedError


class DuckDuckGoProvider(SearchProvider):
    """DuckDuckGo Instant Answer API."""

    name = "duckduckgo"
    URL = "https://api.duckduckgo.com/"

    async def search(self, client: httpx.AsyncClient, query: str, language: str) -> List[SearchResult]:
        response = await client.get(
            self.URL,
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
        )
        response.raise_for_status()
        if not response.text.strip():
            return []
        data = response.json()

        results = []
        if data.get("AbstractText"):
            url = data.get("AbstractURL") or f"https://duckduckgo.com/?q={quote_plus(query)}"
            results.append(make_result(data.get("Heading") or query, data["AbstractText"], url))

        for topic in (data.get("RelatedTopics") or [])[:5]:
            text = topic.get("Text") if isinstance(topic, dict) else None
            url = topic.get("FirstURL") if isinstance(topic, dict) else None
            if text and url:
                results.append(make_result(text.split(" - ")[0], text, url))
        return results


class WikipediaProvider(SearchProvider):
    """MediaWiki search against the Arabic or English Wikipedia."""

    name = "wikipedia"

    async def search(self, client: httpx.AsyncClient, query: str, language: str) -> List[SearchResult]:
        lang = detect_language(query)
        response = await client.get(
            f"https://{lang}.wikipedia.org/w/api.php",
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "format": "json",
                "srlimit": 3,
            },
        )
        response.raise_for_status()
        pages = response.json().get("query", {}).get("search", [])

        fallback_snippet = "مقالة موسوعية" if lang == "ar" else "Encyclopedia article"
        results = []
        for page in pages[:2]:
            title = page.get("title", "")
            snippet = _HTML_TAG.sub("", page.get("snippet") or "") or fallback_snippet
            url = f"https://{lang}.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}"
            results.append(SearchResult(
                title=title,
                snippet=snippet,
                url=url,
                domain=f"{lang}.wikipedia.org",
                favicon=favicon_for("wikipedia.org"),
            ))
        return results


class BraveProvider(SearchProvider):
    """Brave Search API; skipped when no key is configured."""

    name = "brave"
    URL = "https://api.search.brave.com/res/v1/web/search"

    def __init__(self, api_key: str = ""):
        self.api_key = api_key

    async def search(self, client: httpx.AsyncClient, query: str, language: str) -> List[SearchResult]:
        if not self.api_key:
            logger.debug("Brave API key not configured, skipping")
            return []

        response = await client.get(
            self.URL,
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
            params={"q": query, "count": 10},
        )
        response.raise_for_status()
        return [
            make_result(item.get("title", ""), item.get("description", ""), item["url"])
            for item in response.json().get("web", {}).get("results", [])[:10]
            if item.get("url")
        ]


# ============== Gatherer ==============

class WebSearchGatherer:
    """Fan out to search providers and merge their results."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        providers: Optional[List[SearchProvider]] = None,
        provider_timeout: float = 8.0,
        brave_api_key: str = "",
    ):
        self.http_client = http_client
        self.providers = providers if providers is not None else [
            DuckDuckGoProvider(),
            WikipediaProvider(),
            BraveProvider(brave_api_key),
        ]
        self.provider_timeout = provider_timeout

    async def _run_provider(self, provider: SearchProvider, query: str, language: str) -> List[SearchResult]:
        return await asyncio.wait_for(
            provider.search(self.http_client, query, language),
            timeout=self.provider_timeout,
        )

    async def search(
        self,
        query: str,
        language: Optional[str] = None,
        limit: int = SEARCH_RESULT_LIMIT,
    ) -> List[SearchResult]:
        """Search all providers concurrently; never returns an empty list."""
        language = language or detect_language(query)

        outcomes = await asyncio.gather(*[
            self._run_provider(provider, query, language)
            for provider in self.providers
        ], return_exceptions=True)

        collected: List[SearchResult] = []
        for provider, outcome in zip(self.providers, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.warning(f"Search provider {provider.name} timed out after {self.provider_timeout}s")
                continue
            if isinstance(outcome, BaseException):
                logger.warning(f"Search provider {provider.name} failed: {outcome}")
                continue
            logger.info(f"Search provider {provider.name} returned {len(outcome)} results")
            collected.extend(outcome)

        collected.extend(topic_sources(query))
        collected.extend(generic_sources(query, language))

        ranked = rank_results(deduplicate(collected), query)
        return ranked[:limit]
