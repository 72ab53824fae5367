# concisely/sources.py
"""
Search-based content sources for a user's topic.
Providers:
  - GoogleSearchProvider: Google Custom Search JSON API (articles)
  - YouTubeProvider: YouTube Data API v3 search (videos)
  - BraveSearchProvider: Brave Web Search API (articles)

A provider is only used when its API key is configured. Call
search_content_by_topic(topic, max_results, frequency) per topic.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
import hashlib

import requests

from . import config
from .llm import filter_relevant_items, generate_search_queries
from .logging_setup import get_logger

logger = get_logger("concisely.sources")

WINDOW_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}
GOOGLE_DATE_RESTRICT = {"daily": "d1", "weekly": "w1", "monthly": "m1"}
BRAVE_FRESHNESS = {"daily": "pd", "weekly": "pw", "monthly": "pm"}

_TRACKING_PARAMS = ("utm_", "fbclid", "gclid", "mc_cid", "mc_eid")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ---------- Utilities ----------

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)

def window_days(frequency: str) -> int:
    return WINDOW_DAYS.get(frequency, WINDOW_DAYS["weekly"])

def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def normalize_url(url: str) -> str:
    """Canonical form used for every duplicate check."""
    url = (url or "").strip()
    if not url:
        return ""
    parts = urlsplit(url)
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith(_TRACKING_PARAMS)
    ]
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ""))

# ---------- Items ----------

@dataclass
class ContentItem:
    title: str
    url: str
    snippet: str = ""
    published_at: Optional[datetime] = None
    source_type: str = "article"  # article | youtube
    source: str = ""

    @property
    def key(self) -> str:
        return normalize_url(self.url) or self.title.strip().lower()

    def to_dict(self) -> Dict:
        return asdict(self)

def _dedupe(items: Sequence[ContentItem]) -> List[ContentItem]:
    """Deduplicate by normalized URL (title when URL is missing)."""
    seen: set[str] = set()
    out: List[ContentItem] = []
    for it in items:
        key = hashlib.sha1(it.key.encode("utf-8", errors="ignore")).hexdigest()
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out

def _newest_first(item: ContentItem) -> datetime:
    return item.published_at or _EPOCH

# ---------- Provider base ----------

@dataclass
class ProviderResult:
    items: List[ContentItem] = field(default_factory=list)
    source_name: str = ""

class BaseProvider:
    name = "base"
    kind = "article"

    def fetch(self, query: str, frequency: str = "weekly", max_items: int = 5) -> ProviderResult:
        raise NotImplementedError

# ---------- Google Custom Search ----------

class GoogleSearchProvider(BaseProvider):
    """https://developers.google.com/custom-search/v1/reference/rest/v1/cse/list"""

    name = "google_cse"
    kind = "article"
    URL = "https://www.googleapis.com/customsearch/v1"

    def __init__(self, api_key: str, engine_id: str):
        self.api_key = api_key
        self.engine_id = engine_id

    def fetch(self, query: str, frequency: str = "weekly", max_items: int = 5) -> ProviderResult:
        params = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": query,
            "dateRestrict": GOOGLE_DATE_RESTRICT.get(frequency, "w1"),
            "sort": "date",
            "num": max(1, min(max_items, 10)),  # API hard limit
        }
        r = requests.get(self.URL, params=params, timeout=config.REQUESTS_TIMEOUT)
        r.raise_for_status()
        items: List[ContentItem] = []
        for it in r.json().get("items", []) or []:
            metatags = (it.get("pagemap") or {}).get("metatags") or [{}]
            items.append(ContentItem(
                title=it.get("title", ""),
                url=it.get("link", ""),
                snippet=it.get("snippet", "") or "",
                published_at=_parse_iso(metatags[0].get("article:published_time")),
                source_type="article",
                source=it.get("displayLink") or self.name,
            ))
        return ProviderResult(items=_dedupe(items)[:max_items], source_name=self.name)

# ---------- YouTube Data API ----------

class YouTubeProvider(BaseProvider):
    """https://developers.google.com/youtube/v3/docs/search/list"""

    name = "youtube"
    kind = "youtube"
    URL = "https://www.googleapis.com/youtube/v3/search"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def fetch(self, query: str, frequency: str = "weekly", max_items: int = 5) -> ProviderResult:
        since = _utc_now() - timedelta(days=window_days(frequency))
        params = {
            "key": self.api_key,
            "q": query,
            "part": "snippet",
            "type": "video",
            "order": "date",
            "maxResults": max(1, min(max_items, 50)),
            "publishedAfter": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        r = requests.get(self.URL, params=params, timeout=config.REQUESTS_TIMEOUT)
        r.raise_for_status()
        items: List[ContentItem] = []
        for it in r.json().get("items", []) or []:
            video_id = (it.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = it.get("snippet") or {}
            items.append(ContentItem(
                title=snippet.get("title", ""),
                url=f"https://www.youtube.com/watch?v={video_id}",
                snippet=snippet.get("description", "") or "",
                published_at=_parse_iso(snippet.get("publishedAt")),
                source_type="youtube",
                source=snippet.get("channelTitle") or self.name,
            ))
        return ProviderResult(items=_dedupe(items)[:max_items], source_name=self.name)

# ---------- Brave Search ----------

class BraveSearchProvider(BaseProvider):
    """https://api.search.brave.com/app/documentation/web-search/get-started"""

    name = "brave"
    kind = "article"
    URL = "https://api.search.brave.com/res/v1/web/search"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def fetch(self, query: str, frequency: str = "weekly", max_items: int = 5) -> ProviderResult:
        params = {
            "q": query,
            "count": max(1, min(max_items, 20)),
            "freshness": BRAVE_FRESHNESS.get(frequency, "pw"),
        }
        headers = {"Accept": "application/json", "X-Subscription-Token": self.api_key}
        r = requests.get(self.URL, params=params, headers=headers, timeout=config.REQUESTS_TIMEOUT)
        r.raise_for_status()
        results = ((r.json().get("web") or {}).get("results")) or []
        items: List[ContentItem] = []
        for it in results:
            items.append(ContentItem(
                title=it.get("title", ""),
                url=it.get("url", ""),
                snippet=it.get("description", "") or "",
                published_at=_parse_iso(it.get("page_age")),
                source_type="article",
                source=((it.get("profile") or {}).get("name")) or self.name,
            ))
        return ProviderResult(items=_dedupe(items)[:max_items], source_name=self.name)

# ---------- Orchestrator ----------

def build_providers() -> List[BaseProvider]:
    providers: List[BaseProvider] = []
    if config.GOOGLE_API_KEY and config.GOOGLE_SEARCH_ENGINE_ID:
        providers.append(GoogleSearchProvider(config.GOOGLE_API_KEY, config.GOOGLE_SEARCH_ENGINE_ID))
    if config.BRAVE_API_KEY:
        providers.append(BraveSearchProvider(config.BRAVE_API_KEY))
    if config.YOUTUBE_API_KEY:
        providers.append(YouTubeProvider(config.YOUTUBE_API_KEY))
    if not providers:
        logger.warning("NO_PROVIDERS_CONFIGURED")
    return providers

def fetch_candidates(
    queries: Sequence[str],
    providers: Sequence[BaseProvider],
    frequency: str = "weekly",
    max_items_per_provider: int = 5,
) -> List[ContentItem]:
    """
    Run every query against every provider. Providers for one query run in
    parallel; a failing provider is logged and contributes nothing.
    """
    if not providers:
        return []
    all_items: List[ContentItem] = []
    with ThreadPoolExecutor(max_workers=len(providers)) as pool:
        for query in queries:
            futures = [(p, pool.submit(p.fetch, query, frequency, max_items_per_provider)) for p in providers]
            for p, fut in futures:
                try:
                    res = fut.result()
                except Exception as e:
                    logger.warning(
                        "PROVIDER_FAILED",
                        extra={"handled": True, "provider": p.name, "query": query, "error": type(e).__name__},
                    )
                    continue
                all_items.extend(res.items)
    return _dedupe(all_items)

def balance_content_mix(items: Sequence[ContentItem], max_results: int) -> List[ContentItem]:
    """
    Pick up to ``max_results`` items, half videos (rounded down) and the rest
    articles, newest first within each type. A short pool is topped up from
    the other one.
    """
    if max_results <= 0:
        return []
    videos = sorted([it for it in items if it.source_type == "youtube"], key=_newest_first, reverse=True)
    articles = sorted([it for it in items if it.source_type != "youtube"], key=_newest_first, reverse=True)

    want_videos = max_results // 2
    want_articles = max_results - want_videos
    picked = articles[:want_articles] + videos[:want_videos]

    short = max_results - len(picked)
    if short > 0:
        leftovers = articles[want_articles:] + videos[want_videos:]
        picked.extend(sorted(leftovers, key=_newest_first, reverse=True)[:short])

    return sorted(picked, key=_newest_first, reverse=True)

def search_content_by_topic(
    topic: str,
    max_results: int = 3,
    frequency: str = "weekly",
    providers: Optional[Sequence[BaseProvider]] = None,
) -> List[ContentItem]:
    """
    Query expansion -> multi-source fetch -> freshness cut -> LLM relevance
    filter -> balanced article/video selection.
    """
    providers = build_providers() if providers is None else providers
    queries = generate_search_queries(topic)
    per_provider = min(10, max(5, max_results * 2))  # oversample; filtering is lossy

    candidates = fetch_candidates(queries, providers, frequency, per_provider)

    since = _utc_now() - timedelta(days=window_days(frequency))
    fresh = [it for it in candidates if it.published_at is None or it.published_at >= since]

    relevant = filter_relevant_items(topic, fresh, frequency)
    selected = balance_content_mix(relevant, max_results)

    logger.info(
        "SEARCH_DONE",
        extra={
            "topic": topic,
            "queries": len(queries),
            "candidates": len(candidates),
            "fresh": len(fresh),
            "relevant": len(relevant),
            "selected": len(selected),
        },
    )
    return selected
