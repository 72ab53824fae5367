# concisely/text_extraction.py
from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

import httpx
import trafilatura
from trafilatura.metadata import extract_metadata
from bs4 import BeautifulSoup
from youtube_transcript_api import YouTubeTranscriptApi

from .config import REQUESTS_TIMEOUT
from .errors import ConciselyError
from .logging_setup import get_logger

logger = get_logger("concisely.extraction")

USER_AGENT = "ConciselyBot/1.0 (+https://concisely.app)"

# Items below this length are not worth an LLM call
MIN_CONTENT_CHARS = 50
MAX_STORED_CHARS = 10000


class ExtractionError(ConciselyError):
    status_code = 422


def _fetch_html(url: str, timeout: float = REQUESTS_TIMEOUT) -> Optional[str]:
    try:
        with httpx.Client(follow_redirects=True, timeout=timeout) as client:
            r = client.get(url, headers={"User-Agent": USER_AGENT})
            r.raise_for_status()
            return r.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("FETCH_HTML_FAILED", extra={"url": url, "error": type(e).__name__})
        return None


def extract_text_and_title(html: str) -> Tuple[str, Optional[str]]:
    # 1) trafilatura finds the main body and skips boilerplate
    text = trafilatura.extract(html, include_comments=False, favor_recall=True) or ""
    title = None
    md = extract_metadata(html)
    if md and getattr(md, "title", None):
        title = md.title
    if text:
        return text, title

    # 2) BeautifulSoup: drop chrome, prefer <article>/<main>, else all paragraphs
    soup = BeautifulSoup(html, "html.parser")
    if not title:
        title = soup.title.string.strip() if soup.title and soup.title.string else None
    for tag in soup(["script", "style", "noscript", "nav", "footer", "header", "aside"]):
        tag.decompose()
    container = soup.find("article") or soup.find("main") or soup
    paragraphs = [p.get_text(" ", strip=True) for p in container.find_all("p")]
    text = "\n\n".join(p for p in paragraphs if p)
    if not text:
        text = " ".join(container.stripped_strings)
    return text, title


def fetch_and_extract(url: str, timeout: float = REQUESTS_TIMEOUT) -> Tuple[str, Optional[str]]:
    """
    Fetches URL and returns (main_text, title_guess); ("", None) if the page
    could not be downloaded.
    """
    html = _fetch_html(url, timeout=timeout)
    if not html:
        return "", None
    return extract_text_and_title(html)


# ---------- YouTube ----------

_YT_ID = re.compile(r"^.*((youtu\.be/)|(v/)|(/u/\w/)|(embed/)|(shorts/)|(watch\?))\??v?=?([^#&?]*).*")


def get_video_id(url: str) -> str:
    if not url or not isinstance(url, str):
        raise ExtractionError(f"Invalid YouTube URL: {url!r}")
    m = _YT_ID.match(url)
    if not m or len(m.group(8) or "") != 11:
        raise ExtractionError(f"Unable to extract video ID from URL: {url}")
    return m.group(8)


def get_video_info(url: str) -> Dict[str, str]:
    """Title/author via the public oEmbed endpoint (no API key needed)."""
    video_id = get_video_id(url)
    try:
        r = httpx.get(
            "https://www.youtube.com/oembed",
            params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
            timeout=REQUESTS_TIMEOUT,
        )
        r.raise_for_status()
        data = r.json()
    except httpx.HTTPError as e:
        raise ExtractionError(f"Failed to get video information: {type(e).__name__}") from e
    return {
        "id": video_id,
        "title": data.get("title", ""),
        "author": data.get("author_name", ""),
        "thumbnail_url": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
    }


def get_transcript_text(url: str) -> str:
    video_id = get_video_id(url)
    try:
        fetched = YouTubeTranscriptApi().fetch(video_id)
    except Exception as e:
        # the library raises a zoo of subclasses (disabled, unavailable, blocked...)
        raise ExtractionError(f"Failed to get video transcript: {type(e).__name__}") from e
    text = " ".join(snippet.text for snippet in fetched).strip()
    if not text:
        raise ExtractionError("Transcript is empty")
    logger.debug("TRANSCRIPT_OK", extra={"video_id": video_id, "chars": len(text)})
    return text


# ---------- Dispatcher ----------

def extract_content(url: str, source_type: str, fallback: str = "") -> str:
    """
    Full text for an item: transcript for youtube/podcast, page body for
    articles. Returns ``fallback`` (usually the search snippet) when extraction
    fails, so callers only need a length check.
    """
    try:
        if source_type in ("youtube", "podcast"):
            return get_transcript_text(url)
        text, _ = fetch_and_extract(url)
        return text or fallback
    except ExtractionError as e:
        logger.warning("EXTRACT_FAILED", extra={"handled": True, "url": url, "source_type": source_type, "error": e.message})
        return fallback
