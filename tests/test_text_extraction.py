# tests/test_text_extraction.py
from types import SimpleNamespace

import pytest

from concisely import text_extraction
from concisely.text_extraction import (
    ExtractionError,
    extract_content,
    extract_text_and_title,
    get_transcript_text,
    get_video_id,
)


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ",
    "https://www.youtube.com/embed/dQw4w9WgXcQ",
    "https://www.youtube.com/shorts/dQw4w9WgXcQ",
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
])
def test_get_video_id(url):
    assert get_video_id(url) == "dQw4w9WgXcQ"

@pytest.mark.parametrize("url", ["", "https://example.com/article", "https://youtu.be/short"])
def test_get_video_id_rejects(url):
    with pytest.raises(ExtractionError):
        get_video_id(url)


def test_extract_text_and_title_falls_back_to_soup(mocker):
    mocker.patch.object(text_extraction.trafilatura, "extract", return_value=None)
    mocker.patch.object(text_extraction, "extract_metadata", return_value=None)
    html = """<html><head><title>Hello page</title></head><body>
    <nav>menu</nav><article><p>First paragraph.</p><p>Second one.</p></article>
    <script>var x = 1;</script></body></html>"""
    text, title = extract_text_and_title(html)
    assert title == "Hello page"
    assert text == "First paragraph.\n\nSecond one."


def test_transcript_joins_snippets(mocker):
    api = mocker.patch.object(text_extraction, "YouTubeTranscriptApi")
    api.return_value.fetch.return_value = [SimpleNamespace(text="hello"), SimpleNamespace(text="world")]
    assert get_transcript_text("https://youtu.be/dQw4w9WgXcQ") == "hello world"
    api.return_value.fetch.assert_called_once_with("dQw4w9WgXcQ")

def test_transcript_failure_becomes_extraction_error(mocker):
    api = mocker.patch.object(text_extraction, "YouTubeTranscriptApi")
    api.return_value.fetch.side_effect = RuntimeError("TranscriptsDisabled")
    with pytest.raises(ExtractionError):
        get_transcript_text("https://youtu.be/dQw4w9WgXcQ")


def test_extract_content_uses_fallback_for_bad_video():
    assert extract_content("https://example.com/not-a-video", "youtube", fallback="snippet") == "snippet"

def test_extract_content_article(mocker):
    mocker.patch.object(text_extraction, "fetch_and_extract", return_value=("body text", "T"))
    assert extract_content("https://example.com/a", "article", fallback="snippet") == "body text"

def test_extract_content_article_unreachable(mocker):
    mocker.patch.object(text_extraction, "fetch_and_extract", return_value=("", None))
    assert extract_content("https://example.com/a", "article", fallback="snippet") == "snippet"

def test_malformed_url_falls_back_to_snippet(mocker):
    client = mocker.patch.object(text_extraction.httpx, "Client")
    client.return_value.__enter__.return_value.get.side_effect = text_extraction.httpx.InvalidURL("bad")
    assert extract_content("http://exa mple.com/a", "article", fallback="snippet") == "snippet"
