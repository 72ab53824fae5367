# concisely/llm.py
"""
Every call Concisely makes to the LLM lives here:

  - generate_search_queries: topic -> several web search queries
  - filter_relevant_items:   candidates -> the ones worth summarizing
  - summarize_content:       full text -> summary sized by user preference
  - detect_topics:           full text -> 3-5 topic tags
  - generate_newsletter:     summaries -> newsletter body (HTML fragments)

Without OPENAI_API_KEY (or when a call fails) each function falls back to a
deterministic result so the pipeline keeps moving.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI

from .config import OPENAI_API_KEY, OPENAI_MODEL
from .logging_setup import get_logger

logger = get_logger("concisely.llm")

_client: Optional[OpenAI] = None

# token budgets per summary_length preference
LENGTH_TOKENS = {"short": 150, "medium": 300, "long": 500}

SOURCE_LABELS = {
    "youtube": "YouTube video transcript",
    "podcast": "podcast transcript",
    "document": "document",
    "article": "article",
}

FRESHNESS = {"daily": "the last day", "weekly": "the last week", "monthly": "the last month"}


def _get_client() -> Optional[OpenAI]:
    global _client
    if _client is not None:
        return _client
    if OPENAI_API_KEY:
        _client = OpenAI(api_key=OPENAI_API_KEY)
        return _client
    return None


def _truncate(s: str, max_chars: int = 12000) -> str:
    return s[:max_chars] if s else s


def _chat(client: OpenAI, system: str, user: str, *, json_mode: bool = False,
          temperature: float = 0.3, max_tokens: Optional[int] = None) -> str:
    kwargs: Dict[str, Any] = {
        "model": OPENAI_MODEL,
        "temperature": temperature,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    resp = client.chat.completions.create(**kwargs)
    return (resp.choices[0].message.content or "").strip()


# ---------- Query expansion ----------

def generate_search_queries(topic: str, n: int = 3) -> List[str]:
    """
    Expand one topic into search queries. The topic itself always comes first,
    followed by up to ``n`` distinct LLM suggestions.
    """
    queries = [topic]
    client = _get_client()
    if not client or n <= 0:
        return queries

    user_prompt = f"""
Generate {n} distinct web search queries that would surface recent, high-quality
articles and videos about the topic below. Vary the angle (news, analysis,
tutorials, announcements). Keep each query under 10 words.

Return strict JSON: {{"queries": ["...", "..."]}}

TOPIC: {topic}
""".strip()

    try:
        raw = _chat(client, "Respond with valid JSON only.", user_prompt, json_mode=True, temperature=0.7)
        data = json.loads(raw)
        suggested = data.get("queries") or []
    except Exception as e:
        logger.exception("QUERY_EXPANSION_FAILED", extra={"handled": True, "topic": topic, "error": type(e).__name__})
        return queries

    seen = {topic.strip().lower()}
    for q in suggested:
        if not isinstance(q, str):
            continue
        q = q.strip()
        if not q or q.lower() in seen:
            continue
        seen.add(q.lower())
        queries.append(q)
        if len(queries) > n:
            break

    logger.info("QUERY_EXPANSION_OK", extra={"topic": topic, "count": len(queries)})
    return queries


# ---------- Relevance filter ----------

def _parse_indices(raw_indices: Any, size: int) -> List[int]:
    out: List[int] = []
    if not isinstance(raw_indices, list):
        raise ValueError("indices must be a list")
    for idx in raw_indices:
        # bool is an int subclass; a model answering `true` is not an index
        if isinstance(idx, bool) or not isinstance(idx, int):
            continue
        if 0 <= idx < size and idx not in out:
            out.append(idx)
    return out


def filter_relevant_items(topic: str, items: Sequence[Any], frequency: str = "weekly") -> List[Any]:
    """
    Ask the LLM which candidates are relevant to ``topic`` and fresh for the
    user's window. Returns the chosen items in the order the model ranked
    them. Fails open: if the LLM is unavailable or answers garbage, every
    item is kept.
    """
    items = list(items)
    if not items:
        return []
    client = _get_client()
    if not client:
        return items

    listing = "\n".join(
        f"[{i}] {getattr(it, 'title', '')} :: {(getattr(it, 'snippet', '') or '')[:300]}"
        for i, it in enumerate(items)
    )
    window = FRESHNESS.get(frequency, FRESHNESS["weekly"])
    user_prompt = f"""
A reader follows the topic "{topic}" and wants content from {window}.
Below are numbered search results. Pick the ones that are clearly about the
topic, substantive (not listicles, ads, or login pages), and plausibly recent.
Order them best first.

Return strict JSON: {{"indices": [0, 3, ...]}}

RESULTS:
{listing}
""".strip()

    try:
        raw = _chat(client, "Respond with valid JSON only.", user_prompt, json_mode=True, temperature=0.0)
        indices = _parse_indices(json.loads(raw).get("indices"), len(items))
    except Exception as e:
        logger.exception("RELEVANCE_FILTER_FAILED", extra={"handled": True, "topic": topic, "error": type(e).__name__})
        return items

    kept = [items[i] for i in indices]
    logger.info("RELEVANCE_FILTER_OK", extra={"topic": topic, "candidates": len(items), "kept": len(kept)})
    return kept


# ---------- Summaries ----------

def _fallback_summary(content: str, budget: int) -> str:
    words = content.split()
    text = " ".join(words[:budget])
    return text + ("…" if len(words) > budget else "")


def summarize_content(content: str, length: str = "medium", source_type: str = "article") -> str:
    budget = LENGTH_TOKENS.get(length, LENGTH_TOKENS["medium"])
    client = _get_client()
    if not client:
        return _fallback_summary(content, budget)

    label = SOURCE_LABELS.get(source_type, "article")
    system = (
        "You are a helpful assistant that creates concise summaries of content. "
        f"Summarize the provided {label} in approximately {budget} tokens. "
        "Focus on the key points, main arguments, and important details. "
        "Stick to facts present in the text."
    )
    try:
        return _chat(client, system, _truncate(content), max_tokens=budget)
    except Exception as e:
        logger.exception("SUMMARIZE_FAILED", extra={"handled": True, "error": type(e).__name__})
        return _fallback_summary(content, budget)


_JSON_ARRAY = re.compile(r"\[.*?\]", re.S)


def detect_topics(content: str) -> List[str]:
    client = _get_client()
    if not client:
        return []
    system = (
        "You are a helpful assistant that analyzes content and identifies the key topics. "
        "Return exactly 3-5 topic tags as a JSON array of strings. The topics should be "
        "single words or short phrases."
    )
    try:
        raw = _chat(client, system, _truncate(content, 6000), max_tokens=100)
        match = _JSON_ARRAY.search(raw)
        if not match:
            return []
        tags = json.loads(match.group(0))
    except Exception as e:
        logger.warning("DETECT_TOPICS_FAILED", extra={"handled": True, "error": type(e).__name__})
        return []
    return [t.strip() for t in tags if isinstance(t, str) and t.strip()][:5]


# ---------- Newsletter body ----------

def generate_newsletter(summaries: List[Dict[str, str]], topics: List[str]) -> Optional[str]:
    """
    Write the newsletter body from already-summarized items. Each entry needs
    ``title``, ``url`` and ``summary``. Returns None when no LLM is available
    or the call fails; the caller renders its own digest then.
    """
    client = _get_client()
    if not client or not summaries:
        return None

    blocks = "\n\n".join(
        f"TITLE: {s.get('title', '')}\nURL: {s.get('url', '')}\nSUMMARY: {s.get('summary', '')}"
        for s in summaries
    )
    system = (
        "You write friendly, well-organized email newsletters. "
        "Output HTML fragments only: <h2> for section headings and <p> for paragraphs, "
        "with <a href> links to the sources. No <html>, <body> or <style> tags, no markdown."
    )
    user_prompt = f"""
Write a newsletter covering these topics: {", ".join(topics)}.
Open with a two-sentence introduction, then group the items below under
topic headings. Give each item 2-3 sentences and link its title to its URL.

ITEMS:
{_truncate(blocks, 16000)}
""".strip()

    try:
        html = _chat(client, system, user_prompt, temperature=0.5)
    except Exception as e:
        logger.exception("NEWSLETTER_LLM_FAILED", extra={"handled": True, "error": type(e).__name__})
        return None
    return html or None
