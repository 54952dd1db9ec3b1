"""
Rule-based content tagging.

Infers categories, tags and a coarse content type from a video's text
metadata using the rules in :mod:`xplay.category_registry`. Everything here
is a pure function: no I/O and no shared mutable state.
"""

import logging
import re
from typing import Any, Iterable, List, Optional, Sequence

from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from .category_registry import CATEGORY_RULES, CONTENT_SIGNAL_RULES
from .schemas import DurationCategory, TaggingResult, VideoCreate

logger = logging.getLogger(__name__)

QUICKIE_MAX_SECONDS = 120

# (upper bound in seconds, bucket), checked in order
DURATION_BUCKETS = ((60, "minute"), (300, "short"), (1200, "medium"))

STOP_WORDS = frozenset(ENGLISH_STOP_WORDS) | {"shall", "its", "am"}

_PUNCTUATION = re.compile(r"[^\w\s]")


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def normalize_tags(tags: Optional[Iterable[Any]]) -> List[str]:
    """Lower-case and strip tags, dropping empties and duplicates."""
    if not tags:
        return []
    return _unique(t for t in (str(tag).strip().lower() for tag in tags if tag is not None) if t)


def content_signals(text: str) -> List[str]:
    """Names of the content-type signal rules ("quickie", "explicit") found in ``text``."""
    blob = (text or "").lower()
    return [name for name, rule in CONTENT_SIGNAL_RULES.items() if rule.matches(blob)]


def duration_category(duration: Optional[float]) -> DurationCategory:
    if duration is None:
        return "unknown"
    for limit, bucket in DURATION_BUCKETS:
        if duration <= limit:
            return bucket
    return "long"


def tag_content(
    title: Optional[str],
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    duration: Optional[float] = None,
    is_quickie: Optional[bool] = None,
) -> TaggingResult:
    """
    Classify a video from its metadata.

    Args:
        title: video title
        description: optional free text
        tags: tags supplied by the uploader
        duration: length in seconds; zero or negative counts as very short
        is_quickie: uploader's explicit short-form flag

    Returns:
        TaggingResult whose ``content_type`` is the reconciled quickie
        decision (explicit flag, duration, then text signals)
    """
    existing = normalize_tags(tags)
    text = " ".join([title or "", description or "", *existing]).lower()

    categories = [rule.name for rule in CATEGORY_RULES if rule.matches(text)]
    all_tags = _unique(existing + categories)

    if is_quickie:
        content_type = "quickie"
    elif duration is not None and duration <= QUICKIE_MAX_SECONDS:
        content_type = "quickie"
    elif "quickie" in content_signals(text):
        content_type = "quickie"
    else:
        content_type = "standard"

    return TaggingResult(
        categories=categories,
        tags=all_tags,
        content_type=content_type,
        duration_category=duration_category(duration),
    )


def apply_tagging(video: VideoCreate) -> VideoCreate:
    """Return a copy of an upload payload enriched with detected categories, tags and quickie flag."""
    result = tag_content(
        video.title,
        description=video.description,
        tags=video.tags,
        duration=video.duration,
        is_quickie=video.is_quickie,
    )
    categories = _unique(normalize_tags(video.categories) + result.categories)
    logger.info(
        f"Tagged '{video.title}': categories={categories}, content_type={result.content_type}, "
        f"duration={result.duration_category}"
    )
    return video.model_copy(update={
        "categories": categories,
        "tags": result.tags,
        "is_quickie": result.is_quickie,
    })


def extract_keywords(text: Optional[str]) -> List[str]:
    """Unique search keywords from free text, in first-seen order."""
    if not text or not isinstance(text, str):
        return []
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    return _unique(w for w in words if len(w) > 2 and w not in STOP_WORDS)


def suggest_related_content_ids(
    video_id: int,
    tags: Optional[Sequence[str]],
    categories: Optional[Sequence[str]],
    videos: Iterable[Any],
    limit: int = 8,
) -> List[int]:
    """
    Rank other videos by shared tags and categories.

    A shared category is worth two shared tags. ``videos`` may be Video
    models or any objects with ``id``, ``tags`` and ``categories``.
    Ties keep their input order.
    """
    tags = list(tags or [])
    categories = list(categories or [])
    scored = []
    for video in videos:
        if video.id == video_id:
            continue
        video_tags = set(getattr(video, "tags", None) or [])
        video_categories = set(getattr(video, "categories", None) or [])
        tag_overlap = sum(1 for tag in tags if tag in video_tags)
        category_overlap = sum(1 for category in categories if category in video_categories)
        scored.append((tag_overlap + 2 * category_overlap, video.id))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [candidate_id for _, candidate_id in scored[:limit]]
