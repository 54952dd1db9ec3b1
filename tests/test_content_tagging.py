from types import SimpleNamespace

import pytest

from xplay.category_registry import CATEGORY_NAMES, CATEGORY_RULES, REGISTRY_VERSION
from xplay.content_tagging import (
    apply_tagging, content_signals, duration_category, extract_keywords,
    normalize_tags, suggest_related_content_ids, tag_content,
)
from xplay.schemas import VideoCreate


@pytest.mark.parametrize(
    "kwargs, categories, content_type, bucket",
    [
        (dict(title="MILF stepmom surprise", duration=45), ["milf", "stepmom"], "quickie", "minute"),
        (dict(title="", description=""), [], "standard", "unknown"),
        (dict(title="Long documentary", duration=3600, is_quickie=True), [], "quickie", "long"),
        (dict(title="Official trailer", duration=600), ["verified"], "quickie", "medium"),
        (dict(title="Weekend getaway", duration=121), [], "standard", "short"),
        (dict(title="Sunset", duration=-5), [], "quickie", "minute"),
        (dict(title="Sunset", duration=0), [], "quickie", "minute"),
        (dict(title="A step-mother story", duration=900), ["milf", "stepmom"], "standard", "medium"),
        (dict(title="Sunset", duration=1200), [], "standard", "medium"),
        (dict(title="Sunset", duration=1201), [], "standard", "long"),
    ],
)
def test_tag_content(kwargs, categories, content_type, bucket):
    result = tag_content(**kwargs)

    assert result.categories == categories
    assert result.content_type == content_type
    assert result.duration_category == bucket


def test_milf_stepmom_tags_and_quickie_flag():
    result = tag_content("MILF stepmom surprise", duration=45)

    assert result.tags == ["milf", "stepmom"]
    assert result.is_quickie


def test_empty_input_yields_empty_result():
    result = tag_content("", "")

    assert result.categories == []
    assert result.tags == []
    assert not result.is_quickie


def test_none_inputs_do_not_fail():
    result = tag_content(None, None, None, None, None)

    assert result.categories == []
    assert result.content_type == "standard"


def test_substring_keywords_match_inside_words():
    assert tag_content("Physics class").categories == ["anal"]


def test_existing_tags_are_normalised_and_feed_detection():
    result = tag_content("Walk", tags=[" Amateur ", "amateur", "", "Outdoor", None])

    assert result.categories == ["amateur"]
    assert result.tags == ["amateur", "outdoor"]


def test_normalize_tags():
    assert normalize_tags(["B", "b ", " ", "C"]) == ["b", "c"]
    assert normalize_tags(None) == []


@pytest.mark.parametrize(
    "text, signals",
    [
        ("Raw uncut footage", ["explicit"]),
        ("Quick raw clip", ["quickie", "explicit"]),
        ("Sunset", []),
        (None, []),
    ],
)
def test_content_signals(text, signals):
    assert content_signals(text) == signals


@pytest.mark.parametrize(
    "duration, bucket",
    [(None, "unknown"), (60, "minute"), (61, "short"), (300, "short"), (301, "medium"), (5000, "long")],
)
def test_duration_category(duration, bucket):
    assert duration_category(duration) == bucket


def test_apply_tagging_enriches_upload():
    video = VideoCreate(user_id=1, title="Amateur couple teaser", file_path="videos/1.mp4",
                        duration=600, categories=["Featured"])

    tagged = apply_tagging(video)

    assert tagged.categories == ["featured", "amateur", "couples"]
    assert tagged.tags == ["amateur", "couples"]
    assert tagged.is_quickie is True
    assert video.is_quickie is False


def test_extract_keywords():
    assert extract_keywords("The quick brown fox, the QUICK fox! Hi") == ["quick", "brown", "fox"]
    assert extract_keywords("") == []
    assert extract_keywords(None) == []


def test_suggest_related_content_ids():
    videos = [
        SimpleNamespace(id=1, tags=["a", "b"], categories=["x"]),
        SimpleNamespace(id=2, tags=["a"], categories=[]),
        SimpleNamespace(id=3, tags=[], categories=["x"]),
        SimpleNamespace(id=4, tags=["a", "b"], categories=["x"]),
        SimpleNamespace(id=5, tags=None, categories=None),
        SimpleNamespace(id=6, tags=[], categories=["x"]),
    ]

    assert suggest_related_content_ids(1, ["a", "b"], ["x"], videos) == [4, 3, 6, 2, 5]
    assert suggest_related_content_ids(1, ["a", "b"], ["x"], videos, limit=2) == [4, 3]
    assert suggest_related_content_ids(1, [], [], videos[:1]) == []


def test_registry_is_consistent():
    assert REGISTRY_VERSION
    assert len(CATEGORY_NAMES) == len(set(CATEGORY_NAMES)) == 15
    assert {rule.group for rule in CATEGORY_RULES} == {"demographic", "production", "act"}
    for rule in CATEGORY_RULES:
        assert rule.matches(rule.name), rule.name
