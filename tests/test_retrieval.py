from __future__ import annotations

import pytest

from stemchat.retrieval import build_context_index, compare_two_strings, find_relevant_chunks
from stemchat.schemas import Guide


@pytest.fixture
def index():
	guides = [
		Guide(id="loops", title="Loops", display_title="Loops", chunks=["forever loop repeats blocks", "x" * 300]),
		Guide(id="sprites", title="[S] Sprites", display_title="Sprites", chunks=["move the sprite ten steps"]),
	]
	return build_context_index(guides)


def test_index_has_one_entry_per_chunk(index) -> None:
	assert [entry.id for entry in index] == ["loops-0", "loops-1", "sprites-0"]
	assert index[2].source_title == "[S] Sprites"
	assert index[2].display_title == "Sprites"


def test_dice_similarity() -> None:
	assert compare_two_strings("scratch", "scratch") == 1.0
	assert compare_two_strings("a", "ab") == 0.0
	assert compare_two_strings("night", "nacht") == pytest.approx(0.25)
	# Whitespace is ignored
	assert compare_two_strings("for ever", "forever") == 1.0


def test_matches_are_ranked_and_floored(index) -> None:
	matches = find_relevant_chunks("forever loop repeats", index, limit=3)

	assert matches[0].id == "loops-0"
	assert all(match.rating > 0.1 for match in matches)
	assert "loops-1" not in [match.id for match in matches]
	ratings = [match.rating for match in matches]
	assert ratings == sorted(ratings, reverse=True)


def test_limit_and_preview(index) -> None:
	matches = find_relevant_chunks("x" * 300, index, limit=1, min_rating=0.0)

	assert len(matches) == 1
	assert matches[0].id == "loops-1"
	assert matches[0].preview == "x" * 200


def test_empty_question_or_index_returns_nothing(index) -> None:
	assert find_relevant_chunks("", index) == []
	assert find_relevant_chunks("   ", index) == []
	assert find_relevant_chunks("forever", []) == []


def test_rating_equal_to_floor_is_excluded() -> None:
	index = build_context_index([Guide(id="words", title="Words", display_title="Words", chunks=["night"])])
	rating = compare_two_strings("nacht", "night")

	assert find_relevant_chunks("nacht", index, min_rating=rating) == []
	assert [match.id for match in find_relevant_chunks("nacht", index, min_rating=rating - 0.01)] == ["words-0"]
