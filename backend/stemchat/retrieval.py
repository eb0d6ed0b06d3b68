from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List

from .schemas import Guide, IndexEntry, RelevanceMatch

RELEVANCE_FLOOR = 0.1
PREVIEW_LENGTH = 200

_WHITESPACE = re.compile(r"\s+")


def build_context_index(guides: Iterable[Guide]) -> List[IndexEntry]:
	index: List[IndexEntry] = []
	for guide in guides:
		for chunk_index, text in enumerate(guide.chunks):
			index.append(
				IndexEntry(
					id=f"{guide.id}-{chunk_index}",
					source_id=guide.id,
					source_title=guide.title,
					display_title=guide.display_title or guide.title,
					text=text,
				)
			)
	return index


def compare_two_strings(first: str, second: str) -> float:
	"""Dice coefficient over character bigrams, ignoring whitespace."""
	a = _WHITESPACE.sub("", first)
	b = _WHITESPACE.sub("", second)
	if a == b:
		return 1.0
	if len(a) < 2 or len(b) < 2:
		return 0.0
	bigrams = Counter(a[i:i + 2] for i in range(len(a) - 1))
	intersection = 0
	for i in range(len(b) - 1):
		bigram = b[i:i + 2]
		if bigrams[bigram] > 0:
			bigrams[bigram] -= 1
			intersection += 1
	return (2.0 * intersection) / (len(a) + len(b) - 2)


def find_relevant_chunks(
	question: str,
	index: List[IndexEntry],
	limit: int = 3,
	*,
	min_rating: float = RELEVANCE_FLOOR,
) -> List[RelevanceMatch]:
	if not question or not question.strip() or not index or limit <= 0:
		return []
	rated = [
		RelevanceMatch(
			**entry.model_dump(),
			rating=compare_two_strings(question, entry.text),
			preview=entry.text[:PREVIEW_LENGTH],
		)
		for entry in index
	]
	# sorted() is stable, so equal ratings keep index order
	ranked = sorted(rated, key=lambda match: match.rating, reverse=True)
	return [match for match in ranked if match.rating > min_rating][:limit]
