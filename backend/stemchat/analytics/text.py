from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Iterator, Tuple

from ..guides import fold_diacritics

DEFAULT_SESSION_TITLE = "new conversation"
TITLE_MAX_LENGTH = 48
CONTENT_MAX_LENGTH = 800
MIN_KEYWORD_LENGTH = 4

_DIGITS = re.compile(r"[0-9]+")
_PUNCTUATION = re.compile(r"[\"'`.,!?():;\-_/\\\[\]{}<>\n\r]+")

# Folded (no diacritics, lower-case) function words
STOPWORDS = frozenset({
	# Vietnamese
	"cua", "cho", "voi", "nay", "noi", "hay", "anh", "chi", "em", "co", "thi", "la", "va",
	"mot", "nhung", "cac", "nhu", "nua", "ban", "hoc", "hai", "lam", "theo", "day", "nen",
	"thoi", "van", "duoc", "khi", "neu", "gio", "de", "cach", "trong", "minh", "thu",
	"dang", "con", "gap", "truong", "nhieu",
	# English
	"that", "this", "with", "what", "have", "from", "there", "their", "they", "them",
	"then", "than", "when", "where", "which", "while", "would", "could", "should",
	"about", "into", "your", "yours", "just", "also", "been", "were", "will", "does",
	"some", "very", "more", "most", "much", "only", "here", "each", "make", "like",
})


def new_session_id(now: datetime) -> str:
	return f"session-{int(now.timestamp() * 1000)}-{uuid.uuid4()}"


def derive_session_title(text: str | None) -> str:
	if not text or not text.strip():
		return DEFAULT_SESSION_TITLE
	first_line = text.strip().split("\n")[0].strip()
	if not first_line:
		return DEFAULT_SESSION_TITLE
	if len(first_line) > TITLE_MAX_LENGTH:
		return f"{first_line[:TITLE_MAX_LENGTH]}…"
	return first_line


def truncate_content(text: str | None, limit: int = CONTENT_MAX_LENGTH) -> str:
	if not text:
		return ""
	trimmed = text.strip()
	if len(trimmed) <= limit:
		return trimmed
	return f"{trimmed[:limit]}…"


def fold_keyword(word: str) -> str:
	return fold_diacritics(word).lower()


def iter_keywords(text: str | None) -> Iterator[Tuple[str, str]]:
	"""Yield ``(folded_key, original_spelling)`` for every countable word."""
	if not text:
		return
	sanitized = _PUNCTUATION.sub(" ", _DIGITS.sub(" ", str(text)))
	for raw_word in sanitized.split():
		if len(raw_word) < MIN_KEYWORD_LENGTH:
			continue
		folded = fold_keyword(raw_word)
		if not folded or folded in STOPWORDS:
			continue
		yield folded, raw_word
