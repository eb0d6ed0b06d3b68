"""Pull "Category > Block" command sequences out of chat replies.

The same splitting rule is used by the web client to draw command chips, so
``split_sequence`` is kept separate from the markdown scanning.
"""

from __future__ import annotations

import re
from typing import List

SEPARATOR_RE = re.compile(r"\s*(?:->|→|⇒|=>|\+|,|;)\s*")
ARROWS = ("->", "→", "⇒", "=>")

_INLINE_CODE = re.compile(r"`([^`\n]+)`")
# Bullets, numbering and blockquote markers at the start of a line
_LEADING_MARKERS = re.compile(r"^(?:[-*•➤>]|\d+[.)])(?:\s*(?:[-*•➤>]|\d+[.)]))*\s+")


def split_sequence(text: str) -> List[str]:
	cleaned = text.replace("`", "").replace("**", "").strip()
	return [segment.strip() for segment in SEPARATOR_RE.split(cleaned) if segment.strip()]


def _has_command(tokens: List[str]) -> bool:
	return any(">" in token for token in tokens)


def _drop_consumed_span(match: re.Match) -> str:
	# Spans already emitted as sequences; other code spans keep their text
	return " " if ">" in match.group(1) else match.group(1)


def _line_candidate(line: str) -> str:
	stripped = _LEADING_MARKERS.sub("", line.strip()).strip()
	colon = stripped.rfind(":")
	if colon != -1:
		trailing = stripped[colon + 1:].strip()
		if ">" in trailing:
			return trailing
	return stripped


def extract_sequences(raw_text: str) -> List[List[str]]:
	if not isinstance(raw_text, str) or ">" not in raw_text:
		return []

	sequences: List[List[str]] = []

	def add(candidate: str) -> None:
		tokens = split_sequence(candidate)
		if tokens and _has_command(tokens):
			sequences.append(tokens)

	for line in raw_text.splitlines():
		if not line.strip():
			continue
		for match in _INLINE_CODE.finditer(line):
			if ">" in match.group(1):
				add(match.group(1))
		remainder = _line_candidate(_INLINE_CODE.sub(_drop_consumed_span, line))
		if any(arrow in remainder for arrow in ARROWS) or ">" in remainder:
			add(remainder)

	return sequences
