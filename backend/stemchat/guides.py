from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import Path
from typing import List

from .schemas import Guide

logger = logging.getLogger(__name__)

MAX_CHUNK_LENGTH = 1200
GUIDE_EXTENSIONS = {".txt", ".md"}

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")
_TAG_PREFIX = re.compile(r"^\[[^\]]+\]\s*")
_LESSON_NUMBER = re.compile(r"(Buổi\s+\d+)(\s+)", re.IGNORECASE)


def chunk_text(raw_text: str, max_length: int = MAX_CHUNK_LENGTH) -> List[str]:
	"""Pack whole paragraphs into chunks of roughly ``max_length`` characters.

	A paragraph is never split, so one longer than ``max_length`` becomes a
	chunk on its own. Paragraphs inside a chunk are joined with a newline.
	"""
	paragraphs = [_WHITESPACE.sub(" ", part).strip() for part in _PARAGRAPH_BREAK.split(raw_text or "")]
	chunks: List[str] = []
	buffer = ""
	for paragraph in paragraphs:
		if not paragraph:
			continue
		if buffer and len(buffer) + 1 + len(paragraph) > max_length:
			chunks.append(buffer)
			buffer = ""
		buffer = f"{buffer}\n{paragraph}" if buffer else paragraph
	if buffer:
		chunks.append(buffer)
	return chunks


def fold_diacritics(text: str) -> str:
	decomposed = unicodedata.normalize("NFD", text)
	return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def slugify(value: str) -> str:
	folded = fold_diacritics(value.lower())
	return re.sub(r"[^a-z0-9]+", "-", folded).strip("-")


def prettify_guide_title(raw_title: str) -> str:
	if not raw_title:
		return ""
	without_prefix = _TAG_PREFIX.sub("", raw_title)
	with_spaces = re.sub(r"\s{2,}", " ", re.sub(r"_+", " ", without_prefix)).strip()
	normalized = _LESSON_NUMBER.sub(r"\1 – ", with_spaces, count=1)
	return normalized or raw_title


def _collect_guide_files(directory: Path) -> List[Path]:
	if not directory.is_dir():
		logger.warning("Teaching guide directory does not exist: %s", directory)
		return []
	return sorted(
		path for path in directory.rglob("*")
		if path.is_file() and path.suffix.lower() in GUIDE_EXTENSIONS
	)


def load_teaching_guides(directory: str | Path, *, max_chunk_length: int = MAX_CHUNK_LENGTH) -> List[Guide]:
	guides: List[Guide] = []
	for path in _collect_guide_files(Path(directory)):
		title = path.stem.strip()
		try:
			text = path.read_text(encoding="utf-8", errors="replace")
		except OSError as exc:
			logger.error("Could not read teaching guide %s: %s", path.name, exc)
			continue
		cleaned = text.replace("\r", "").strip()
		guides.append(
			Guide(
				id=slugify(title),
				title=title,
				display_title=prettify_guide_title(title),
				path=str(path.resolve()),
				chunks=chunk_text(cleaned, max_chunk_length),
			)
		)
	return guides
