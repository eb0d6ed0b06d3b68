from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict

from .analytics.schemas import AttachmentMeta
from .errors import AttachmentTooLarge, UnsupportedAttachmentType

SUPPORTED_IMAGE_TYPES = {"image/png", "image/jpeg", "image/webp", "image/gif"}
SUPPORTED_TEXT_TYPES = {"text/plain", "text/markdown", "application/json"}
# Browsers often send .md files as octet-stream
TEXT_SUFFIXES = {".txt": "text/plain", ".md": "text/markdown", ".json": "application/json"}
MAX_TEXT_CHARS = 4000


@dataclass
class PreparedAttachment:
	meta: AttachmentMeta
	part: Dict[str, Any]
	note: str


def _resolve_mimetype(filename: str, content_type: str | None) -> str:
	mimetype = (content_type or "").split(";")[0].strip().lower()
	if mimetype in SUPPORTED_IMAGE_TYPES or mimetype in SUPPORTED_TEXT_TYPES:
		return mimetype
	lowered = filename.lower()
	for suffix, guessed in TEXT_SUFFIXES.items():
		if lowered.endswith(suffix):
			return guessed
	return mimetype or "application/octet-stream"


def prepare_attachment(index: int, filename: str, content_type: str | None, data: bytes, *, max_bytes: int) -> PreparedAttachment:
	"""Turn one uploaded file into a model content part plus its analytics metadata."""
	name = filename or f"attachment-{index + 1}"
	if len(data) > max_bytes:
		raise AttachmentTooLarge(f'"{name}" is larger than {max_bytes // (1024 * 1024)} MB')
	mimetype = _resolve_mimetype(name, content_type)
	meta = AttachmentMeta(name=name, size=len(data), mimetype=mimetype)
	label = f"File {index + 1}: {name}"

	if mimetype in SUPPORTED_IMAGE_TYPES:
		return PreparedAttachment(
			meta=meta,
			part={"inlineData": {"mimeType": mimetype, "data": base64.b64encode(data).decode("ascii")}},
			note=f"{label} (image, {round(len(data) / 1024)} KB).",
		)
	if mimetype in SUPPORTED_TEXT_TYPES:
		text = data.decode("utf-8", errors="replace")
		return PreparedAttachment(
			meta=meta,
			part={"text": f"Content of {name} ({len(text)} characters, truncated when long):\n{text[:MAX_TEXT_CHARS]}"},
			note=f"{label} (text, at most {MAX_TEXT_CHARS} characters sent).",
		)
	raise UnsupportedAttachmentType(
		f'"{name}" has unsupported type {mimetype}. Send an image (PNG/JPG/WebP/GIF) or a text file (.txt, .md, .json).'
	)
