from __future__ import annotations

import base64

import pytest

from stemchat.attachments import prepare_attachment
from stemchat.errors import AttachmentTooLarge, UnsupportedAttachmentType

MB = 1024 * 1024


def test_image_is_sent_inline() -> None:
	prepared = prepare_attachment(0, "cat.png", "image/png", b"\x89PNG", max_bytes=MB)

	assert prepared.part["inlineData"]["mimeType"] == "image/png"
	assert base64.b64decode(prepared.part["inlineData"]["data"]) == b"\x89PNG"
	assert prepared.meta.size == 4
	assert prepared.note.startswith("File 1: cat.png (image")


def test_text_is_truncated() -> None:
	prepared = prepare_attachment(1, "notes.txt", "text/plain; charset=utf-8", b"a" * 5000, max_bytes=MB)

	assert prepared.meta.mimetype == "text/plain"
	assert prepared.part["text"].endswith("a" * 4000)
	assert "a" * 4001 not in prepared.part["text"]


def test_markdown_sent_as_octet_stream_is_accepted() -> None:
	assert prepare_attachment(0, "plan.md", "application/octet-stream", b"# plan", max_bytes=MB).meta.mimetype == "text/markdown"


def test_oversized_and_unknown_files_are_rejected() -> None:
	with pytest.raises(AttachmentTooLarge):
		prepare_attachment(0, "big.png", "image/png", b"x" * (MB + 1), max_bytes=MB)
	with pytest.raises(UnsupportedAttachmentType):
		prepare_attachment(0, "game.exe", "application/x-msdownload", b"MZ", max_bytes=MB)
