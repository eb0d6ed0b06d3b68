from __future__ import annotations


class StemChatError(Exception):
	"""Base class for errors the HTTP layer turns into user-facing messages."""


class Sb3Error(StemChatError):
	pass


class MalformedArchive(Sb3Error):
	"""The upload is not a readable zip archive or has no project.json."""


class InvalidProjectSchema(Sb3Error):
	"""project.json is not JSON or lacks the required targets/blocks."""


class EmptyInput(StemChatError):
	"""No command sequences were supplied to the exporter."""


class UnsupportedAttachmentType(StemChatError):
	pass


class AttachmentTooLarge(StemChatError):
	pass


class AnalyticsUnavailable(StemChatError):
	"""The persistent analytics backend could not be reached."""
