"""Shared pydantic records for guides and retrieval results."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
	"""Snake-case attributes, camelCase JSON (the shape the web client reads)."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Guide(CamelModel):
	id: str
	title: str
	display_title: str
	path: Optional[str] = None
	chunks: List[str] = Field(default_factory=list)


class IndexEntry(CamelModel):
	id: str
	source_id: str
	source_title: str
	display_title: str
	text: str


class RelevanceMatch(IndexEntry):
	rating: float
	preview: str
