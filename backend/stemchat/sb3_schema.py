"""Typed view of a Scratch 3 ``project.json``.

Only ``targets`` and each target's ``blocks`` are required. Every other field
falls back to an empty value when it is missing or has the wrong shape, so
hand-edited or truncated projects still produce a summary.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class Sb3Model(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _dict_or_empty(value: Any) -> Dict[str, Any]:
	return value if isinstance(value, dict) else {}


def _list_or_empty(value: Any) -> List[Any]:
	return value if isinstance(value, list) else []


def _str_or_none(value: Any) -> Optional[str]:
	if value is None or isinstance(value, (dict, list)):
		return None
	return str(value)


class Sb3Block(Sb3Model):
	opcode: str = ""
	next: Optional[str] = None
	parent: Optional[str] = None
	inputs: Dict[str, Any] = Field(default_factory=dict)
	fields: Dict[str, Any] = Field(default_factory=dict)
	shadow: bool = False
	top_level: bool = False
	x: Optional[float] = None
	y: Optional[float] = None

	@classmethod
	def from_raw(cls, raw: Any) -> "Sb3Block":
		# Top-level reporters are stored as arrays, e.g. [12, "score", "varId", 10, 20]
		if not isinstance(raw, dict):
			return cls()
		try:
			return cls.model_validate(raw)
		except ValidationError:
			logger.debug("Degrading malformed block with opcode %r", raw.get("opcode"))
			opcode = raw.get("opcode")
			return cls(
				opcode=opcode if isinstance(opcode, str) else "",
				top_level=raw.get("topLevel") is True,
				inputs=_dict_or_empty(raw.get("inputs")),
				fields=_dict_or_empty(raw.get("fields")),
			)


class Sb3Target(Sb3Model):
	name: str = ""
	is_stage: bool = False
	variables: Dict[str, Any] = Field(default_factory=dict)
	lists: Dict[str, Any] = Field(default_factory=dict)
	broadcasts: Dict[str, Any] = Field(default_factory=dict)
	blocks: Dict[str, Sb3Block]
	costumes: List[Any] = Field(default_factory=list)
	sounds: List[Any] = Field(default_factory=list)
	comments: Dict[str, Any] = Field(default_factory=dict)

	@model_validator(mode="before")
	@classmethod
	def _normalize(cls, data: Any) -> Any:
		if not isinstance(data, dict):
			return data
		cleaned = dict(data)
		cleaned["name"] = _str_or_none(data.get("name")) or ""
		cleaned["isStage"] = data.get("isStage") is True
		for key in ("variables", "lists", "broadcasts", "comments"):
			cleaned[key] = _dict_or_empty(data.get(key))
		for key in ("costumes", "sounds"):
			cleaned[key] = _list_or_empty(data.get(key))
		return cleaned

	@field_validator("blocks", mode="before")
	@classmethod
	def _parse_blocks(cls, value: Any) -> Any:
		if not isinstance(value, dict):
			return value
		return {str(block_id): Sb3Block.from_raw(raw) for block_id, raw in value.items()}


class Sb3Meta(Sb3Model):
	semver: Optional[str] = None
	vm: Optional[str] = None
	agent: Optional[str] = None
	project_title: Optional[str] = None

	@model_validator(mode="before")
	@classmethod
	def _normalize(cls, data: Any) -> Any:
		if not isinstance(data, dict):
			return {}
		return {key: _str_or_none(data.get(key)) for key in ("semver", "vm", "agent", "projectTitle")}


class Sb3Project(Sb3Model):
	targets: List[Sb3Target]
	meta: Sb3Meta = Field(default_factory=Sb3Meta)

	@field_validator("meta", mode="before")
	@classmethod
	def _default_meta(cls, value: Any) -> Any:
		return value if isinstance(value, dict) else {}

	@property
	def stage(self) -> Optional[Sb3Target]:
		return next((target for target in self.targets if target.is_stage), None)

	@property
	def sprites(self) -> List[Sb3Target]:
		return [target for target in self.targets if not target.is_stage]
