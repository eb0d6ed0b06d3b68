from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError

from .errors import InvalidProjectSchema, MalformedArchive
from .sb3_schema import Sb3Block, Sb3Project, Sb3Target
from .schemas import CamelModel

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.json"
# Uncompressed size cap for project.json
MAX_PROJECT_JSON_BYTES = 50 * 1024 * 1024
DEFAULT_PROJECT_NAME = "Scratch project"

BROADCAST_SENDERS = {"event_broadcast", "event_broadcastandwait"}
BROADCAST_RECEIVER = "event_whenbroadcastreceived"


class SpriteSummary(CamelModel):
	name: str
	costumes: int = 0
	sounds: int = 0
	blocks: int = 0
	scripts: int = 0
	hat_blocks: int = 0
	custom_blocks: int = 0
	variables: List[str] = Field(default_factory=list)
	variable_count: int = 0
	lists: List[str] = Field(default_factory=list)
	list_count: int = 0
	comments: int = 0


class StageSummary(CamelModel):
	name: str
	backdrops: int = 0
	sounds: int = 0
	blocks: int = 0
	scripts: int = 0
	variables: List[str] = Field(default_factory=list)
	lists: List[str] = Field(default_factory=list)


class Sb3Summary(CamelModel):
	project_name: str
	scratch_version: Optional[str] = None
	sprite_count: int = 0
	total_scripts: int = 0
	total_blocks: int = 0
	empty_sprites: List[str] = Field(default_factory=list)
	unused_broadcasts: List[str] = Field(default_factory=list)
	undefined_broadcasts: List[str] = Field(default_factory=list)
	broadcasts: List[str] = Field(default_factory=list)
	global_variables: List[str] = Field(default_factory=list)
	global_lists: List[str] = Field(default_factory=list)
	sprite_summaries: List[SpriteSummary] = Field(default_factory=list)
	stage: Optional[StageSummary] = None


class Sb3Analysis(CamelModel):
	summary: Sb3Summary
	text_report: str


def _read_project(buffer: bytes, max_project_bytes: int = MAX_PROJECT_JSON_BYTES) -> Sb3Project:
	try:
		with zipfile.ZipFile(io.BytesIO(buffer)) as archive:
			if PROJECT_FILE not in archive.namelist():
				raise MalformedArchive("project.json was not found in the .sb3 file")
			if archive.getinfo(PROJECT_FILE).file_size > max_project_bytes:
				raise MalformedArchive(f"project.json is larger than {max_project_bytes} bytes once unpacked")
			raw = archive.read(PROJECT_FILE)
	except MalformedArchive:
		raise
	except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, OSError, RuntimeError, NotImplementedError) as exc:
		raise MalformedArchive(f"the .sb3 file is not a readable archive: {exc}") from exc

	try:
		data = json.loads(raw.decode("utf-8-sig"))
	except (UnicodeDecodeError, ValueError) as exc:
		raise InvalidProjectSchema(f"project.json is not valid JSON: {exc}") from exc
	try:
		return Sb3Project.model_validate(data)
	except ValidationError as exc:
		raise InvalidProjectSchema(f"project.json does not describe a Scratch project: {exc.error_count()} error(s)") from exc


def _name_list(record: Dict[str, Any]) -> List[str]:
	names: List[str] = []
	for item in record.values():
		if isinstance(item, list):
			name = item[0] if item else None
		elif isinstance(item, dict):
			name = item.get("name")
		else:
			name = None
		if name is None:
			continue
		name = str(name).strip()
		if name:
			names.append(name)
	return names


def _broadcast_name(value: Any) -> Optional[str]:
	if isinstance(value, str):
		name = value
	elif isinstance(value, list):
		name = value[1] if len(value) > 1 else (value[0] if value else None)
	elif isinstance(value, dict):
		name = value.get("name")
	else:
		name = None
	if name is None:
		return None
	name = str(name).strip()
	return name or None


def build_broadcast_map(targets: List[Sb3Target]) -> Dict[str, str]:
	id_to_name: Dict[str, str] = {}
	for target in targets:
		for broadcast_id, value in target.broadcasts.items():
			name = _broadcast_name(value)
			if name:
				id_to_name[broadcast_id] = name
	return id_to_name


def _field_id(block: Sb3Block) -> Optional[str]:
	option = block.fields.get("BROADCAST_OPTION")
	if isinstance(option, list) and len(option) > 1 and option[1] is not None:
		return str(option[1])
	return None


def _sent_broadcast_id(block: Sb3Block, blocks: Dict[str, Sb3Block]) -> Optional[str]:
	slot = block.inputs.get("BROADCAST_INPUT")
	if not isinstance(slot, list) or len(slot) < 2:
		return None
	value = slot[1]
	# Inline primitive: [11, name, id]
	if isinstance(value, list) and len(value) >= 2:
		broadcast_id = value[2] if len(value) > 2 else value[1]
		return str(broadcast_id) if broadcast_id is not None else None
	# Reference to an event_broadcast_menu shadow block in the same target
	if isinstance(value, str) and value in blocks:
		return _field_id(blocks[value])
	return None


def find_broadcast_anomalies(targets: List[Sb3Target], id_to_name: Dict[str, str]) -> tuple[List[str], List[str]]:
	used_ids: set[str] = set()
	missing_ids: Dict[str, None] = {}

	def mark_usage(broadcast_id: Optional[str]) -> None:
		if not broadcast_id:
			return
		if broadcast_id in id_to_name:
			used_ids.add(broadcast_id)
		else:
			missing_ids.setdefault(broadcast_id, None)

	for target in targets:
		for block in target.blocks.values():
			if block.opcode in BROADCAST_SENDERS:
				mark_usage(_sent_broadcast_id(block, target.blocks))
			elif block.opcode == BROADCAST_RECEIVER:
				mark_usage(_field_id(block))

	unused = [name for broadcast_id, name in id_to_name.items() if broadcast_id not in used_ids]
	undefined = [id_to_name.get(broadcast_id, broadcast_id) for broadcast_id in missing_ids]
	return unused, undefined


def _script_count(target: Sb3Target) -> int:
	return sum(1 for block in target.blocks.values() if block.top_level)


def summarize_sprite(sprite: Sb3Target) -> SpriteSummary:
	blocks = list(sprite.blocks.values())
	scripts = [block for block in blocks if block.top_level]
	variables = _name_list(sprite.variables)
	lists = _name_list(sprite.lists)
	return SpriteSummary(
		name=sprite.name,
		costumes=len(sprite.costumes),
		sounds=len(sprite.sounds),
		blocks=len(blocks),
		scripts=len(scripts),
		hat_blocks=sum(1 for block in scripts if block.opcode.startswith("event_")),
		custom_blocks=sum(1 for block in blocks if block.opcode == "procedures_definition"),
		variables=variables,
		variable_count=len(variables),
		lists=lists,
		list_count=len(lists),
		comments=len(sprite.comments),
	)


def summarize_stage(stage: Sb3Target) -> StageSummary:
	return StageSummary(
		name=stage.name or "Stage",
		backdrops=len(stage.costumes),
		sounds=len(stage.sounds),
		blocks=len(stage.blocks),
		scripts=_script_count(stage),
		variables=_name_list(stage.variables),
		lists=_name_list(stage.lists),
	)


def render_report(summary: Sb3Summary) -> str:
	lines: List[str] = []
	version = f" (Scratch {summary.scratch_version})" if summary.scratch_version else ""
	lines.append(f"Project: {summary.project_name}{version}.")

	stage = summary.stage
	if stage:
		lines.append(
			f'Stage "{stage.name}" has {stage.backdrops} backdrop(s), {stage.sounds} sound(s), '
			f"{stage.scripts} script(s) ({stage.blocks} blocks)."
		)

	lines.append(
		f"The project has {summary.sprite_count} sprite(s), {summary.total_scripts} script(s) "
		f"and {summary.total_blocks} blocks."
	)

	if summary.global_variables:
		lines.append(f"Global variables: {', '.join(summary.global_variables)}.")
	else:
		lines.append("No global variables.")

	if summary.global_lists:
		lines.append(f"Global lists: {', '.join(summary.global_lists)}.")
	else:
		lines.append("No global lists.")

	if summary.broadcasts:
		lines.append(f"Declared broadcasts: {', '.join(summary.broadcasts)}.")
	else:
		lines.append("No broadcasts declared.")

	if summary.unused_broadcasts:
		lines.append(f"Broadcasts never used: {', '.join(summary.unused_broadcasts)}.")

	if summary.undefined_broadcasts:
		lines.append(f"Broadcasts used but never declared: {', '.join(summary.undefined_broadcasts)}.")

	if summary.empty_sprites:
		lines.append(f"Sprites without scripts: {', '.join(summary.empty_sprites)}.")
	else:
		lines.append("All sprites have at least one script.")

	lines.append("\nSprite details:")
	for sprite in summary.sprite_summaries:
		parts = [
			f"{sprite.scripts} script(s) ({sprite.blocks} blocks, {sprite.hat_blocks} hat blocks)",
			f"{sprite.costumes} costume(s)",
			f"{sprite.sounds} sound(s)",
		]
		if sprite.custom_blocks > 0:
			parts.append(f"{sprite.custom_blocks} custom block(s)")
		if sprite.variables:
			parts.append(f"variables: {', '.join(sprite.variables)}")
		if sprite.lists:
			parts.append(f"lists: {', '.join(sprite.lists)}")
		if sprite.comments > 0:
			parts.append(f"{sprite.comments} comment(s)")
		lines.append(f"- {sprite.name}: {'; '.join(parts)}.")

	return "\n".join(lines)


def summarize_project(project: Sb3Project) -> Sb3Summary:
	stage = project.stage
	sprites = project.sprites
	id_to_name = build_broadcast_map(project.targets)
	unused, undefined = find_broadcast_anomalies(project.targets, id_to_name)

	sprite_summaries = [summarize_sprite(sprite) for sprite in sprites]
	stage_summary = summarize_stage(stage) if stage else None
	stage_scripts = stage_summary.scripts if stage_summary else 0
	stage_blocks = stage_summary.blocks if stage_summary else 0

	return Sb3Summary(
		project_name=project.meta.project_title or (stage_summary.name if stage_summary else None) or DEFAULT_PROJECT_NAME,
		scratch_version=project.meta.semver,
		sprite_count=len(sprites),
		total_scripts=sum(sprite.scripts for sprite in sprite_summaries) + stage_scripts,
		total_blocks=sum(sprite.blocks for sprite in sprite_summaries) + stage_blocks,
		empty_sprites=[sprite.name for sprite in sprite_summaries if sprite.scripts == 0],
		unused_broadcasts=unused,
		undefined_broadcasts=undefined,
		broadcasts=list(id_to_name.values()),
		global_variables=stage_summary.variables if stage_summary else [],
		global_lists=stage_summary.lists if stage_summary else [],
		sprite_summaries=sprite_summaries,
		stage=stage_summary,
	)


def analyze_sb3(buffer: bytes, *, max_project_bytes: int = MAX_PROJECT_JSON_BYTES) -> Sb3Analysis:
	project = _read_project(buffer, max_project_bytes)
	summary = summarize_project(project)
	logger.debug("Analyzed %s: %d sprites, %d blocks", summary.project_name, summary.sprite_count, summary.total_blocks)
	return Sb3Analysis(summary=summary, text_report=render_report(summary))
