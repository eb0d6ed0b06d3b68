from __future__ import annotations

import hashlib
import io
import json
import zipfile
from typing import Any, Dict, List, Sequence, Tuple

from .errors import EmptyInput

DEFAULT_PROJECT_TITLE = "MindX Scratch Export"
HELPER_SPRITE_NAME = "MindX Helper"
SCRIPT_X = 200
SCRIPT_Y_START = 120
SCRIPT_Y_STEP = 120

# Fixed entry timestamp keeps the archive bytes a function of the input only
_ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)

STAGE_SVG = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="480" height="360" viewBox="0 0 480 360">
  <rect width="480" height="360" fill="#ffffff"/>
</svg>"""

SPRITE_SVG = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100" viewBox="0 0 100 100">
  <circle cx="50" cy="50" r="40" fill="#10b981"/>
  <text x="50" y="57" text-anchor="middle" font-family="Arial" font-size="28" fill="#ffffff">☆</text>
</svg>"""


class Asset:
	def __init__(self, source: str, extension: str = "svg") -> None:
		self.data: bytes = source.encode("utf-8")
		# Scratch requires asset filenames to match the md5 of their content
		self.asset_id: str = hashlib.md5(self.data).hexdigest()
		self.data_format: str = extension
		self.md5ext: str = f"{self.asset_id}.{extension}"

	def costume(self, name: str, center_x: int, center_y: int) -> Dict[str, Any]:
		return {
			"name": name,
			"assetId": self.asset_id,
			"md5ext": self.md5ext,
			"dataFormat": self.data_format,
			"rotationCenterX": center_x,
			"rotationCenterY": center_y,
		}


def _stable_id(kind: str, index: int) -> str:
	return hashlib.sha1(f"{kind}:{index}".encode("utf-8")).hexdigest()[:20]


def build_say_scripts(sequences: Sequence[Sequence[str]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
	blocks: Dict[str, Any] = {}
	comments: Dict[str, Any] = {}
	for index, sequence in enumerate(sequences):
		hat_id = _stable_id("hat", index)
		say_id = _stable_id("say", index)
		message = " -> ".join(sequence)
		y = SCRIPT_Y_START + index * SCRIPT_Y_STEP

		blocks[hat_id] = {
			"opcode": "event_whenflagclicked",
			"next": say_id,
			"parent": None,
			"inputs": {},
			"fields": {},
			"shadow": False,
			"topLevel": True,
			"x": SCRIPT_X,
			"y": y,
		}
		blocks[say_id] = {
			"opcode": "looks_say",
			"next": None,
			"parent": hat_id,
			"inputs": {"MESSAGE": [1, [10, message]]},
			"fields": {},
			"shadow": False,
			"topLevel": False,
		}
		comments[_stable_id("comment", index)] = {
			"blockId": hat_id,
			"x": SCRIPT_X + 20,
			"y": y - 40,
			"width": 200,
			"height": 60,
			"minimized": False,
			"text": message,
		}
	return blocks, comments


def build_project(sequences: Sequence[Sequence[str]], project_title: str, stage_asset: Asset, sprite_asset: Asset) -> Dict[str, Any]:
	blocks, comments = build_say_scripts(sequences)
	return {
		"targets": [
			{
				"isStage": True,
				"name": "Stage",
				"variables": {},
				"lists": {},
				"broadcasts": {},
				"blocks": {},
				"comments": {},
				"currentCostume": 0,
				"costumes": [stage_asset.costume("white", 240, 180)],
				"sounds": [],
				"volume": 100,
				"layerOrder": 0,
				"tempo": 60,
				"videoTransparency": 50,
				"videoState": "on",
				"textToSpeechLanguage": None,
			},
			{
				"isStage": False,
				"name": HELPER_SPRITE_NAME,
				"variables": {},
				"lists": {},
				"broadcasts": {},
				"blocks": blocks,
				"comments": comments,
				"currentCostume": 0,
				"costumes": [sprite_asset.costume("helper", 50, 50)],
				"sounds": [],
				"volume": 100,
				"layerOrder": 1,
				"visible": True,
				"x": 0,
				"y": 0,
				"size": 100,
				"direction": 90,
				"draggable": False,
				"rotationStyle": "all around",
			},
		],
		"monitors": [],
		"extensions": [],
		"meta": {
			"semver": "3.0.0",
			"vm": "1.6.0",
			"agent": "mindx-exporter",
			"projectTitle": project_title,
		},
	}


def _write_entry(archive: zipfile.ZipFile, name: str, data: bytes) -> None:
	info = zipfile.ZipInfo(name, date_time=_ZIP_DATE_TIME)
	info.compress_type = zipfile.ZIP_DEFLATED
	archive.writestr(info, data)


def build_sb3_from_sequences(sequences: Sequence[Sequence[str]], project_title: str = DEFAULT_PROJECT_TITLE) -> bytes:
	cleaned: List[List[str]] = []
	for sequence in sequences or []:
		tokens = [str(token).strip() for token in sequence if str(token).strip()]
		if tokens:
			cleaned.append(tokens)
	if not cleaned:
		raise EmptyInput("No Scratch command sequences were found to export.")

	stage_asset = Asset(STAGE_SVG)
	sprite_asset = Asset(SPRITE_SVG)
	project = build_project(cleaned, project_title or DEFAULT_PROJECT_TITLE, stage_asset, sprite_asset)

	buffer = io.BytesIO()
	with zipfile.ZipFile(buffer, "w") as archive:
		_write_entry(archive, "project.json", json.dumps(project, ensure_ascii=False).encode("utf-8"))
		_write_entry(archive, stage_asset.md5ext, stage_asset.data)
		_write_entry(archive, sprite_asset.md5ext, sprite_asset.data)
	return buffer.getvalue()
