from __future__ import annotations

import io
import json
import zipfile
from typing import Any, Dict

import pytest


def make_sb3(project: Dict[str, Any] | None = None, *, raw_project: bytes | None = None, extra: Dict[str, bytes] | None = None) -> bytes:
	buffer = io.BytesIO()
	with zipfile.ZipFile(buffer, "w") as archive:
		if raw_project is not None:
			archive.writestr("project.json", raw_project)
		elif project is not None:
			archive.writestr("project.json", json.dumps(project))
		for name, data in (extra or {}).items():
			archive.writestr(name, data)
	return buffer.getvalue()


@pytest.fixture
def broadcast_project() -> Dict[str, Any]:
	return {
		"targets": [
			{
				"isStage": True,
				"name": "Stage",
				"variables": {"v1": ["score", 0]},
				"lists": {"l1": ["items", []]},
				"broadcasts": {"b1": "start", "b2": "game over"},
				"blocks": {},
				"costumes": [{"name": "backdrop1"}],
				"sounds": [],
			},
			{
				"isStage": False,
				"name": "Cat",
				"variables": {"v2": ["speed", 3]},
				"lists": {},
				"broadcasts": {},
				"blocks": {
					"h1": {"opcode": "event_whenflagclicked", "next": "s1", "parent": None, "topLevel": True, "x": 0, "y": 0},
					"s1": {
						"opcode": "event_broadcast",
						"next": None,
						"parent": "h1",
						"inputs": {"BROADCAST_INPUT": [1, [11, "start", "b1"]]},
						"topLevel": False,
					},
					"h2": {
						"opcode": "event_whenbroadcastreceived",
						"fields": {"BROADCAST_OPTION": ["ghost", "b9"]},
						"topLevel": True,
					},
					"r1": [12, "score", "v1", 10, 20],
				},
				"costumes": [{"name": "cat-a"}, {"name": "cat-b"}],
				"sounds": [{"name": "meow"}],
				"comments": {"c1": {"text": "hello"}},
			},
			{
				"isStage": False,
				"name": "Empty",
				"blocks": {},
			},
		],
		"meta": {"semver": "3.0.0", "vm": "1.6.0", "agent": "test"},
	}


@pytest.fixture
def sb3_factory():
	return make_sb3
