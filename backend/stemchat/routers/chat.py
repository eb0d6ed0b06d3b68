from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ..analytics.base import AnalyticsStore
from ..analytics.schemas import ChatExchange, LearnerProfile, LearningPreferences, ReferenceCite
from ..attachments import PreparedAttachment, prepare_attachment
from ..deps import get_analytics, get_context_index, get_settings, get_text_generator
from ..errors import AttachmentTooLarge, StemChatError, UnsupportedAttachmentType
from ..gemini_client import GeminiClient
from ..retrieval import find_relevant_chunks
from ..schemas import IndexEntry, RelevanceMatch
from ..settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

MAX_HISTORY_TURNS = 10
MAX_HISTORY_CHARS = 4000

TUTOR_PERSONA = (
	"You are a friendly Scratch programming tutor for primary and lower-secondary students. "
	"Explain simply, encourage the learner, and name Scratch blocks as `Category > Block`."
)


def build_history(raw_history: Optional[str], message: str) -> List[Dict[str, Any]]:
	"""Convert the client's ``[{role, content}]`` history into model turns."""
	try:
		items = json.loads(raw_history) if raw_history else []
	except json.JSONDecodeError:
		items = []
	if not isinstance(items, list):
		items = []

	# The client may already have appended the message being sent
	if items:
		last = items[-1]
		if (
			isinstance(last, dict)
			and last.get("role") == "user"
			and isinstance(last.get("content"), str)
			and last["content"].strip() == message.strip()
		):
			items = items[:-1]

	turns: List[Dict[str, Any]] = []
	for item in items:
		if not isinstance(item, dict) or not isinstance(item.get("content"), str):
			continue
		text = item["content"][:MAX_HISTORY_CHARS].strip()
		if not text:
			continue
		role = "model" if item.get("role") == "assistant" else "user"
		turns.append({"role": role, "parts": [{"text": text}]})

	while turns and turns[0]["role"] != "user":
		turns.pop(0)
	return turns[-MAX_HISTORY_TURNS:]


def _parse_json_model(model: Any, raw: Optional[str]) -> Optional[Any]:
	if not raw:
		return None
	try:
		return model.model_validate_json(raw)
	except ValidationError:
		return None


def _clean_report(raw: Optional[str]) -> Optional[str]:
	text = (raw or "").strip()
	if not text or text.lower() in ("null", "undefined"):
		return None
	return text


def build_prompt(question: str, matches: List[RelevanceMatch], sb3_report: Optional[str], notes: List[str]) -> str:
	context = "\n---\n".join(
		f"Guide {i + 1}: {match.source_title}\nRelevance: {match.rating * 100:.1f}%\n{match.text}"
		for i, match in enumerate(matches)
	)
	sections = [
		"Teaching guide excerpts related to the question (prefer this material):",
		context or "(no matching excerpts)",
		f"Student question: {question}",
	]
	if sb3_report:
		sections.append(f"Analysis of the student's Scratch project:\n{sb3_report}")
	if notes:
		sections.append(f"The student attached {len(notes)} file(s):\n- " + "\n- ".join(notes))
	sections.append(
		"When combining blocks, write the sequence as `Category > Block -> Category > Block`."
	)
	return "\n\n".join(sections)


@router.post("/chat")
async def chat(
	message: str = Form(""),
	history: Optional[str] = Form(None),
	session_id: Optional[str] = Form(None, alias="sessionId"),
	preferences: Optional[str] = Form(None),
	profile: Optional[str] = Form(None),
	sb3_report: Optional[str] = Form(None, alias="sb3Report"),
	attachments: Optional[List[UploadFile]] = File(None),
	settings: Settings = Depends(get_settings),
	index: List[IndexEntry] = Depends(get_context_index),
	analytics: AnalyticsStore = Depends(get_analytics),
	generator: Optional[GeminiClient] = Depends(get_text_generator),
):
	files = attachments or []
	if len(files) > settings.max_attachments:
		raise HTTPException(status_code=400, detail=f"At most {settings.max_attachments} attachments are allowed")

	prepared: List[PreparedAttachment] = []
	for i, upload in enumerate(files):
		data = await upload.read()
		try:
			prepared.append(
				prepare_attachment(
					i,
					upload.filename or "",
					upload.content_type,
					data,
					max_bytes=settings.max_attachment_mb * 1024 * 1024,
				)
			)
		except (AttachmentTooLarge, UnsupportedAttachmentType) as e:
			raise HTTPException(status_code=400, detail=str(e))

	question = message.strip()
	if not question and not prepared:
		raise HTTPException(status_code=400, detail="Write a question or attach at least one file")
	if generator is None:
		raise HTTPException(status_code=503, detail="GEMINI_API_KEY is not configured")

	report = _clean_report(sb3_report)
	notes = [item.note for item in prepared]
	retrieval_hint = question or " ".join(notes) or "explain the attached files"
	matches = find_relevant_chunks(retrieval_hint, index, settings.retrieval_limit, min_rating=settings.relevance_floor)

	prompt = build_prompt(
		question or "The student sent only attachments. Read them and explain in simple words.",
		matches,
		report,
		notes,
	)
	contents = build_history(history, message)
	contents.append({"role": "user", "parts": [{"text": prompt}] + [item.part for item in prepared]})

	try:
		reply = await generator.generate_contents(contents, system_instruction=TUTOR_PERSONA)
	except (httpx.HTTPError, RuntimeError) as e:
		logger.error("Chat generation failed: %s", e)
		raise HTTPException(status_code=502, detail="Could not reach the Gemini API")

	references = [
		{"id": match.id, "title": match.display_title or match.source_title, "score": round(match.rating, 4)}
		for match in matches
	]

	user_log = question or f"Student sent {len(prepared)} file(s): " + ", ".join(item.meta.name for item in prepared) + "."

	exchange = ChatExchange(
		session_id=session_id or None,
		user_message=user_log,
		assistant_message=reply,
		attachments=[item.meta for item in prepared],
		preferences=_parse_json_model(LearningPreferences, preferences),
		profile=_parse_json_model(LearnerProfile, profile),
		references=[ReferenceCite(**ref) for ref in references],
	)
	recorded_session = session_id
	try:
		recorded_session = await run_in_threadpool(analytics.record_exchange, exchange)
	except StemChatError as e:
		logger.warning("Could not record chat analytics: %s", e)

	return {"reply": reply, "references": references, "model": generator.model, "sessionId": recorded_session}
