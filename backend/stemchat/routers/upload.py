from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from ..deps import get_settings, get_text_generator
from ..errors import Sb3Error
from ..gemini_client import GeminiClient
from ..sb3_analyzer import analyze_sb3
from ..settings import Settings
from .chat import TUTOR_PERSONA

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["upload"])


def feedback_prompt(report: str) -> str:
	return (
		"A student just uploaded a Scratch project and this is the automatic report:\n"
		f"{report}\n\n"
		"Reply in at most 220 words for a young student, with sections for what went well, "
		"what to fix and one practice idea. Name blocks as `Category > Block`."
	)


@router.post("/upload")
async def upload_sb3(
	file: UploadFile = File(...),
	settings: Settings = Depends(get_settings),
	generator: Optional[GeminiClient] = Depends(get_text_generator),
):
	if not (file.filename or "").lower().endswith(".sb3"):
		raise HTTPException(status_code=400, detail="Only Scratch .sb3 files are accepted")
	data = await file.read()
	if len(data) > settings.max_upload_mb * 1024 * 1024:
		raise HTTPException(status_code=413, detail=f"The .sb3 file is larger than {settings.max_upload_mb} MB")

	try:
		analysis = await run_in_threadpool(analyze_sb3, data)
	except Sb3Error as e:
		logger.info("Rejected .sb3 upload %s: %s", file.filename, e)
		raise HTTPException(status_code=400, detail=str(e))

	ai_feedback = None
	if generator is not None:
		try:
			ai_feedback = await generator.generate(feedback_prompt(analysis.text_report), system_instruction=TUTOR_PERSONA)
		except (httpx.HTTPError, RuntimeError) as e:
			logger.warning("Upload feedback generation failed: %s", e)

	return {
		"summary": analysis.summary.model_dump(by_alias=True),
		"report": analysis.text_report,
		"aiFeedback": ai_feedback,
	}
