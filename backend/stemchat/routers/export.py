from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..deps import get_settings
from ..errors import EmptyInput
from ..sb3_exporter import build_sb3_from_sequences
from ..sequences import extract_sequences
from ..settings import Settings

router = APIRouter(prefix="/api", tags=["export"])

EXPORT_FILENAME = "MindX-Assistant.sb3"


class ExportRequest(BaseModel):
	content: Optional[str] = None
	projectName: Optional[str] = None


@router.post("/export-sb3")
async def export_sb3(req: ExportRequest, settings: Settings = Depends(get_settings)):
	sequences = extract_sequences(req.content or "")
	try:
		data = await run_in_threadpool(
			build_sb3_from_sequences,
			sequences,
			(req.projectName or "").strip() or settings.export_project_title,
		)
	except EmptyInput:
		raise HTTPException(status_code=400, detail="No Scratch command sequences were found in the latest reply")
	return Response(
		content=data,
		media_type="application/octet-stream",
		headers={"Content-Disposition": f"attachment; filename={EXPORT_FILENAME}"},
	)
