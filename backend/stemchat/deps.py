from __future__ import annotations

from typing import AsyncIterator, List, Optional

from fastapi import Depends, Request

from .analytics.base import AnalyticsStore
from .gemini_client import GeminiClient
from .schemas import Guide, IndexEntry
from .settings import Settings


def get_settings(request: Request) -> Settings:
	return request.app.state.settings


def get_guides(request: Request) -> List[Guide]:
	return request.app.state.guides


def get_context_index(request: Request) -> List[IndexEntry]:
	return request.app.state.context_index


def get_analytics(request: Request) -> AnalyticsStore:
	return request.app.state.analytics


async def get_text_generator(settings: Settings = Depends(get_settings)) -> AsyncIterator[Optional[GeminiClient]]:
	"""One client per request; ``None`` when no API key is configured."""
	if not settings.gemini_api_key:
		yield None
		return
	client = GeminiClient(
		settings.gemini_api_key,
		model=settings.gemini_model,
		fallback_model=settings.gemini_fallback_model,
	)
	try:
		yield client
	finally:
		await client.aclose()
