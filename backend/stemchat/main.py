import asyncio
import logging
from typing import Optional, Tuple

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .analytics.base import AnalyticsStore
from .analytics.fallback import FallbackAnalytics
from .analytics.memory import InMemoryAnalytics
from .analytics.sql import SqlAnalytics
from .db import ensure_schema, make_session_factory
from .errors import AnalyticsUnavailable
from .guides import load_teaching_guides
from .retrieval import build_context_index
from .routers import admin, chat, export, health, upload
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

RETENTION_INTERVAL_SECONDS = 24 * 60 * 60


def build_analytics(settings: Settings) -> Tuple[AnalyticsStore, Optional[SqlAnalytics]]:
	memory = InMemoryAnalytics(history_limit=settings.analytics_history_limit, timezone_name=settings.analytics_timezone)
	if not settings.database_url:
		return FallbackAnalytics(None, memory), None
	try:
		engine, session_factory = make_session_factory(settings.database_url)
		ensure_schema(engine)
	except (SQLAlchemyError, ImportError) as exc:
		# Missing driver or unreachable server
		logger.warning("Analytics database unavailable, using in-memory analytics: %s", exc)
		return FallbackAnalytics(None, memory), None
	sql = SqlAnalytics(
		session_factory,
		history_limit=settings.analytics_history_limit,
		timezone_name=settings.analytics_timezone,
	)
	return FallbackAnalytics(sql, memory), sql


async def _retention_watcher(store: SqlAnalytics, retention_days: int) -> None:
	# Run once at startup, then daily
	while True:
		try:
			removed = await run_in_threadpool(store.purge_stale, retention_days)
			if removed:
				logger.info("Purged %d analytics sessions idle for more than %d days", removed, retention_days)
		except AnalyticsUnavailable as exc:
			logger.warning("Analytics retention purge failed: %s", exc)
		await asyncio.sleep(RETENTION_INTERVAL_SECONDS)


def create_app(settings_override: Optional[Settings] = None) -> FastAPI:
	settings = settings_override or default_settings
	logging.basicConfig(
		level=settings.log_level.upper(),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)

	app = FastAPI(title="STEM Chat API")
	app.state.settings = settings
	app.state.guides = []
	app.state.context_index = []
	app.state.analytics = FallbackAnalytics(None, InMemoryAnalytics())
	app.state.admin_sessions = admin.AdminSessions()
	app.state.retention_task = None

	app.include_router(health.router)
	app.include_router(chat.router)
	app.include_router(upload.router)
	app.include_router(export.router)
	app.include_router(admin.router)

	@app.on_event("startup")
	async def startup_event():
		logger.info("Teaching guide directory: %s", settings.teaching_guide_dir)
		logger.info("Gemini model: %s", settings.gemini_model)
		if not admin.admin_login_enabled(settings):
			logger.warning("ADMIN_PASSWORD is unset or still the default; admin login is disabled")
		guides = await run_in_threadpool(
			load_teaching_guides, settings.teaching_guide_dir, max_chunk_length=settings.chunk_max_chars
		)
		app.state.guides = guides
		app.state.context_index = build_context_index(guides)
		logger.info("Loaded %d teaching guides, %d context chunks", len(guides), len(app.state.context_index))

		analytics, sql = await run_in_threadpool(build_analytics, settings)
		app.state.analytics = analytics
		logger.info("Analytics backend: %s", analytics.name)
		if sql is not None and settings.analytics_retention_days > 0:
			app.state.retention_task = asyncio.create_task(_retention_watcher(sql, settings.analytics_retention_days))

	@app.on_event("shutdown")
	async def shutdown_event():
		task = app.state.retention_task
		if task is not None:
			task.cancel()

	return app


app = create_app()
