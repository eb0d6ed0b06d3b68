from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..cleanup import purge_stale_sessions
from ..errors import AnalyticsUnavailable
from ..models import AnalyticsMessage, AnalyticsSession, KeywordTotal, ReferenceTotal, SessionReference
from .base import AnalyticsStore
from .memory import MAX_MESSAGE_HISTORY
from .schemas import AnalyticsSnapshot, ChatExchange, LearnerProfile, LearningPreferences
from .snapshot import (
	RECENT_MESSAGES,
	TOP_GUIDES,
	TOP_KEYWORDS,
	MessageRecord,
	SessionStats,
	as_utc,
	build_snapshot,
	recent_sessions,
	resolve_timezone,
	utcnow,
)
from .text import DEFAULT_SESSION_TITLE, derive_session_title, iter_keywords, new_session_id, truncate_content

logger = logging.getLogger(__name__)

_NO_SYNC = {"synchronize_session": False}


def _bump(db: Session, model: Any, where: List[Any], values: Dict[str, Any], insert_values: Dict[str, Any]) -> None:
	"""Increment-and-upsert: update the row, inserting it first when missing."""
	result = db.execute(update(model).where(*where).values(**values).execution_options(**_NO_SYNC))
	if result.rowcount:
		return
	try:
		with db.begin_nested():
			db.add(model(**insert_values))
	except IntegrityError:
		# Another writer inserted the row between our update and insert
		db.execute(update(model).where(*where).values(**values).execution_options(**_NO_SYNC))


def _load_json_model(model: type[BaseModel], raw: Optional[str]) -> Optional[Any]:
	if not raw:
		return None
	try:
		return model.model_validate_json(raw)
	except ValidationError:
		logger.warning("Ignoring unreadable %s snapshot", model.__name__)
		return None


class SqlAnalytics(AnalyticsStore):
	"""Analytics persisted through SQLAlchemy; atomicity comes from the database."""

	name = "sql"

	def __init__(self, session_factory: sessionmaker, *, history_limit: int = MAX_MESSAGE_HISTORY, timezone_name: str = "UTC") -> None:
		self._session_factory = session_factory
		self._history_limit = history_limit
		self._tz = resolve_timezone(timezone_name)

	@contextmanager
	def _session(self) -> Iterator[Session]:
		db = self._session_factory()
		try:
			yield db
			db.commit()
		except SQLAlchemyError as exc:
			db.rollback()
			raise AnalyticsUnavailable(f"analytics database error: {exc}") from exc
		except Exception:
			db.rollback()
			raise
		finally:
			db.close()

	def record_exchange(self, exchange: ChatExchange, *, now: Optional[datetime] = None) -> str:
		now = as_utc(now) if now else utcnow()
		session_id = exchange.session_id or new_session_id(now)
		user_text = exchange.user_message if exchange.user_message and exchange.user_message.strip() else None
		assistant_text = exchange.assistant_message if exchange.assistant_message and exchange.assistant_message.strip() else None
		attachments = len(exchange.attachments)

		with self._session() as db:
			if db.get(AnalyticsSession, session_id) is None:
				try:
					with db.begin_nested():
						db.add(
							AnalyticsSession(
								id=session_id,
								title=derive_session_title(user_text),
								user_messages=0,
								assistant_messages=0,
								attachment_count=0,
								has_attachment=False,
								created_at=now,
								updated_at=now,
							)
						)
				except IntegrityError:
					pass

			values: Dict[str, Any] = {
				"updated_at": now,
				"user_messages": AnalyticsSession.user_messages + (1 if user_text else 0),
				"assistant_messages": AnalyticsSession.assistant_messages + (1 if assistant_text else 0),
				"attachment_count": AnalyticsSession.attachment_count + attachments,
			}
			if attachments:
				values["has_attachment"] = True
			if user_text:
				values["title"] = case(
					(AnalyticsSession.title == DEFAULT_SESSION_TITLE, derive_session_title(user_text)),
					else_=AnalyticsSession.title,
				)
			if exchange.preferences is not None:
				values["latest_preferences"] = exchange.preferences.model_dump_json()
			if exchange.profile is not None:
				values["latest_profile"] = exchange.profile.model_dump_json()
			db.execute(
				update(AnalyticsSession)
				.where(AnalyticsSession.id == session_id)
				.values(**values)
				.execution_options(**_NO_SYNC)
			)

			if user_text:
				db.add(AnalyticsMessage(timestamp=now, session_id=session_id, role="user", content=truncate_content(user_text), references_json="[]"))
				for folded, raw_word in iter_keywords(user_text):
					_bump(
						db,
						KeywordTotal,
						[KeywordTotal.key == folded],
						{
							"count": KeywordTotal.count + 1,
							"keyword": case((func.length(KeywordTotal.keyword) < len(raw_word), raw_word), else_=KeywordTotal.keyword),
						},
						{"key": folded, "keyword": raw_word, "count": 1},
					)

			if assistant_text:
				titles = exchange.reference_titles()
				db.add(
					AnalyticsMessage(
						timestamp=now,
						session_id=session_id,
						role="assistant",
						content=truncate_content(assistant_text),
						references_json=json.dumps(titles, ensure_ascii=False),
					)
				)
				for title in titles:
					_bump(
						db,
						SessionReference,
						[SessionReference.session_id == session_id, SessionReference.title == title],
						{"count": SessionReference.count + 1},
						{"session_id": session_id, "title": title, "count": 1},
					)
					_bump(db, ReferenceTotal, [ReferenceTotal.title == title], {"count": ReferenceTotal.count + 1}, {"title": title, "count": 1})

			db.flush()
			self._trim_history(db)
		return session_id

	def _trim_history(self, db: Session) -> None:
		total = db.scalar(select(func.count()).select_from(AnalyticsMessage)) or 0
		if total <= self._history_limit:
			return
		oldest = db.scalars(
			select(AnalyticsMessage.id).order_by(AnalyticsMessage.id.asc()).limit(total - self._history_limit)
		).all()
		if oldest:
			db.execute(delete(AnalyticsMessage).where(AnalyticsMessage.id.in_(oldest)).execution_options(**_NO_SYNC))

	@staticmethod
	def _to_stats(row: AnalyticsSession) -> SessionStats:
		return SessionStats(
			id=row.id,
			title=row.title,
			created_at=as_utc(row.created_at),
			updated_at=as_utc(row.updated_at),
			user_messages=row.user_messages or 0,
			assistant_messages=row.assistant_messages or 0,
			attachment_count=row.attachment_count or 0,
			has_attachment=bool(row.has_attachment),
			latest_preferences=_load_json_model(LearningPreferences, row.latest_preferences),
			latest_profile=_load_json_model(LearnerProfile, row.latest_profile),
		)

	def snapshot(self, *, now: Optional[datetime] = None) -> AnalyticsSnapshot:
		with self._session() as db:
			sessions = [self._to_stats(row) for row in db.scalars(select(AnalyticsSession)).all()]
			by_id = {session.id: session for session in recent_sessions(sessions)}
			if by_id:
				rows = db.scalars(select(SessionReference).where(SessionReference.session_id.in_(list(by_id)))).all()
				for ref in rows:
					by_id[ref.session_id].reference_counts[ref.title] = ref.count

			user_timestamps = db.scalars(select(AnalyticsMessage.timestamp).where(AnalyticsMessage.role == "user")).all()
			reference_totals = [
				(row.title, row.count)
				for row in db.scalars(
					select(ReferenceTotal).order_by(ReferenceTotal.count.desc(), ReferenceTotal.title.asc()).limit(TOP_GUIDES)
				).all()
			]
			keyword_totals = [
				(row.keyword, row.count)
				for row in db.scalars(
					select(KeywordTotal).order_by(KeywordTotal.count.desc(), KeywordTotal.key.asc()).limit(TOP_KEYWORDS)
				).all()
			]
			recent = [
				MessageRecord(
					timestamp=as_utc(row.timestamp),
					session_id=row.session_id,
					role=row.role,
					content=row.content,
					references=json.loads(row.references_json or "[]"),
				)
				for row in db.scalars(select(AnalyticsMessage).order_by(AnalyticsMessage.id.desc()).limit(RECENT_MESSAGES)).all()
			]

		return build_snapshot(
			sessions=sessions,
			user_timestamps=list(user_timestamps),
			reference_totals=reference_totals,
			keyword_totals=keyword_totals,
			recent_messages=recent,
			attachments_uploaded=sum(session.attachment_count for session in sessions),
			now=now or utcnow(),
			tz=self._tz,
		)

	def purge_stale(self, retention_days: int, *, now: Optional[datetime] = None) -> int:
		with self._session() as db:
			return purge_stale_sessions(db, retention_days, now=now)

	def reset(self) -> None:
		with self._session() as db:
			for model in (AnalyticsMessage, SessionReference, ReferenceTotal, KeywordTotal, AnalyticsSession):
				db.execute(delete(model).execution_options(**_NO_SYNC))
