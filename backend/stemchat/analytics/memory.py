from __future__ import annotations

import copy
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Dict, Optional

from .base import AnalyticsStore
from .schemas import AnalyticsSnapshot, ChatExchange
from .snapshot import (
	MessageRecord,
	SessionStats,
	as_utc,
	build_snapshot,
	resolve_timezone,
	utcnow,
)
from .text import DEFAULT_SESSION_TITLE, derive_session_title, iter_keywords, new_session_id, truncate_content

MAX_MESSAGE_HISTORY = 2000


@dataclass
class _KeywordTally:
	keyword: str
	count: int = 0


class InMemoryAnalytics(AnalyticsStore):
	"""Process-wide analytics kept in dictionaries; lost on restart."""

	name = "memory"

	def __init__(self, *, history_limit: int = MAX_MESSAGE_HISTORY, timezone_name: str = "UTC") -> None:
		self._lock = threading.Lock()
		self._history_limit = history_limit
		self._tz = resolve_timezone(timezone_name)
		self.reset()

	def reset(self) -> None:
		with self._lock:
			self._sessions: Dict[str, SessionStats] = {}
			# deque(maxlen) evicts the oldest entry on every append past the cap
			self._history: Deque[MessageRecord] = deque(maxlen=self._history_limit)
			self._reference_totals: Dict[str, int] = {}
			self._keyword_totals: Dict[str, _KeywordTally] = {}
			self._attachment_total = 0

	def record_exchange(self, exchange: ChatExchange, *, now: Optional[datetime] = None) -> str:
		now = as_utc(now) if now else utcnow()
		session_id = exchange.session_id or new_session_id(now)
		user_text = exchange.user_message if exchange.user_message and exchange.user_message.strip() else None
		assistant_text = exchange.assistant_message if exchange.assistant_message and exchange.assistant_message.strip() else None

		with self._lock:
			session = self._sessions.get(session_id)
			if session is None:
				session = SessionStats(
					id=session_id,
					title=derive_session_title(user_text),
					created_at=now,
					updated_at=now,
				)
				self._sessions[session_id] = session
			elif session.title == DEFAULT_SESSION_TITLE and user_text:
				session.title = derive_session_title(user_text)

			session.updated_at = now
			if exchange.preferences is not None:
				session.latest_preferences = exchange.preferences.model_copy()
			if exchange.profile is not None:
				session.latest_profile = exchange.profile.model_copy()

			if exchange.attachments:
				session.attachment_count += len(exchange.attachments)
				session.has_attachment = True
				self._attachment_total += len(exchange.attachments)

			if user_text:
				session.user_messages += 1
				self._history.append(
					MessageRecord(timestamp=now, session_id=session_id, role="user", content=truncate_content(user_text))
				)
				for folded, raw_word in iter_keywords(user_text):
					tally = self._keyword_totals.setdefault(folded, _KeywordTally(keyword=raw_word))
					tally.count += 1
					if len(raw_word) > len(tally.keyword):
						tally.keyword = raw_word

			if assistant_text:
				session.assistant_messages += 1
				titles = exchange.reference_titles()
				for title in titles:
					session.reference_counts[title] = session.reference_counts.get(title, 0) + 1
					self._reference_totals[title] = self._reference_totals.get(title, 0) + 1
				self._history.append(
					MessageRecord(
						timestamp=now,
						session_id=session_id,
						role="assistant",
						content=truncate_content(assistant_text),
						references=titles,
					)
				)
		return session_id

	def snapshot(self, *, now: Optional[datetime] = None) -> AnalyticsSnapshot:
		# Copy under the lock, compute outside it
		with self._lock:
			sessions = copy.deepcopy(list(self._sessions.values()))
			history = list(self._history)
			reference_totals = list(self._reference_totals.items())
			keyword_totals = [(tally.keyword, tally.count) for tally in self._keyword_totals.values()]
			attachments = self._attachment_total

		return build_snapshot(
			sessions=sessions,
			user_timestamps=[record.timestamp for record in history if record.role == "user"],
			reference_totals=reference_totals,
			keyword_totals=keyword_totals,
			recent_messages=list(reversed(history)),
			attachments_uploaded=attachments,
			now=now or utcnow(),
			tz=self._tz,
		)
