from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from ..errors import AnalyticsUnavailable
from .base import AnalyticsStore
from .schemas import AnalyticsSnapshot, ChatExchange

logger = logging.getLogger(__name__)


class FallbackAnalytics(AnalyticsStore):
	"""Prefer the persistent store, drop to the in-memory one when it is unreachable.

	Exchanges recorded in memory during an outage are not copied back, so a
	snapshot served by the persistent store afterwards leaves them out.
	``fallback_writes`` counts them and every such snapshot logs the gap.
	"""

	def __init__(self, primary: Optional[AnalyticsStore], fallback: AnalyticsStore) -> None:
		self.primary = primary
		self.fallback = fallback
		self._lock = threading.Lock()
		self._fallback_writes = 0

	@property
	def name(self) -> str:  # type: ignore[override]
		if self.primary is None:
			return self.fallback.name
		return f"{self.primary.name}+{self.fallback.name}"

	@property
	def fallback_writes(self) -> int:
		with self._lock:
			return self._fallback_writes

	def record_exchange(self, exchange: ChatExchange, *, now: Optional[datetime] = None) -> str:
		if self.primary is None:
			return self.fallback.record_exchange(exchange, now=now)
		try:
			return self.primary.record_exchange(exchange, now=now)
		except AnalyticsUnavailable as exc:
			logger.warning("Persistent analytics unavailable, recording in memory: %s", exc)
		session_id = self.fallback.record_exchange(exchange, now=now)
		with self._lock:
			self._fallback_writes += 1
		return session_id

	def snapshot(self, *, now: Optional[datetime] = None) -> AnalyticsSnapshot:
		if self.primary is not None:
			try:
				snapshot = self.primary.snapshot(now=now)
			except AnalyticsUnavailable as exc:
				logger.warning("Persistent analytics unavailable, reading in-memory snapshot: %s", exc)
			else:
				missing = self.fallback_writes
				if missing:
					logger.warning("%d exchange(s) recorded in memory during an outage are missing from this snapshot", missing)
				return snapshot
		return self.fallback.snapshot(now=now)

	def reset(self) -> None:
		if self.primary is not None:
			try:
				self.primary.reset()
			except AnalyticsUnavailable as exc:
				logger.warning("Could not reset persistent analytics: %s", exc)
		self.fallback.reset()
		with self._lock:
			self._fallback_writes = 0
