from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .schemas import AnalyticsSnapshot, ChatExchange


class AnalyticsStore(ABC):
	"""Write/read contract shared by the in-memory and database backends."""

	name: str = "analytics"

	@abstractmethod
	def record_exchange(self, exchange: ChatExchange, *, now: Optional[datetime] = None) -> str:
		"""Fold one chat exchange into the counters and return the session id."""

	@abstractmethod
	def snapshot(self, *, now: Optional[datetime] = None) -> AnalyticsSnapshot:
		...

	@abstractmethod
	def reset(self) -> None:
		...
