from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from stemchat.analytics.fallback import FallbackAnalytics
from stemchat.analytics.memory import InMemoryAnalytics
from stemchat.analytics.schemas import ChatExchange, ReferenceCite
from stemchat.analytics.sql import SqlAnalytics
from stemchat.db import ensure_schema, make_session_factory
from stemchat.errors import AnalyticsUnavailable
from stemchat.main import build_analytics
from stemchat.settings import Settings

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def _exchange(session_id: str) -> ChatExchange:
	return ChatExchange(
		session_id=session_id,
		user_message="Explain broadcasts",
		assistant_message="Events > Broadcast",
		references=[ReferenceCite(title="Broadcasts")],
	)


def _unreachable_store(tmp_path: Path) -> SqlAnalytics:
	# The parent directory does not exist, so every connection fails
	_, session_factory = make_session_factory(f"sqlite:///{tmp_path / 'missing' / 'analytics.db'}")
	return SqlAnalytics(session_factory)


def test_unreachable_database_raises_analytics_unavailable(tmp_path: Path) -> None:
	with pytest.raises(AnalyticsUnavailable):
		_unreachable_store(tmp_path).record_exchange(_exchange("s1"), now=NOW)


def test_fallback_records_in_memory_when_primary_fails(tmp_path: Path, caplog) -> None:
	memory = InMemoryAnalytics()
	store = FallbackAnalytics(_unreachable_store(tmp_path), memory)

	with caplog.at_level(logging.WARNING):
		session_id = store.record_exchange(_exchange("s1"), now=NOW)

	assert session_id == "s1"
	assert "Persistent analytics unavailable" in caplog.text
	assert store.snapshot(now=NOW).summary.total_sessions == 1
	assert memory.snapshot(now=NOW).summary.total_sessions == 1


def test_fallback_prefers_primary(tmp_path: Path) -> None:
	engine, session_factory = make_session_factory(f"sqlite:///{tmp_path / 'analytics.db'}")
	ensure_schema(engine)
	memory = InMemoryAnalytics()
	store = FallbackAnalytics(SqlAnalytics(session_factory), memory)

	store.record_exchange(_exchange("s1"), now=NOW)

	assert store.name == "sql+memory"
	assert store.snapshot(now=NOW).summary.total_sessions == 1
	assert memory.snapshot(now=NOW).summary.total_sessions == 0


def test_fallback_without_primary_is_memory_only() -> None:
	store = FallbackAnalytics(None, InMemoryAnalytics())
	store.record_exchange(_exchange("s1"), now=NOW)
	assert store.name == "memory"
	assert store.snapshot(now=NOW).summary.user_messages == 1


class FlakyStore(InMemoryAnalytics):
	def __init__(self) -> None:
		super().__init__()
		self.down = False

	def record_exchange(self, exchange, *, now=None):
		if self.down:
			raise AnalyticsUnavailable("database is down")
		return super().record_exchange(exchange, now=now)


def test_recovered_primary_reports_exchanges_kept_in_memory(caplog) -> None:
	primary = FlakyStore()
	store = FallbackAnalytics(primary, InMemoryAnalytics())

	primary.down = True
	store.record_exchange(_exchange("s1"), now=NOW)
	store.record_exchange(_exchange("s2"), now=NOW)
	primary.down = False
	store.record_exchange(_exchange("s3"), now=NOW)

	with caplog.at_level(logging.WARNING):
		snapshot = store.snapshot(now=NOW)

	assert snapshot.summary.total_sessions == 1
	assert store.fallback_writes == 2
	assert "2 exchange(s) recorded in memory during an outage" in caplog.text

	store.reset()
	assert store.fallback_writes == 0


def test_build_analytics_selects_backend(tmp_path: Path) -> None:
	store, sql = build_analytics(Settings(database_url=None))
	assert sql is None and store.name == "memory"

	store, sql = build_analytics(Settings(database_url=f"sqlite:///{tmp_path / 'analytics.db'}"))
	assert isinstance(sql, SqlAnalytics)
	assert store.name == "sql+memory"


def test_purge_removes_only_stale_sessions(tmp_path: Path) -> None:
	engine, session_factory = make_session_factory(f"sqlite:///{tmp_path / 'analytics.db'}")
	ensure_schema(engine)
	store = SqlAnalytics(session_factory)
	store.record_exchange(_exchange("old"), now=NOW - timedelta(days=10))
	store.record_exchange(_exchange("fresh"), now=NOW - timedelta(days=1))

	assert store.purge_stale(0, now=NOW) == 0
	assert store.purge_stale(7, now=NOW) == 1

	snap = store.snapshot(now=NOW)
	assert [session.id for session in snap.sessions.recent] == ["fresh"]
	assert {message.session_id for message in snap.messages.recent} == {"fresh"}
	# Global rankings keep their history
	assert snap.topics.guides[0].count == 2
