from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from stemchat.analytics.memory import InMemoryAnalytics
from stemchat.analytics.schemas import (
	AttachmentMeta,
	ChatExchange,
	LearnerProfile,
	LearningPreferences,
	ReferenceCite,
)
from stemchat.analytics.sql import SqlAnalytics
from stemchat.analytics.text import DEFAULT_SESSION_TITLE, derive_session_title, iter_keywords
from stemchat.db import ensure_schema, make_session_factory

# Friday
NOW = datetime(2026, 10, 16, 15, 30, tzinfo=timezone.utc)


def _sql_store(tmp_path: Path, **kwargs) -> SqlAnalytics:
	engine, session_factory = make_session_factory(f"sqlite:///{tmp_path / 'analytics.db'}")
	ensure_schema(engine)
	return SqlAnalytics(session_factory, **kwargs)


@pytest.fixture(params=["memory", "sql"])
def make_store(request, tmp_path: Path):
	def factory(**kwargs):
		if request.param == "memory":
			return InMemoryAnalytics(**kwargs)
		return _sql_store(tmp_path, **kwargs)

	return factory


def _exchange(session_id=None, user="How do loops work?", assistant="Use Control > Forever.", **kwargs) -> ChatExchange:
	return ChatExchange(session_id=session_id, user_message=user, assistant_message=assistant, **kwargs)


def test_title_and_minted_session_id() -> None:
	assert derive_session_title(None) == DEFAULT_SESSION_TITLE
	assert derive_session_title("  \n  ") == DEFAULT_SESSION_TITLE
	assert derive_session_title("First line\nsecond") == "First line"
	assert derive_session_title("y" * 60) == "y" * 48 + "…"

	store = InMemoryAnalytics()
	session_id = store.record_exchange(_exchange(), now=NOW)
	assert session_id.startswith(f"session-{int(NOW.timestamp() * 1000)}-")


def test_keywords_fold_case_and_diacritics() -> None:
	pairs = list(iter_keywords("Vòng lặp: VONG vòng, this with 2024 loop-forever"))
	assert pairs == [("vong", "Vòng"), ("vong", "VONG"), ("vong", "vòng"), ("loop", "loop"), ("forever", "forever")]


def test_counters_and_summary(make_store) -> None:
	store = make_store()
	store.record_exchange(
		_exchange("s1", attachments=[AttachmentMeta(name="a.png", size=10, mimetype="image/png")]),
		now=NOW - timedelta(hours=2),
	)
	store.record_exchange(_exchange("s1", user="And sprites?", assistant="Motion > Move."), now=NOW - timedelta(hours=1))
	store.record_exchange(_exchange("s2", assistant=None), now=NOW - timedelta(days=3))

	summary = store.snapshot(now=NOW).summary
	assert summary.total_sessions == 2
	assert summary.active_sessions_24h == 1
	assert summary.user_messages == 3
	assert summary.assistant_messages == 2
	assert summary.average_messages_per_session == 2.5
	assert summary.attachments_uploaded == 1
	assert summary.sessions_with_attachments == 1
	assert summary.first_message_at == NOW - timedelta(days=3)
	assert summary.last_message_at == NOW - timedelta(hours=1)


def test_placeholder_title_is_replaced_by_first_user_message(make_store) -> None:
	store = make_store()
	store.record_exchange(_exchange("s1", user=None, assistant="Welcome!"), now=NOW)
	assert store.snapshot(now=NOW).sessions.recent[0].title == DEFAULT_SESSION_TITLE

	store.record_exchange(_exchange("s1", user="Make a cat dance"), now=NOW)
	store.record_exchange(_exchange("s1", user="Something else"), now=NOW)
	assert store.snapshot(now=NOW).sessions.recent[0].title == "Make a cat dance"


def test_usage_buckets(make_store) -> None:
	store = make_store()
	store.record_exchange(_exchange("s1"), now=NOW)
	store.record_exchange(_exchange("s1"), now=NOW - timedelta(days=1))
	store.record_exchange(_exchange("s1"), now=NOW - timedelta(days=20))

	usage = store.snapshot(now=NOW).usage
	assert len(usage.hourly) == 24
	assert usage.hourly[15].count == 3
	assert [bucket.day for bucket in usage.weekly][0] == "Sunday"
	assert usage.weekly[5].count == 1  # Friday
	assert usage.weekly[4].count == 1  # Thursday
	assert usage.weekly[6].count == 1  # Saturday, outside the daily window

	assert len(usage.daily) == 14
	assert usage.daily[-1].date == "2026-10-16"
	assert usage.daily[-1].label == "16/10"
	assert usage.daily[0].date == "2026-10-03"
	assert [bucket.count for bucket in usage.daily[-2:]] == [1, 1]
	assert sum(bucket.count for bucket in usage.daily) == 2


def test_daily_buckets_follow_configured_timezone() -> None:
	store = InMemoryAnalytics(timezone_name="Asia/Ho_Chi_Minh")
	# 20:00 UTC is already the next day in UTC+7
	store.record_exchange(_exchange("s1"), now=datetime(2026, 10, 15, 20, 0, tzinfo=timezone.utc))

	usage = store.snapshot(now=NOW).usage
	assert usage.daily[-1].date == "2026-10-16"
	assert usage.daily[-1].count == 1
	assert usage.hourly[3].count == 1


def test_rankings_and_session_topics(make_store) -> None:
	store = make_store()
	loops = ReferenceCite(id="loops-0", title="Loops", score=0.5)
	sprites = ReferenceCite(id="sprites-0", title="Sprites", score=0.4)
	store.record_exchange(_exchange("s1", user="forever loops", references=[loops, sprites]), now=NOW)
	store.record_exchange(_exchange("s1", user="Forever", references=[loops]), now=NOW)
	store.record_exchange(_exchange("s2", user="broadcast", assistant=None, references=[sprites]), now=NOW)

	snap = store.snapshot(now=NOW)
	assert [(g.title, g.count) for g in snap.topics.guides] == [("Loops", 2), ("Sprites", 1)]
	keywords = {k.keyword: k.count for k in snap.topics.keywords}
	assert keywords == {"forever": 2, "loops": 1, "broadcast": 1}

	by_id = {session.id: session for session in snap.sessions.recent}
	assert by_id["s1"].top_topics == ["Loops", "Sprites"]
	assert by_id["s2"].top_topics == []
	assert by_id["s1"].total_messages == 4


def test_audience_uses_latest_profile_and_preferences(make_store) -> None:
	store = make_store()
	store.record_exchange(
		_exchange(
			"s1",
			profile=LearnerProfile(name="An", grade="4", program="Scratch Basic", favorite_topics="games, music"),
			preferences=LearningPreferences(tone="playful", include_scratch_steps=True),
		),
		now=NOW,
	)
	store.record_exchange(
		_exchange("s1", profile=LearnerProfile(name="An", grade="5", program="Scratch Pro", favorite_topics="games")),
		now=NOW,
	)
	store.record_exchange(
		_exchange(
			"s2",
			profile=LearnerProfile(name=" an ", grade="5"),
			preferences=LearningPreferences.model_validate({"tone": "calm", "includeScratchSteps": "yes", "includePracticeIdeas": False}),
		),
		now=NOW,
	)

	snap = store.snapshot(now=NOW)
	audience = snap.audience
	assert {c.label: c.count for c in audience.programs} == {"Scratch Pro": 1}
	assert {c.label: c.count for c in audience.grades} == {"5": 2}
	assert {c.label: c.count for c in audience.favorite_topics} == {"games": 1}
	assert {c.label: c.count for c in audience.preferences.tone} == {"playful": 1, "calm": 1}
	assert audience.preferences.include_scratch_steps == {"true": 1, "false": 0}
	assert audience.preferences.include_practice_ideas == {"true": 0, "false": 1}
	assert snap.summary.unique_learners == 1


def test_history_is_capped_and_newest_first(make_store) -> None:
	store = make_store(history_limit=5)
	for i in range(4):
		store.record_exchange(_exchange("s1", user=f"question {i}", assistant=f"answer {i}"), now=NOW + timedelta(minutes=i))

	recent = store.snapshot(now=NOW + timedelta(hours=1)).messages.recent
	assert [m.content for m in recent] == ["answer 3", "question 3", "answer 2", "question 2", "answer 1"]
	assert recent[0].role == "assistant"


def test_long_messages_are_truncated(make_store) -> None:
	store = make_store()
	store.record_exchange(_exchange("s1", user="z" * 900, assistant=None), now=NOW)

	message = store.snapshot(now=NOW).messages.recent[0]
	assert message.content == "z" * 800 + "…"


def test_snapshot_is_idempotent(make_store) -> None:
	store = make_store()
	store.record_exchange(_exchange("s1"), now=NOW)
	assert store.snapshot(now=NOW) == store.snapshot(now=NOW)


def test_snapshot_serializes_with_camel_case_keys() -> None:
	store = InMemoryAnalytics()
	store.record_exchange(_exchange("s1"), now=NOW)
	data = store.snapshot(now=NOW).model_dump(mode="json", by_alias=True)

	assert data["summary"]["activeSessions24h"] == 1
	assert set(data["audience"]["preferences"]) == {"tone", "detail", "includeScratchSteps", "includePracticeIdeas"}
	assert data["sessions"]["recent"][0]["lastActiveAt"].startswith("2026-10-16T15:30:00")


def test_sql_and_memory_agree(tmp_path: Path) -> None:
	memory = InMemoryAnalytics()
	sql = _sql_store(tmp_path)
	exchanges = [
		_exchange("s1", attachments=[AttachmentMeta(name="notes.txt")], references=[ReferenceCite(title="Loops")]),
		_exchange("s2", user="Animate sprites", profile=LearnerProfile(name="Binh", grade="3")),
		_exchange("s1", user=None, assistant="More help"),
	]
	for offset, exchange in enumerate(exchanges):
		for store in (memory, sql):
			store.record_exchange(exchange, now=NOW - timedelta(hours=offset))

	expected, actual = memory.snapshot(now=NOW), sql.snapshot(now=NOW)
	assert actual.summary == expected.summary
	assert actual.usage == expected.usage
	assert actual.audience == expected.audience
	assert actual.sessions == expected.sessions
	assert actual.messages == expected.messages


def test_concurrent_writes_do_not_lose_updates(make_store) -> None:
	store = make_store()
	errors = []

	def worker() -> None:
		for _ in range(25):
			try:
				store.record_exchange(_exchange("shared"), now=NOW)
			except Exception as exc:
				errors.append(exc)

	threads = [threading.Thread(target=worker) for _ in range(4)]
	for thread in threads:
		thread.start()
	for thread in threads:
		thread.join()

	assert errors == []
	summary = store.snapshot(now=NOW).summary
	assert summary.total_sessions == 1
	assert summary.user_messages == 100
	assert summary.assistant_messages == 100


def test_reset_empties_the_store(make_store) -> None:
	store = make_store()
	store.record_exchange(_exchange("s1"), now=NOW)
	store.reset()
	assert store.snapshot(now=NOW).summary.total_sessions == 0
