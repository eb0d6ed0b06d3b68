"""Read-model assembly shared by every analytics backend.

Backends only gather raw rows (sessions, user message timestamps, totals,
recent messages); the bucketing and ranking rules live here once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .schemas import (
	AnalyticsSnapshot,
	AudienceBreakdown,
	DailyBucket,
	GuideCount,
	HourlyBucket,
	KeywordCount,
	LabelCount,
	LearnerProfile,
	LearningPreferences,
	PreferenceBreakdown,
	RecentMessage,
	RecentMessages,
	RecentSession,
	RecentSessions,
	SnapshotSummary,
	TopicRankings,
	UsageBuckets,
	WeekdayBucket,
)

ACTIVE_WINDOW = timedelta(hours=24)
DAILY_WINDOW_DAYS = 14
TOP_GUIDES = 15
TOP_KEYWORDS = 20
TOP_SESSION_TOPICS = 5
RECENT_SESSIONS = 10
RECENT_MESSAGES = 40
WEEKDAY_LABELS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_TOPIC_SPLIT = re.compile(r"[,;\n]")


@dataclass
class SessionStats:
	id: str
	title: str
	created_at: datetime
	updated_at: datetime
	user_messages: int = 0
	assistant_messages: int = 0
	attachment_count: int = 0
	has_attachment: bool = False
	latest_preferences: Optional[LearningPreferences] = None
	latest_profile: Optional[LearnerProfile] = None
	reference_counts: Dict[str, int] = field(default_factory=dict)

	@property
	def total_messages(self) -> int:
		return self.user_messages + self.assistant_messages


@dataclass
class MessageRecord:
	timestamp: datetime
	session_id: str
	role: str
	content: str
	references: List[str] = field(default_factory=list)


def resolve_timezone(name: str | None) -> tzinfo:
	if not name or name.upper() == "UTC":
		return timezone.utc
	return ZoneInfo(name)


def as_utc(value: datetime) -> datetime:
	# SQLite hands back naive datetimes; everything is stored in UTC
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _increment(table: Dict[str, int], key: Optional[str]) -> None:
	if key:
		table[key] = table.get(key, 0) + 1


def _label_counts(table: Dict[str, int]) -> List[LabelCount]:
	return [LabelCount(label=label, count=count) for label, count in table.items()]


def _ranked(pairs: Iterable[Tuple[str, int]], limit: int) -> List[Tuple[str, int]]:
	return sorted(pairs, key=lambda pair: pair[1], reverse=True)[:limit]


def _summary(sessions: List[SessionStats], attachments_uploaded: int, now: datetime) -> SnapshotSummary:
	summary = SnapshotSummary(total_sessions=len(sessions), attachments_uploaded=attachments_uploaded)
	learners = set()
	for session in sessions:
		updated_at = as_utc(session.updated_at)
		created_at = as_utc(session.created_at)
		if now - updated_at <= ACTIVE_WINDOW:
			summary.active_sessions_24h += 1
		summary.user_messages += session.user_messages
		summary.assistant_messages += session.assistant_messages
		if session.has_attachment:
			summary.sessions_with_attachments += 1
		if summary.first_message_at is None or created_at < summary.first_message_at:
			summary.first_message_at = created_at
		if summary.last_message_at is None or updated_at > summary.last_message_at:
			summary.last_message_at = updated_at
		profile = session.latest_profile
		if profile:
			key = f"{(profile.name or '').strip().lower()}|{(profile.grade or '').strip().lower()}"
			if key != "|":
				learners.add(key)
	summary.unique_learners = len(learners)
	if sessions:
		summary.average_messages_per_session = round(
			(summary.user_messages + summary.assistant_messages) / len(sessions), 1
		)
	return summary


def _usage(user_timestamps: Iterable[datetime], now: datetime, tz: tzinfo) -> UsageBuckets:
	hourly = [HourlyBucket(hour=hour) for hour in range(24)]
	weekly = [WeekdayBucket(day=label) for label in WEEKDAY_LABELS]
	today = now.astimezone(tz).date()
	daily: List[DailyBucket] = []
	daily_index: Dict[str, int] = {}
	for offset in range(DAILY_WINDOW_DAYS - 1, -1, -1):
		day = today - timedelta(days=offset)
		daily_index[day.isoformat()] = len(daily)
		daily.append(DailyBucket(date=day.isoformat(), label=day.strftime("%d/%m")))

	for timestamp in user_timestamps:
		local = as_utc(timestamp).astimezone(tz)
		hourly[local.hour].count += 1
		# weekday() is Monday-first
		weekly[(local.weekday() + 1) % 7].count += 1
		position = daily_index.get(local.date().isoformat())
		if position is not None:
			daily[position].count += 1
	return UsageBuckets(hourly=hourly, weekly=weekly, daily=daily)


def _audience(sessions: List[SessionStats]) -> AudienceBreakdown:
	programs: Dict[str, int] = {}
	grades: Dict[str, int] = {}
	goals: Dict[str, int] = {}
	favorite_topics: Dict[str, int] = {}
	tones: Dict[str, int] = {}
	details: Dict[str, int] = {}
	scratch_steps = {"true": 0, "false": 0}
	practice_ideas = {"true": 0, "false": 0}

	for session in sessions:
		profile = session.latest_profile
		if profile:
			_increment(programs, (profile.program or "").strip())
			_increment(grades, (profile.grade or "").strip())
			_increment(goals, (profile.goal or "").strip())
			for topic in _TOPIC_SPLIT.split(profile.favorite_topics or ""):
				_increment(favorite_topics, topic.strip())
		prefs = session.latest_preferences
		if prefs:
			_increment(tones, prefs.tone)
			_increment(details, prefs.detail)
			if prefs.include_scratch_steps is not None:
				scratch_steps["true" if prefs.include_scratch_steps else "false"] += 1
			if prefs.include_practice_ideas is not None:
				practice_ideas["true" if prefs.include_practice_ideas else "false"] += 1

	return AudienceBreakdown(
		programs=_label_counts(programs),
		grades=_label_counts(grades),
		goals=_label_counts(goals),
		favorite_topics=_label_counts(favorite_topics),
		preferences=PreferenceBreakdown(
			tone=_label_counts(tones),
			detail=_label_counts(details),
			include_scratch_steps=scratch_steps,
			include_practice_ideas=practice_ideas,
		),
	)


def recent_sessions(sessions: List[SessionStats], limit: int = RECENT_SESSIONS) -> List[SessionStats]:
	return sorted(sessions, key=lambda session: as_utc(session.updated_at), reverse=True)[:limit]


def _recent_session_view(session: SessionStats) -> RecentSession:
	title = session.title or session.id
	return RecentSession(
		id=session.id,
		display_title=title,
		title=title,
		created_at=as_utc(session.created_at),
		last_active_at=as_utc(session.updated_at),
		total_messages=session.total_messages,
		user_messages=session.user_messages,
		assistant_messages=session.assistant_messages,
		top_topics=[title for title, _ in _ranked(session.reference_counts.items(), TOP_SESSION_TOPICS)],
	)


def build_snapshot(
	*,
	sessions: List[SessionStats],
	user_timestamps: Iterable[datetime],
	reference_totals: Iterable[Tuple[str, int]],
	keyword_totals: Iterable[Tuple[str, int]],
	recent_messages: List[MessageRecord],
	attachments_uploaded: int,
	now: datetime,
	tz: tzinfo,
) -> AnalyticsSnapshot:
	"""Assemble the dashboard read-model.

	``recent_messages`` must already be newest first. Only sessions among the
	ten most recently updated need ``reference_counts`` filled in.
	"""
	now = as_utc(now)
	return AnalyticsSnapshot(
		summary=_summary(sessions, attachments_uploaded, now),
		usage=_usage(user_timestamps, now, tz),
		topics=TopicRankings(
			guides=[GuideCount(title=title, count=count) for title, count in _ranked(reference_totals, TOP_GUIDES)],
			keywords=[KeywordCount(keyword=word, count=count) for word, count in _ranked(keyword_totals, TOP_KEYWORDS)],
		),
		audience=_audience(sessions),
		sessions=RecentSessions(recent=[_recent_session_view(session) for session in recent_sessions(sessions)]),
		messages=RecentMessages(
			recent=[
				RecentMessage(
					timestamp=as_utc(record.timestamp),
					session_id=record.session_id,
					role=record.role,
					content=record.content,
					references=list(record.references),
				)
				for record in recent_messages[:RECENT_MESSAGES]
			]
		),
		generated_at=now,
	)
