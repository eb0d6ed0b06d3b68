from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ..schemas import CamelModel


# ---- Exchange input ----

class AttachmentMeta(CamelModel):
	name: str = ""
	size: int = 0
	mimetype: str = ""


class ReferenceCite(CamelModel):
	id: Optional[str] = None
	title: Optional[str] = None
	score: Optional[float] = None


class LearnerProfile(CamelModel):
	name: Optional[str] = None
	grade: Optional[str] = None
	program: Optional[str] = None
	goal: Optional[str] = None
	favorite_topics: Optional[str] = None

	@field_validator("name", "grade", "program", "goal", "favorite_topics", mode="before")
	@classmethod
	def _as_text(cls, value: Any) -> Any:
		if value is None or isinstance(value, str):
			return value
		if isinstance(value, (list, tuple)):
			return ", ".join(str(item) for item in value)
		return str(value)


class LearningPreferences(CamelModel):
	tone: Optional[str] = None
	detail: Optional[str] = None
	include_scratch_steps: Optional[bool] = None
	include_practice_ideas: Optional[bool] = None

	@field_validator("include_scratch_steps", "include_practice_ideas", mode="before")
	@classmethod
	def _strict_flag(cls, value: Any) -> Any:
		# Only real booleans are tallied
		return value if isinstance(value, bool) else None

	@field_validator("tone", "detail", mode="before")
	@classmethod
	def _as_text(cls, value: Any) -> Any:
		return value if value is None or isinstance(value, str) else str(value)


class ChatExchange(CamelModel):
	session_id: Optional[str] = None
	user_message: Optional[str] = None
	assistant_message: Optional[str] = None
	attachments: List[AttachmentMeta] = Field(default_factory=list)
	preferences: Optional[LearningPreferences] = None
	profile: Optional[LearnerProfile] = None
	references: List[ReferenceCite] = Field(default_factory=list)

	def reference_titles(self) -> List[str]:
		return [ref.title.strip() for ref in self.references if ref.title and ref.title.strip()]


# ---- Snapshot output ----

class SnapshotSummary(CamelModel):
	total_sessions: int = 0
	active_sessions_24h: int = Field(default=0, alias="activeSessions24h")
	user_messages: int = 0
	assistant_messages: int = 0
	average_messages_per_session: float = 0
	unique_learners: int = 0
	attachments_uploaded: int = 0
	sessions_with_attachments: int = 0
	first_message_at: Optional[datetime] = None
	last_message_at: Optional[datetime] = None


class HourlyBucket(CamelModel):
	hour: int
	count: int = 0


class WeekdayBucket(CamelModel):
	day: str
	count: int = 0


class DailyBucket(CamelModel):
	date: str
	label: str
	count: int = 0


class UsageBuckets(CamelModel):
	hourly: List[HourlyBucket]
	weekly: List[WeekdayBucket]
	daily: List[DailyBucket]


class GuideCount(CamelModel):
	title: str
	count: int


class KeywordCount(CamelModel):
	keyword: str
	count: int


class TopicRankings(CamelModel):
	guides: List[GuideCount] = Field(default_factory=list)
	keywords: List[KeywordCount] = Field(default_factory=list)


class LabelCount(CamelModel):
	label: str
	count: int


class PreferenceBreakdown(CamelModel):
	tone: List[LabelCount] = Field(default_factory=list)
	detail: List[LabelCount] = Field(default_factory=list)
	include_scratch_steps: Dict[str, int] = Field(default_factory=lambda: {"true": 0, "false": 0})
	include_practice_ideas: Dict[str, int] = Field(default_factory=lambda: {"true": 0, "false": 0})


class AudienceBreakdown(CamelModel):
	programs: List[LabelCount] = Field(default_factory=list)
	grades: List[LabelCount] = Field(default_factory=list)
	goals: List[LabelCount] = Field(default_factory=list)
	favorite_topics: List[LabelCount] = Field(default_factory=list)
	preferences: PreferenceBreakdown = Field(default_factory=PreferenceBreakdown)


class RecentSession(CamelModel):
	id: str
	display_title: str
	title: str
	created_at: datetime
	last_active_at: datetime
	total_messages: int
	user_messages: int
	assistant_messages: int
	top_topics: List[str] = Field(default_factory=list)


class RecentSessions(CamelModel):
	recent: List[RecentSession] = Field(default_factory=list)


class RecentMessage(CamelModel):
	timestamp: datetime
	session_id: str
	role: str
	content: str
	references: List[str] = Field(default_factory=list)


class RecentMessages(CamelModel):
	recent: List[RecentMessage] = Field(default_factory=list)


class AnalyticsSnapshot(CamelModel):
	summary: SnapshotSummary
	usage: UsageBuckets
	topics: TopicRankings
	audience: AudienceBreakdown
	sessions: RecentSessions
	messages: RecentMessages
	generated_at: datetime
