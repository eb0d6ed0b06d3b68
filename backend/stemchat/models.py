from __future__ import annotations
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean
from .db import Base


class AnalyticsSession(Base):
	__tablename__ = "analytics_sessions"
	id = Column(String(128), primary_key=True)
	title = Column(String(256), nullable=False)
	user_messages = Column(Integer, default=0, nullable=False)
	assistant_messages = Column(Integer, default=0, nullable=False)
	attachment_count = Column(Integer, default=0, nullable=False)
	has_attachment = Column(Boolean, default=False, nullable=False)
	latest_preferences = Column(Text, nullable=True)  # JSON string snapshot
	latest_profile = Column(Text, nullable=True)  # JSON string snapshot
	created_at = Column(DateTime(timezone=True), nullable=False)
	updated_at = Column(DateTime(timezone=True), nullable=False, index=True)


class AnalyticsMessage(Base):
	__tablename__ = "analytics_messages"
	# Autoincrement id doubles as insertion order for history trimming
	id = Column(Integer, primary_key=True, autoincrement=True)
	timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
	session_id = Column(String(128), nullable=False, index=True)
	role = Column(String(16), nullable=False, index=True)
	content = Column(Text, nullable=False)
	references_json = Column(Text, nullable=False, default="[]")


class SessionReference(Base):
	__tablename__ = "analytics_session_references"
	session_id = Column(String(128), primary_key=True)
	title = Column(String(512), primary_key=True)
	count = Column(Integer, default=0, nullable=False)


class ReferenceTotal(Base):
	__tablename__ = "analytics_reference_totals"
	title = Column(String(512), primary_key=True)
	count = Column(Integer, default=0, nullable=False)


class KeywordTotal(Base):
	__tablename__ = "analytics_keyword_totals"
	# Folded spelling; `keyword` keeps the longest original spelling seen
	key = Column(String(128), primary_key=True)
	keyword = Column(String(256), nullable=False)
	count = Column(Integer, default=0, nullable=False)
