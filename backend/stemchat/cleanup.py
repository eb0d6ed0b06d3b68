from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .models import AnalyticsSession, AnalyticsMessage, SessionReference


def purge_stale_sessions(db: Session, retention_days: int, *, now: Optional[datetime] = None) -> int:
	"""Drop sessions idle longer than the retention window, with their messages.

	Global guide and keyword totals are left as they are. Returns the number of
	sessions removed; ``retention_days <= 0`` disables the purge.
	"""
	if retention_days <= 0:
		return 0
	threshold = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)

	stale_ids = db.scalars(select(AnalyticsSession.id).where(AnalyticsSession.updated_at < threshold)).all()
	if not stale_ids:
		return 0

	for model in (AnalyticsMessage, SessionReference):
		db.execute(delete(model).where(model.session_id.in_(stale_ids)).execution_options(synchronize_session=False))
	res = db.execute(
		delete(AnalyticsSession).where(AnalyticsSession.id.in_(stale_ids)).execution_options(synchronize_session=False)
	)
	return res.rowcount or 0
