from __future__ import annotations

import logging
import secrets
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..analytics.base import AnalyticsStore
from ..deps import get_analytics, get_settings
from ..settings import DEFAULT_ADMIN_PASSWORD, Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login")


class LoginRequest(BaseModel):
	username: str = ""
	password: str = ""


class Token(BaseModel):
	token: str
	expiresAt: datetime


class Admin(BaseModel):
	username: str
	jti: str


class AdminSessions:
	"""Server-side registry of issued token ids; logout removes the id."""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._active: Dict[str, datetime] = {}

	def issue(self, jti: str, expires_at: datetime) -> None:
		with self._lock:
			self._prune()
			self._active[jti] = expires_at

	def is_active(self, jti: str) -> bool:
		with self._lock:
			self._prune()
			return jti in self._active

	def revoke(self, jti: str) -> None:
		with self._lock:
			self._active.pop(jti, None)

	def _prune(self) -> None:
		now = datetime.now(timezone.utc)
		for jti in [jti for jti, exp in self._active.items() if exp < now]:
			del self._active[jti]


def get_admin_sessions(request: Request) -> AdminSessions:
	return request.app.state.admin_sessions


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
	to_encode = data.copy()
	expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.admin_token_ttl_minutes))
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt, expire


def admin_login_enabled(settings: Settings) -> bool:
	return bool(settings.admin_password) and settings.admin_password != DEFAULT_ADMIN_PASSWORD


def authenticate_admin(username: str, password: str, settings: Settings) -> bool:
	user_ok = secrets.compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
	password_ok = secrets.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
	return user_ok and password_ok


@router.post("/login", response_model=Token)
async def login(
	req: LoginRequest,
	settings: Settings = Depends(get_settings),
	sessions: AdminSessions = Depends(get_admin_sessions),
):
	if not admin_login_enabled(settings):
		raise HTTPException(status_code=503, detail="Admin login is disabled until ADMIN_PASSWORD is set")
	if not authenticate_admin(req.username, req.password, settings):
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	jti = uuid.uuid4().hex
	access_token, expire = create_access_token({"sub": req.username, "jti": jti}, settings)
	sessions.issue(jti, expire)
	logger.info("Admin %s signed in", req.username)
	return Token(token=access_token, expiresAt=expire)


def get_current_admin(
	token: str = Depends(oauth2_scheme),
	settings: Settings = Depends(get_settings),
	sessions: AdminSessions = Depends(get_admin_sessions),
) -> Admin:
	credentials_exception = HTTPException(
		status_code=401,
		detail="Session expired or invalid",
		headers={"WWW-Authenticate": "Bearer"},
	)
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: str | None = payload.get("sub")
	jti: str | None = payload.get("jti")
	if username is None or jti is None or not sessions.is_active(jti):
		raise credentials_exception
	return Admin(username=username, jti=jti)


@router.get("/analytics")
async def analytics_snapshot(
	admin: Admin = Depends(get_current_admin),
	analytics: AnalyticsStore = Depends(get_analytics),
):
	snapshot = await run_in_threadpool(analytics.snapshot)
	return snapshot.model_dump(mode="json", by_alias=True)


@router.post("/logout", status_code=204)
async def logout(
	admin: Admin = Depends(get_current_admin),
	sessions: AdminSessions = Depends(get_admin_sessions),
):
	sessions.revoke(admin.jti)
	return Response(status_code=204)
