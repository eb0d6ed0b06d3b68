from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Placeholder shipped in the defaults; admin login stays disabled while it is set
DEFAULT_ADMIN_PASSWORD = "change-me"

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Model used for chat replies and upload feedback
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Retried once when the configured model is reported missing
	gemini_fallback_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_FALLBACK_MODEL")

	# Teaching guides (plain-text exports of the lesson documents)
	teaching_guide_dir: Path = Field(default=Path("knowledge"), validation_alias="TEACHING_GUIDE_DIR")
	chunk_max_chars: int = Field(default=1200, validation_alias="CHUNK_MAX_CHARS")
	relevance_floor: float = Field(default=0.1, validation_alias="RELEVANCE_FLOOR")
	retrieval_limit: int = Field(default=4, validation_alias="RETRIEVAL_LIMIT")

	# Uploads
	max_upload_mb: int = Field(default=10, validation_alias="MAX_UPLOAD_MB")
	max_attachments: int = Field(default=4, validation_alias="MAX_ATTACHMENTS")
	max_attachment_mb: int = Field(default=4, validation_alias="MAX_ATTACHMENT_MB")
	export_project_title: str = Field(default="MindX Scratch Export", validation_alias="EXPORT_PROJECT_TITLE")

	# Analytics; without a database the in-memory store is used
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	analytics_history_limit: int = Field(default=2000, validation_alias="ANALYTICS_HISTORY_LIMIT")
	analytics_timezone: str = Field(default="UTC", validation_alias="ANALYTICS_TIMEZONE")
	# 0 keeps sessions forever
	analytics_retention_days: int = Field(default=0, validation_alias="ANALYTICS_RETENTION_DAYS")

	# Admin dashboard token contract
	admin_username: str = Field(default="admin", validation_alias="ADMIN_USERNAME")
	admin_password: str = Field(default=DEFAULT_ADMIN_PASSWORD, validation_alias="ADMIN_PASSWORD")
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	admin_token_ttl_minutes: int = Field(default=480, validation_alias="ADMIN_TOKEN_TTL_MINUTES")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

settings = Settings()
