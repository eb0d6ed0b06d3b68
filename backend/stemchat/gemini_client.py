from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings

logger = logging.getLogger(__name__)

API_ROOT = "https://generativelanguage.googleapis.com/v1beta/models"

# Names the current API no longer serves, mapped to their replacements
LEGACY_MODEL_ALIASES: Dict[str, str] = {
	"gemini-pro": "gemini-2.5-flash",
	"gemini-pro-vision": "gemini-2.5-flash",
	"gemini-1.5-pro": "gemini-1.5-pro-latest",
	"gemini-1.5-pro-001": "gemini-1.5-pro-latest",
	"gemini-1.5-flash": "gemini-1.5-flash-latest",
	"gemini-1.5-flash-001": "gemini-1.5-flash-latest",
}


def resolve_model_name(raw_model: Optional[str], default: str = "gemini-2.5-flash") -> str:
	name = (raw_model or "").strip()
	if not name:
		return default
	key = name.lower()
	if key.startswith("models/"):
		key = key[len("models/"):]
	if key in LEGACY_MODEL_ALIASES:
		logger.warning("GEMINI_MODEL %s is no longer served, using %s", name, LEGACY_MODEL_ALIASES[key])
		return LEGACY_MODEL_ALIASES[key]
	return name


class GeminiClient:
	"""Text generation over the Generative Language REST API.

	Callers prepare the conversation (``contents``) themselves; this class only
	posts it and pulls the reply text out of the first candidate.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		model: Optional[str] = None,
		fallback_model: Optional[str] = None,
		base_url: str = API_ROOT,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = resolve_model_name(model or settings.gemini_model)
		self.fallback_model = fallback_model or settings.gemini_fallback_model
		self.base_url = base_url.rstrip("/")
		self._client = httpx.AsyncClient(timeout=30, transport=transport)

	def _endpoint(self, model: str) -> str:
		return f"{self.base_url}/{model}:generateContent"

	async def generate(self, prompt: str, *, system_instruction: Optional[str] = None) -> str:
		return await self.generate_contents([{"role": "user", "parts": [{"text": prompt}]}], system_instruction=system_instruction)

	async def generate_contents(
		self,
		contents: List[Dict[str, Any]],
		*,
		system_instruction: Optional[str] = None,
	) -> str:
		payload: Dict[str, Any] = {"contents": contents}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		try:
			return await self._post_payload(self.model, payload)
		except httpx.HTTPStatusError as http_err:
			# Retired or misspelled model names come back as 404
			if http_err.response.status_code != 404 or self.fallback_model == self.model:
				raise
			logger.warning("Gemini model %s not found, retrying with %s", self.model, self.fallback_model)
			self.model = self.fallback_model
			return await self._post_payload(self.model, payload)

	async def _post_payload(self, model: str, payload: Dict[str, Any]) -> str:
		r = await self._client.post(self._endpoint(model), params={"key": self.api_key}, json=payload)
		r.raise_for_status()
		data = r.json()
		try:
			parts = data["candidates"][0]["content"]["parts"]
		except (KeyError, IndexError, TypeError) as err:
			raise RuntimeError(f"Unexpected Gemini response: {r.text}") from err
		text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
		if not text:
			raise RuntimeError("Gemini returned an empty reply")
		return text

	async def aclose(self) -> None:
		await self._client.aclose()
