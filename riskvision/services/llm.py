"""LLM gateway: provider routing, chat-completion calls and JSON extraction.

Prompts go to one OpenAI-compatible ``/chat/completions`` endpoint or to the
Gemini ``generateContent`` endpoint, picked from the caller's AI configuration
(falling back to the server default). Replies are free text, so the first
JSON array/object is regex-extracted and coerced into the expected shape.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from riskvision.config import settings
from riskvision.models.risk import MitigationStrategy
from riskvision.observability.metrics import metrics
from riskvision.risk.scoring import RiskCategory, clamp_score
from riskvision.services.prompts import (
    build_mitigation_prompt,
    build_risks_prompt,
    build_solutions_prompt,
)

logger = logging.getLogger("riskvision.llm")


class LLMError(Exception):
    """Base class for anything that goes wrong talking to a language model."""


class LLMConfigError(LLMError):
    pass


class LLMRequestError(LLMError):
    pass


class LLMResponseError(LLMError):
    pass


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    kind: str  # "openai" (chat completions) or "gemini"
    base_url: str
    default_model: str


PROVIDERS: dict[str, ProviderSpec] = {
    spec.name: spec
    for spec in (
        ProviderSpec("riskvision", "openai", "https://api.deepseek.com/v1", "deepseek-chat"),
        ProviderSpec("deepseek", "openai", "https://api.deepseek.com/v1", "deepseek-chat"),
        ProviderSpec("openai", "openai", "https://api.openai.com/v1", "gpt-4o-mini"),
        ProviderSpec("openrouter", "openai", "https://openrouter.ai/api/v1", "openai/gpt-4o-mini"),
        ProviderSpec("groq", "openai", "https://api.groq.com/openai/v1", "llama-3.1-8b-instant"),
        ProviderSpec("mistral", "openai", "https://api.mistral.ai/v1", "mistral-small-latest"),
        ProviderSpec("gemini", "gemini", "https://generativelanguage.googleapis.com/v1beta", "gemini-1.5-flash"),
    )
}


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    api_key: str
    model: str

    @property
    def spec(self) -> ProviderSpec:
        try:
            return PROVIDERS[self.provider]
        except KeyError:
            raise LLMConfigError(f"Unsupported AI provider '{self.provider}'") from None

    @classmethod
    def resolve(cls, user: Any = None) -> "LLMConfig":
        """Per-user configuration when the user stored a key, otherwise the server default."""
        if user is not None and getattr(user, "ai_api_key", None):
            provider = (user.ai_provider or settings.llm_provider).lower()
            model = user.ai_model or PROVIDERS.get(provider, PROVIDERS["riskvision"]).default_model
            return cls(provider=provider, api_key=user.ai_api_key, model=model)

        if not settings.llm_api_key:
            raise LLMConfigError("No AI API key configured. Add one in your profile's AI settings.")
        provider = settings.llm_provider.lower()
        return cls(provider=provider, api_key=settings.llm_api_key, model=settings.llm_model)


class LLMClient:
    """Sends a single-turn prompt and returns the model's text reply."""

    def __init__(
        self,
        config: LLMConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float | None = None,
    ) -> None:
        self.config = config
        self.spec = config.spec
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.llm_timeout_seconds

    async def complete(self, prompt: str) -> str:
        start = time.perf_counter()
        ok = False
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                if self.spec.kind == "gemini":
                    text = await self._call_gemini(client, prompt)
                else:
                    text = await self._call_chat_completions(client, prompt)
            ok = True
            return text
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            metrics.observe_llm_call(self.config.provider, ok, duration_ms)
            logger.info(
                "llm call %s",
                "completed" if ok else "failed",
                extra={"provider": self.config.provider, "duration_ms": duration_ms},
            )

    async def _post(self, client: httpx.AsyncClient, url: str, **kwargs) -> dict:
        try:
            resp = await client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise LLMRequestError(f"AI provider request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise LLMRequestError(f"API request failed with status {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise LLMResponseError("AI provider returned a non-JSON response") from exc

    async def _call_chat_completions(self, client: httpx.AsyncClient, prompt: str) -> str:
        data = await self._post(
            client,
            f"{self.spec.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
            json={
                "model": self.config.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": settings.llm_temperature,
            },
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError("Unexpected chat completion payload") from exc

    async def _call_gemini(self, client: httpx.AsyncClient, prompt: str) -> str:
        data = await self._post(
            client,
            f"{self.spec.base_url}/models/{self.config.model}:generateContent",
            params={"key": self.config.api_key},
            headers={"Content-Type": "application/json"},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": settings.llm_temperature},
            },
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError("Unexpected Gemini payload") from exc


# ── JSON extraction ─────────────────────────────────────────────

_OBJECT_ARRAY_RE = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_STRING_ARRAY_RE = re.compile(r"\[\s*\".*\"\s*\]", re.DOTALL)


def _parse(pattern: re.Pattern, text: str) -> Any:
    match = pattern.search(text or "")
    if not match:
        raise LLMResponseError("Failed to extract JSON from API response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"AI response contained malformed JSON: {exc.msg}") from exc


def extract_json_array(text: str) -> list[dict]:
    """First ``[{...}]`` in the reply."""
    data = _parse(_OBJECT_ARRAY_RE, text)
    if not isinstance(data, list):
        raise LLMResponseError("Expected a JSON array in API response")
    return [item for item in data if isinstance(item, dict)]


def extract_json_object(text: str) -> dict:
    """First ``{...}`` in the reply."""
    data = _parse(_OBJECT_RE, text)
    if not isinstance(data, dict):
        raise LLMResponseError("Expected a JSON object in API response")
    return data


def extract_string_array(text: str) -> list[str]:
    """First ``["...", ...]`` in the reply."""
    data = _parse(_STRING_ARRAY_RE, text)
    if not isinstance(data, list):
        raise LLMResponseError("Expected a JSON array of strings in API response")
    return [str(item).strip() for item in data if str(item).strip()]


# ── Shape coercion ─────────────────────────────────────────────

_CATEGORY_VALUES = {c.value for c in RiskCategory}


def coerce_category(value: Any) -> str:
    text = str(value or "").strip().lower()
    return text if text in _CATEGORY_VALUES else RiskCategory.TECHNICAL.value


def coerce_generated_risk(raw: dict, team_emails: set[str]) -> dict:
    assignee = str(raw.get("assignedTo") or raw.get("assigned_to") or "").strip().lower()
    solutions = raw.get("potentialSolutions") or raw.get("solutions") or []
    if isinstance(solutions, str):
        solutions = [solutions]
    return {
        "title": str(raw.get("title") or "Untitled Risk").strip()[:500],
        "description": str(raw.get("description") or "").strip(),
        "category": coerce_category(raw.get("category")),
        "probability": clamp_score(raw.get("probability")),
        "impact": clamp_score(raw.get("impact")),
        "assigned_to": assignee if assignee in team_emails else "",
        "potential_solutions": [str(s).strip() for s in solutions if str(s).strip()],
    }


# ── High-level generators ───────────────────────────────────────


async def generate_risks(client: LLMClient, params: Any, team_members: Sequence[Any] = ()) -> list[dict]:
    prompt = build_risks_prompt(params, team_members, sorted(_CATEGORY_VALUES))
    reply = await client.complete(prompt)
    team_emails = {str(getattr(m, "email", "") or "").lower() for m in team_members}
    risks = [coerce_generated_risk(raw, team_emails) for raw in extract_json_array(reply)]
    count = getattr(params, "count", None)
    if count:
        risks = risks[:count]
    logger.info("Generated %d risk suggestions", len(risks))
    return risks


async def generate_mitigation_strategy(
    client: LLMClient,
    risk: Any,
    team_members: Sequence[Any] = (),
) -> MitigationStrategy:
    reply = await client.complete(build_mitigation_prompt(risk, team_members))
    return MitigationStrategy.model_validate(extract_json_object(reply))


async def generate_solutions(client: LLMClient, risk: Any) -> list[str]:
    reply = await client.complete(build_solutions_prompt(risk))
    return extract_string_array(reply)
