import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

import httpx

from fitadvisor.core.domain import AdvisoryIntent

logger = logging.getLogger("uvicorn.error")

ADVISORY_API_BASE = os.getenv("ADVISORY_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
ADVISORY_MODEL = os.getenv("ADVISORY_MODEL", "gemini-2.0-flash")
ADVISORY_TIMEOUT_SECONDS = float(os.getenv("ADVISORY_TIMEOUT_SECONDS", "8"))
ADVISORY_CONNECT_TIMEOUT_SECONDS = float(os.getenv("ADVISORY_CONNECT_TIMEOUT_SECONDS", "3"))

FALLBACK_WORKOUT_PLAN = json.dumps(
    {
        "weekPlan": [
            {
                "day": "Monday",
                "focus": "Upper body",
                "exercises": [
                    {
                        "name": "Push-ups",
                        "sets": 3,
                        "reps": "10-12",
                        "rest": "60s",
                        "equipment": "bodyweight",
                        "alternative": "Knee push-ups",
                    }
                ],
            }
        ],
        "tips": ["Keep proper form", "Breathe in a controlled way"],
        "progression": "Increase repetitions gradually",
    }
)

FALLBACK_NUTRITION_ADVICE = json.dumps(
    {
        "dailyCalories": 2000,
        "macros": {
            "protein": "150g (30%)",
            "carbs": "200g (40%)",
            "fat": "67g (30%)",
        },
        "mealSuggestions": [
            {
                "meal": "Breakfast",
                "foods": ["Oats", "Banana", "Eggs"],
                "calories": 400,
            }
        ],
        "tips": ["Eat protein with every meal", "Stay well hydrated"],
        "hydration": "Drink at least 2L of water a day",
    }
)

FALLBACK_ENCOURAGEMENT = "Stay consistent with your routine. Every small step counts toward your goal."

WORKOUT_KEYWORDS = ("workout", "entrenamiento")
NUTRITION_KEYWORDS = ("nutrition", "nutrición")


def _http_timeout() -> httpx.Timeout:
    return httpx.Timeout(ADVISORY_TIMEOUT_SECONDS, connect=ADVISORY_CONNECT_TIMEOUT_SECONDS)


class LLMRequestError(RuntimeError):
    def __init__(self, provider: str, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


@dataclass(frozen=True)
class GatewayResult:
    text: str
    fallback_used: bool = False
    error: Optional[str] = None


def fallback_for_intent(intent: Union[AdvisoryIntent, str]) -> str:
    try:
        resolved = AdvisoryIntent(intent)
    except ValueError:
        return FALLBACK_ENCOURAGEMENT
    if resolved == AdvisoryIntent.workout:
        return FALLBACK_WORKOUT_PLAN
    if resolved == AdvisoryIntent.nutrition:
        return FALLBACK_NUTRITION_ADVICE
    return FALLBACK_ENCOURAGEMENT


def fallback_for_prompt(prompt: str) -> str:
    lowered = (prompt or "").lower()
    if any(token in lowered for token in WORKOUT_KEYWORDS):
        return FALLBACK_WORKOUT_PLAN
    if any(token in lowered for token in NUTRITION_KEYWORDS):
        return FALLBACK_NUTRITION_ADVICE
    return FALLBACK_ENCOURAGEMENT


def select_fallback(prompt: str, intent: Optional[Union[AdvisoryIntent, str]] = None) -> str:
    if intent is not None:
        return fallback_for_intent(intent)
    return fallback_for_prompt(prompt)


def parse_llm_json(raw_text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(raw_text[start : end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
    raise ValueError("Invalid JSON response from LLM")


def _first_candidate_text(data: Any) -> str:
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError("Response has no candidate text") from exc
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Candidate text is empty")
    return text


class AdvisoryGateway(Protocol):
    def invoke(self, prompt: str, intent: Optional[Union[AdvisoryIntent, str]] = None) -> GatewayResult:
        ...


class GenerativeModelGateway:
    """Single-shot client for a Gemini-style ``generateContent`` endpoint.

    Any failure degrades to a canned fallback; nothing is retried or cached.
    """

    provider = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else _default_api_key()
        self.model = model or ADVISORY_MODEL
        self.base_url = (base_url or ADVISORY_API_BASE).rstrip("/")
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        if self._http_client is not None:
            return self._http_client.post(self.endpoint, headers=headers, json=payload, timeout=_http_timeout())
        return httpx.post(self.endpoint, headers=headers, json=payload, timeout=_http_timeout())

    def _request(self, prompt: str) -> str:
        if not self.api_key:
            raise LLMRequestError(provider=self.provider, model=self.model, message="Advisory API key missing")
        try:
            response = self._post({"contents": [{"parts": [{"text": prompt}]}]})
            response.raise_for_status()
            return _first_candidate_text(response.json())
        except httpx.TimeoutException as exc:
            raise LLMRequestError(
                provider=self.provider,
                model=self.model,
                message="Request timed out while waiting for response.",
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            detail = ""
            if exc.response is not None:
                detail = (exc.response.text or "").strip()[:220]
            raise LLMRequestError(
                provider=self.provider,
                model=self.model,
                status_code=status,
                message=f"Request failed (status={status}): {detail or 'no response body'}",
            ) from exc
        # InvalidURL and StreamError do not derive from HTTPError.
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            raise LLMRequestError(
                provider=self.provider, model=self.model, message=f"Request failed: {str(exc)[:220]}"
            ) from exc
        except ValueError as exc:
            raise LLMRequestError(
                provider=self.provider, model=self.model, message=f"Malformed response: {str(exc)[:220]}"
            ) from exc

    def invoke(self, prompt: str, intent: Optional[Union[AdvisoryIntent, str]] = None) -> GatewayResult:
        try:
            return GatewayResult(text=self._request(prompt))
        except LLMRequestError as exc:
            logger.warning(
                "advisory_llm_fallback model=%s status=%s intent=%s detail=%s",
                exc.model,
                exc.status_code,
                getattr(intent, "value", intent),
                str(exc),
            )
            return GatewayResult(text=select_fallback(prompt, intent), fallback_used=True, error=str(exc))


def _default_api_key() -> str:
    return os.getenv("ADVISORY_API_KEY", "").strip() or os.getenv("GEMINI_API_KEY", "").strip()


def get_advisory_gateway() -> AdvisoryGateway:
    return GenerativeModelGateway()
