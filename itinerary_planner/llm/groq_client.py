from __future__ import annotations

import logging

import groq
from groq import Groq

from ..pipeline.errors import DependencyRejected, DependencyUnavailable
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

_SERVICE = "completion"

SYSTEM_PROMPT = (
    "You are a local trip planner. Given a visitor profile and a numbered list "
    "of candidate venues, choose and order the stops for a single outing. "
    "Consider variety, flow between stops, travel time and the time window.\n\n"
    "Return ONLY valid JSON matching this schema:\n"
    "{schema}\n"
    "Use only slugs from the provided list. Do not invent venues."
)


class GroqCompletionClient:
    """Completion service backed by the Groq chat API."""

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG) -> None:
        self.config = config
        self._client: Groq | None = None

    @property
    def available(self) -> bool:
        return self.config.enabled and bool(self.config.api_key)

    def _get_client(self) -> Groq:
        if self._client is None:
            self._client = Groq(api_key=self.config.api_key, timeout=self.config.timeout, max_retries=0)
        return self._client

    def complete(self, prompt: str, schema_hint: str) -> str:
        if not self.available:
            raise DependencyUnavailable("completion service is not configured", service=_SERVICE)

        try:
            response = self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(schema=schema_hint)},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except (groq.APITimeoutError, groq.APIConnectionError) as exc:
            raise DependencyUnavailable(f"Groq unreachable: {exc}", service=_SERVICE) from exc
        except groq.APIStatusError as exc:
            raise DependencyRejected(
                f"Groq rejected the request: {exc.message}",
                service=_SERVICE,
                status_code=exc.status_code,
            ) from exc
        except groq.APIError as exc:
            raise DependencyRejected(f"Groq request failed: {exc.message}", service=_SERVICE) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise DependencyRejected("Groq returned an empty completion", service=_SERVICE)
        logger.debug("Groq completion received (%d chars)", len(content))
        return content
