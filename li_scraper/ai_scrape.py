from __future__ import annotations

import json
from typing import Any, Callable, Protocol, Sequence

from openai import OpenAI

from .ai_scrape_schema import AI_SCRAPE_JSON_SCHEMA, AI_SCRAPE_SCHEMA_NAME, PageAnswers
from .config_schema import FallbackConfig
from .errors import AIScrapeError
from .openai_retry import is_retryable_openai_exception
from .retry import RetryConfig, RetryEvent, call_with_retries
from .run_log import EventLogger, NullLogger


class _ResponsesAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _OpenAIClient(Protocol):
    responses: _ResponsesAPI


class PageScraper(Protocol):
    """Answers element prompts about a public page: one mapping per record found."""

    def scrape(self, url: str, prompts: Sequence[str]) -> list[dict[str, str | list[str]]]: ...


_SYSTEM_INSTRUCTIONS = """\
You extract structured data from a public web page for an archival export.

Open the given URL with web search and answer each element prompt from what the page shows.

Return a JSON object that matches the provided schema EXACTLY:
- One record per distinct item on the page (one record for a profile; one record per post on an activity page).
- Inside a record, one field per prompt, using the prompt text verbatim.
- Put lists (URLs, hashtags, mentions, experience entries) in "items" and leave "text" empty.
- Put single values in "text" and leave "items" empty.
- Use an empty string when the page does not show a value. Never invent values.
- Keep counts as displayed (for example "1.2K").
"""

_TEXT_FORMAT: dict[str, Any] = {
    "format": {
        "type": "json_schema",
        "name": AI_SCRAPE_SCHEMA_NAME,
        "strict": True,
        "schema": AI_SCRAPE_JSON_SCHEMA,
    }
}


def _build_user_message(url: str, prompts: Sequence[str]) -> str:
    return json.dumps(
        {"url": url, "element_prompts": list(prompts)},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def _extract_output_text(response: Any) -> str:
    direct = (getattr(response, "output_text", None) or "").strip()
    if direct:
        return direct

    for item in getattr(response, "output", None) or []:
        for part in getattr(item, "content", None) or []:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()

    raise AIScrapeError("Page-extraction response did not include output text")


class OpenAIPageScraper:
    """
    Answers element prompts about a URL through the OpenAI Responses API.

    The model reads the page with the web_search tool and replies with
    Structured Outputs; transient API failures are retried.
    """

    def __init__(
        self,
        api_key: str,
        *,
        fallback_cfg: FallbackConfig | None = None,
        client: _OpenAIClient | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = fallback_cfg or FallbackConfig()
        self._client: _OpenAIClient = client or OpenAI(api_key=key)
        self._sleep = sleep_fn
        self._logger = logger or NullLogger()

    def _call_raw(self, url: str, prompts: Sequence[str]) -> str:
        try:
            response = self._client.responses.create(
                model=self._cfg.model,
                instructions=_SYSTEM_INSTRUCTIONS,
                input=[{"role": "user", "content": _build_user_message(url, prompts)}],
                tools=[{"type": "web_search"}],
                text=_TEXT_FORMAT,
                max_output_tokens=self._cfg.max_output_tokens,
            )
        except Exception as e:
            raise AIScrapeError(f"Page-extraction call failed ({self._cfg.model}): {e}") from e

        return _extract_output_text(response)

    def _on_retry(self, ev: RetryEvent) -> None:
        self._logger.warning(
            "ai_scrape_retry",
            url=ev.url,
            attempt=ev.failure_attempt,
            next_attempt=ev.next_attempt,
            delay_seconds=ev.delay_seconds,
            reason=ev.reason,
            error_type=ev.error_type,
        )

    def scrape(self, url: str, prompts: Sequence[str]) -> list[dict[str, str | list[str]]]:
        target = (url or "").strip()
        if not target:
            raise ValueError("url must be non-empty")
        if not prompts:
            raise ValueError("prompts must be non-empty")

        raw = call_with_retries(
            lambda: self._call_raw(target, prompts),
            cfg=RetryConfig(max_attempts=self._cfg.max_attempts, jitter_ratio=0.2),
            is_retryable=is_retryable_openai_exception,
            operation="ai_scrape",
            on_retry=self._on_retry,
            sleep_fn=self._sleep,
            url=target,
        )

        try:
            answers = PageAnswers.model_validate_json(raw)
        except Exception as e:
            raise AIScrapeError(f"Failed to parse page-extraction output for {target}: {e}") from e

        records = answers.as_mappings()
        self._logger.info("ai_scrape_done", url=target, records=len(records))
        return records
