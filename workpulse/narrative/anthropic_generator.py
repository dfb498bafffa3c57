"""
Anthropic narrative provider.

Sends the structured period context to a Claude model and returns the text
reply. Timeouts, retries and fallback are the insight assembler's job;
this class makes exactly one request per generate() call.

Usage:
    generator = AnthropicNarrativeGenerator()
    text = await generator.generate(context, config.narrative)
"""

from __future__ import annotations

import json
import os
from typing import Any

import anthropic

from workpulse.config_models import NarrativeConfig
from workpulse.narrative.base import NarrativeContext, NarrativeError, NarrativeGenerator


SYSTEM_PROMPT = """You write short, neutral summaries of a person's work patterns.

Rules:
- 3 to 5 sentences, plain text, no headings or lists
- Use only the numbers given; never invent values
- Mention active time, focus percentage and the peak focus window
- No judgemental language about productivity"""

USER_PROMPT = """Summarize this work period.

Metrics (JSON):
{context}"""


class AnthropicNarrativeGenerator(NarrativeGenerator):
    name = "anthropic"
    remote = True

    def __init__(self, client: Any | None = None):
        self._client = client

    def _get_client(self, config: NarrativeConfig) -> Any:
        if self._client is None:
            api_key = os.environ.get(config.api_key_env)
            if not api_key:
                raise NarrativeError(f"{config.api_key_env} not set")
            # Retries are handled by the caller with its own backoff
            self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        return self._client

    async def generate(self, context: NarrativeContext, config: NarrativeConfig) -> str:
        client = self._get_client(config)
        prompt = USER_PROMPT.format(context=json.dumps(context.to_dict(), indent=2))

        try:
            response = await client.messages.create(
                model=config.model,
                max_tokens=config.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise NarrativeError(f"Anthropic request failed: {e}") from e

        parts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        return "".join(parts)
