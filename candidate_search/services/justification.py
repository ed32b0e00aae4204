"""
Justification synthesizer: a short, grounded "why this candidate matches" rationale.
"""
import asyncio
from typing import Optional

import requests
from openai import AsyncOpenAI, OpenAIError

from candidate_search.helpers.prompts import JUSTIFICATION_PROMPT, JUSTIFICATION_SYSTEM_PROMPT
from candidate_search.models.settings import Provider, SynthesisSettings
from candidate_search.utils.exceptions import SynthesisError
from candidate_search.utils.logging_config import get_logger
from candidate_search.utils.utils import ollama_generate

logger = get_logger(__name__)


class JustificationSynthesizer:

    def __init__(self, settings: SynthesisSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def provider(self) -> str:
        return self.settings.provider.value

    def _error(self, message: str, cause: Exception = None) -> SynthesisError:
        return SynthesisError(
            message,
            provider=self.provider,
            model_name=self.settings.model_name,
            cause=cause,
        )

    def _openai(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.api_key:
                raise self._error("OpenAI API key is not configured")
            self._client = AsyncOpenAI(api_key=self.settings.api_key, timeout=self.settings.timeout)
        return self._client

    async def explain(self, query: str, candidate_profile_text: str) -> str:
        """Return a 2-3 sentence rationale grounded in the profile text.

        Raises SynthesisError on any service failure. Blank profile text is
        rejected with ValueError; callers substitute a sentinel instead.
        """
        if not candidate_profile_text or not candidate_profile_text.strip():
            raise ValueError("candidate_profile_text must not be blank")

        prompt = JUSTIFICATION_PROMPT.format(query=query, profile=candidate_profile_text)
        if self.settings.provider == Provider.OLLAMA:
            text = await self._complete_ollama(prompt)
        else:
            text = await self._complete_openai(prompt)

        text = (text or "").strip()
        return text or candidate_profile_text

    async def _complete_openai(self, prompt: str) -> str:
        client = self._openai()
        try:
            response = await client.chat.completions.create(
                model=self.settings.model_name,
                messages=[
                    {"role": "system", "content": JUSTIFICATION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
            )
        except OpenAIError as e:
            raise self._error(f"Justification request failed: {e}", cause=e) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def _complete_ollama(self, prompt: str) -> str:
        try:
            return await asyncio.to_thread(
                ollama_generate,
                prompt,
                self.settings.model_name,
                JUSTIFICATION_SYSTEM_PROMPT,
                self.settings.temperature,
                self.settings.max_tokens,
                self.settings.base_url,
                self.settings.timeout,
            )
        except (requests.RequestException, ValueError, AttributeError, TypeError) as e:
            raise self._error(f"Justification request failed: {e}", cause=e) from e
