"""LLM Provider abstraction layer supporting multiple providers."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any

import httpx

from armour.config import settings
from armour.errors import ExternalServiceError, RateLimitedError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a contract and negotiation assistant for content creators working with brands. "
    "Follow the output format requested in the prompt exactly."
)


@dataclass
class ProviderConfig:
    """Connection details for one LLM provider."""
    name: str
    model: str = ""
    api_key: str = ""
    api_base_url: str = ""


class LLMProviderService:
    """Service for interacting with various LLM providers."""

    DEFAULT_MODELS = {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-3-5-sonnet-20241022",
        "groq": "llama-3.1-70b-versatile",
        "ollama": "llama3.1",
    }

    GROQ_BASE_URL = "https://api.groq.com/openai/v1"

    def __init__(self, provider: Optional[ProviderConfig] = None):
        self.provider = provider

    @property
    def model(self) -> str:
        if not self.provider:
            return ""
        return self.provider.model or self.DEFAULT_MODELS.get(self.provider.name, "")

    @property
    def model_label(self) -> str:
        """Provider/model string recorded in the AI decision log."""
        if not self.provider:
            return "unconfigured"
        return f"{self.provider.name}/{self.model}"

    async def complete(self, prompt: str) -> str:
        """Send a completion request to the configured LLM provider."""
        if not self.provider:
            raise ExternalServiceError("No LLM provider configured")

        name = self.provider.name
        try:
            if name == "openai":
                return await self._complete_openai(prompt)
            elif name == "groq":
                return await self._complete_openai(prompt, base_url=self.provider.api_base_url or self.GROQ_BASE_URL)
            elif name == "anthropic":
                return await self._complete_anthropic(prompt)
            elif name == "ollama":
                return await self._complete_ollama(prompt)
        except ExternalServiceError:
            raise
        except Exception as e:
            raise self._translate_error(e) from e
        raise ExternalServiceError(f"Unsupported provider: {name}")

    def _translate_error(self, error: Exception) -> ExternalServiceError:
        status = getattr(error, "status_code", None)
        if status is None and isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
        if status == 429:
            logger.warning(f"[LLM] Rate limited by {self.model_label}")
            return RateLimitedError("Rate Limit Exceeded (429)", status_code=429)
        logger.error(f"[LLM] {self.model_label} request failed: {error}")
        return ExternalServiceError(f"LLM request failed: {error}", status_code=status)

    async def _complete_openai(self, prompt: str, base_url: Optional[str] = None) -> str:
        """Complete using the OpenAI API (or an OpenAI-compatible endpoint)."""
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.provider.api_key, base_url=base_url or self.provider.api_base_url or None)

        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt}
            ],
            temperature=0.3,
            max_tokens=4096
        )

        return response.choices[0].message.content or ""

    async def _complete_anthropic(self, prompt: str) -> str:
        """Complete using Anthropic API."""
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=self.provider.api_key)

        response = await client.messages.create(
            model=self.model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            messages=[
                {"role": "user", "content": prompt}
            ]
        )

        return response.content[0].text

    async def _complete_ollama(self, prompt: str) -> str:
        """Complete using local Ollama."""
        base_url = self.provider.api_base_url or "http://localhost:11434"

        async with httpx.AsyncClient(timeout=120.0) as client:
            response = await client.post(
                f"{base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {
                        "temperature": 0.3
                    }
                }
            )
            response.raise_for_status()
            result = response.json()
            return result.get("response", "")

    async def complete_json(self, prompt: str) -> Dict[str, Any]:
        """Complete and parse the first JSON object out of the response."""
        response = await self.complete(prompt)
        logger.info(f"[LLM] Got response, length: {len(response)} chars")
        result = parse_json_response(response)
        if result is None:
            raise ExternalServiceError("AI returned an invalid response", details=response[:500])
        return result


def _balanced_prefix(text: str) -> Optional[str]:
    """Cut `text` after the brace that closes its first object."""
    depth = 0
    in_string = False
    escape_next = False

    for i, c in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if c == '\\':
            escape_next = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == '{':
            depth += 1
        elif c == '}':
            depth -= 1
            if depth == 0:
                return text[:i + 1]
    return None


def parse_json_response(response: str) -> Optional[Dict[str, Any]]:
    """Extract a JSON object from an LLM response, repairing common mistakes."""
    if not response:
        return None

    text = re.sub(r"```(?:json)?", "", response)
    json_match = re.search(r'\{[\s\S]*\}', text)
    if not json_match:
        return None
    json_str = json_match.group()

    # Remove trailing commas before } or ]
    json_str = re.sub(r',(\s*[}\]])', r'\1', json_str)
    # Remove control characters (newlines inside strings break json.loads)
    json_str = re.sub(r'[\x00-\x1f\x7f-\x9f]', ' ', json_str)

    # Attempt 1: direct parse
    try:
        result = json.loads(json_str)
        return result if isinstance(result, dict) else None
    except json.JSONDecodeError as e:
        logger.warning(f"[LLM] JSON parse attempt 1 failed: {e}")

    # Attempt 2: the model kept talking after the object closed
    balanced = _balanced_prefix(json_str)
    if balanced:
        try:
            result = json.loads(balanced)
            logger.info(f"[LLM] JSON parse attempt 2 succeeded (truncated to {len(balanced)} chars)")
            return result if isinstance(result, dict) else None
        except json.JSONDecodeError as e:
            logger.warning(f"[LLM] JSON parse attempt 2 failed: {e}")

    return None


def get_llm_service() -> LLMProviderService:
    """Dependency to get LLM service with the configured provider."""
    if not settings.llm_provider:
        return LLMProviderService(None)
    return LLMProviderService(ProviderConfig(
        name=settings.llm_provider,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        api_base_url=settings.llm_base_url,
    ))
