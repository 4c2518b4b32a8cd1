import httpx
import pytest

from armour.errors import ExternalServiceError, RateLimitedError
from armour.services.llm_provider import LLMProviderService, ProviderConfig, parse_json_response


class TestParseJsonResponse:
    def test_fenced_json(self):
        assert parse_json_response('```json\n{"isContract": true}\n```') == {"isContract": True}

    def test_trailing_commas(self):
        assert parse_json_response('{"issues": [{"title": "a"},], "score": 70,}') == {
            "issues": [{"title": "a"}],
            "score": 70,
        }

    def test_newlines_inside_strings(self):
        assert parse_json_response('{"message": "line one\nline two"}') == {"message": "line one line two"}

    def test_text_after_the_object(self):
        response = 'Here you go: {"score": 50} Also note {"extra": true}'
        assert parse_json_response(response) == {"score": 50}

    def test_no_object(self):
        assert parse_json_response("I cannot help with that.") is None
        assert parse_json_response("") is None


class TestProviderService:
    def test_model_defaults(self):
        assert LLMProviderService(ProviderConfig(name="anthropic")).model_label.startswith("anthropic/claude")
        assert LLMProviderService(ProviderConfig(name="openai", model="gpt-4o")).model == "gpt-4o"
        assert LLMProviderService(None).model_label == "unconfigured"

    async def test_unconfigured_provider(self):
        with pytest.raises(ExternalServiceError, match="No LLM provider configured"):
            await LLMProviderService(None).complete("hello")

    async def test_unsupported_provider(self):
        with pytest.raises(ExternalServiceError, match="Unsupported provider"):
            await LLMProviderService(ProviderConfig(name="mystery")).complete("hello")

    def test_rate_limit_translation(self):
        request = httpx.Request("POST", "http://localhost:11434/api/generate")
        error = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))

        translated = LLMProviderService(ProviderConfig(name="ollama"))._translate_error(error)

        assert isinstance(translated, RateLimitedError)
        assert translated.status_code == 429

    def test_other_failures(self):
        translated = LLMProviderService(ProviderConfig(name="ollama"))._translate_error(RuntimeError("boom"))
        assert not isinstance(translated, RateLimitedError)
        assert "boom" in translated.message
