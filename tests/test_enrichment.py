"""Tests for LLM enrichment of search results."""

import re
from unittest.mock import patch

import pytest
import pytest_asyncio

from src.ai.enrichment import OpenRouterEnricher, build_prompt
from src.scraper.base.config import EnrichmentSettings
from src.scraper.base.errors import ConfigurationError, EnrichmentError

from conftest import make_product, make_products

API_URL = re.compile(r"^https://openrouter\.test/api/v1/chat/completions$")


@pytest.fixture
def enrichment_settings() -> EnrichmentSettings:
    return EnrichmentSettings(
        enabled=True, base_url="https://openrouter.test/api/v1", retry_attempts=2
    )


@pytest_asyncio.fixture
async def enricher(enrichment_settings, mock_env_vars):
    enricher = OpenRouterEnricher(enrichment_settings)
    yield enricher
    await enricher.close()


class TestBuildPrompt:
    """Test prompt rendering."""

    @pytest.mark.unit
    def test_products_rendered_as_json(self):
        prompt = build_prompt([make_product("Croma", name="Galaxy S24", price="74999")])

        assert prompt.startswith("Product listings:")
        assert '"retailer": "Croma"' in prompt
        assert '"price": "74999"' in prompt
        assert "HTML Content" not in prompt

    @pytest.mark.unit
    def test_html_is_truncated(self):
        prompt = build_prompt(make_products("Croma", 1), "<div>" + "x" * 10000)

        assert "HTML Content:\n<div>" in prompt
        assert len(prompt) < 7000


class TestOpenRouterEnricher:
    """Test the chat completions client."""

    @pytest.mark.unit
    def test_requires_api_key(self, enrichment_settings, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            OpenRouterEnricher(enrichment_settings)

    @pytest.mark.asyncio
    async def test_successful_enrichment(self, enricher, mock_aioresponses):
        mock_aioresponses.post(
            API_URL,
            status=200,
            payload={"choices": [{"message": {"content": "  Croma is cheapest.  "}}]},
        )

        summary = await enricher.enrich(make_products("Croma", 3))

        assert summary == "Croma is cheapest."
        request = next(iter(mock_aioresponses.requests.values()))[0]
        assert request.kwargs["headers"]["Authorization"] == "Bearer test_openrouter_key"
        assert request.kwargs["json"]["model"] == "openai/gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, enricher, mock_aioresponses):
        mock_aioresponses.post(API_URL, status=500)
        mock_aioresponses.post(
            API_URL, status=200, payload={"choices": [{"message": {"content": "ok"}}]}
        )

        with patch("src.ai.enrichment.RETRY_MIN_WAIT_SEC", 0):
            summary = await enricher.enrich(make_products("Croma", 1))

        assert summary == "ok"
        assert sum(len(calls) for calls in mock_aioresponses.requests.values()) == 2

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self, enricher, mock_aioresponses):
        mock_aioresponses.post(API_URL, status=200, payload={"choices": []})
        mock_aioresponses.post(API_URL, status=200, payload={"choices": [{"message": {"content": ""}}]})

        with patch("src.ai.enrichment.RETRY_MIN_WAIT_SEC", 0):
            with pytest.raises(EnrichmentError, match="All enrichment attempts failed"):
                await enricher.enrich(make_products("Croma", 1))

    @pytest.mark.asyncio
    async def test_no_products(self, enricher):
        with pytest.raises(EnrichmentError):
            await enricher.enrich([])
