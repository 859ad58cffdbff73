"""
HeatAtlas - Insight Narrator Tests
tests/test_narrator.py

Providers are in-process fakes; no network.
"""

import asyncio
import json
import re
import unittest
from unittest.mock import AsyncMock, patch

from heatatlas.llm.governor import RequestGovernor
from heatatlas.llm.monitor import NarrationMonitor
from heatatlas.llm.orchestrator import InsightNarrator, build_fallback_insights
from heatatlas.llm.prompts.system_prompts import (
    SECTION_CONCLUSION,
    SECTION_INTRODUCTION,
    SECTION_LAYER,
    SECTION_SUPPLEMENTARY,
    token_limit,
)
from heatatlas.llm.providers import NarrationProvider, OllamaProvider, ProviderChain
from heatatlas.utils.exceptions import NarrationProviderError
from tests.factories import LULC_ONLY, make_enhanced, make_layer

GOOD_TEXT = (
    "Surface temperatures average 41.17°C across the study area, with the warmest pixels "
    "concentrated in the dense commercial core."
)

_LAYER_PROMPT = re.compile(r"Analyze the (\S+) layer with exact statistical values:\n- Mean: (\S+)")


class FakeProvider(NarrationProvider):
    """Replies with a fixed text, raises, or echoes layer facts back after a delay."""

    def __init__(self, name, reply=GOOD_TEXT, error=None, delay=0.0, available=True, echo=False):
        super().__init__()
        self.name = name
        self.reply = reply
        self.error = error
        self.delay = delay
        self.available = available
        self.echo = echo
        self.calls = []

    async def probe(self):
        return self.available

    async def request(self, prompt, system, max_tokens, temperature):
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
        match = _LAYER_PROMPT.search(prompt)
        if self.delay:
            delay = self.delay(match) if callable(self.delay) else self.delay
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        if self.echo and match:
            name, mean = match.groups()
            return (f"The {name} layer has a mean of {mean} across the study area and shows a clear "
                    f"spatial structure worth planning attention.")
        return self.reply


def make_narrator(*providers, timeout=5.0):
    return InsightNarrator(
        chain=ProviderChain(list(providers)),
        governor=RequestGovernor(min_interval=0),
        monitor=NarrationMonitor(),
        timeout=timeout,
        temperature=0.3,
    )


class TestNarrateSection(unittest.IsolatedAsyncioTestCase):

    async def test_01_provider_text_is_cleaned(self):
        narrator = make_narrator(FakeProvider("groq"))
        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})

        self.assertEqual(text, f"**Analysis:**\n{GOOD_TEXT}")
        self.assertEqual(narrator.monitor.get_metrics()["successful_requests"], 1)

    async def test_02_request_shape(self):
        """Section token budget, low temperature, exact figures in the prompt"""
        provider = FakeProvider("groq")
        narrator = make_narrator(provider)
        await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})

        call = provider.calls[0]
        self.assertEqual(call["max_tokens"], token_limit(SECTION_LAYER))
        self.assertEqual(call["temperature"], 0.3)
        self.assertIn("Mean: 41.1700", call["prompt"])

    async def test_03_all_providers_fail_uses_fallback(self):
        """Fallback embeds the exact figures supplied"""
        narrator = make_narrator(
            FakeProvider("ollama", error=NarrationProviderError("down", provider="ollama")),
            FakeProvider("groq", error=NarrationProviderError("rate limited", provider="groq")),
        )
        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer(mean=41.17)})

        self.assertTrue(text.startswith("**Analysis:**"))
        self.assertIn("41.1700", text)
        self.assertIn("30.5000", text)
        self.assertEqual(narrator.monitor.get_metrics()["fallback_used"], 1)
        self.assertEqual(set(narrator.governor.error_summary()), {"ollama", "groq"})

    async def test_04_falls_through_to_next_provider(self):
        failing = FakeProvider("ollama", error=NarrationProviderError("down", provider="ollama"))
        working = FakeProvider("groq")
        narrator = make_narrator(failing, working)

        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})
        self.assertIn(GOOD_TEXT, text)
        self.assertEqual(len(failing.calls), 1)
        self.assertEqual(len(working.calls), 1)

    async def test_05_unavailable_provider_not_called(self):
        offline = FakeProvider("ollama", available=False)
        working = FakeProvider("groq")
        narrator = make_narrator(offline, working)

        await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})
        self.assertEqual(offline.calls, [])

    async def test_06_timeout_counts_as_failure(self):
        narrator = make_narrator(FakeProvider("groq", delay=1.0), timeout=0.05)
        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})

        self.assertIn("41.1700", text)
        self.assertEqual(narrator.monitor.get_metrics()["fallback_used"], 1)

    async def test_07_empty_reply_counts_as_failure(self):
        narrator = make_narrator(FakeProvider("groq", reply="   "))
        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})
        self.assertIn("41.1700", text)

    async def test_08_over_budget_provider_skipped(self):
        first = FakeProvider("ollama")
        second = FakeProvider("groq")
        narrator = make_narrator(first, second)
        for _ in range(narrator.governor.max_errors):
            narrator.governor.record_outcome("ollama", NarrationProviderError("down"))

        await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})
        self.assertEqual(first.calls, [])
        self.assertEqual(len(second.calls), 1)

    async def test_09_budget_is_advisory(self):
        """With every provider over budget they are still tried"""
        only = FakeProvider("groq")
        narrator = make_narrator(only)
        for _ in range(narrator.governor.max_errors):
            narrator.governor.record_outcome("groq", NarrationProviderError("down"))

        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})
        self.assertIn(GOOD_TEXT, text)

    async def test_10_incomplete_statistics_skip_request(self):
        provider = FakeProvider("groq")
        narrator = make_narrator(provider)
        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer(std_dev=None)})

        self.assertIn("Insufficient statistical data", text)
        self.assertEqual(provider.calls, [])

    async def test_11_no_supplementary_layers_skip_request(self):
        provider = FakeProvider("groq")
        narrator = make_narrator(provider)
        enhanced = make_enhanced()
        text = await narrator.narrate(
            SECTION_SUPPLEMENTARY, {"additional_layers": [], "metadata": enhanced.metadata}
        )

        self.assertIn("No supplementary vulnerability layers", text)
        self.assertEqual(provider.calls, [])

    async def test_12_unexpected_provider_error_falls_through(self):
        """A malformed body surfacing as a decode error still moves on to the next provider"""
        broken = FakeProvider("ollama", error=json.JSONDecodeError("Expecting value", "<html>", 0))
        working = FakeProvider("groq")
        narrator = make_narrator(broken, working)

        text = await narrator.narrate(SECTION_LAYER, {"layer": make_layer()})

        self.assertIn(GOOD_TEXT, text)
        self.assertEqual(len(working.calls), 1)
        self.assertEqual(set(narrator.governor.error_summary()), {"ollama"})
        self.assertEqual(narrator.monitor.get_metrics()["fallback_used"], 0)


class TestHttpProviders(unittest.IsolatedAsyncioTestCase):

    async def test_01_undecodable_body_is_a_provider_error(self):
        provider = OllamaProvider(base_url="http://localhost:11434", model="llama3")
        with patch.object(provider, "post", AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>", 0))):
            with self.assertRaises(NarrationProviderError):
                await provider.request("prompt", "system", 100, 0.3)

    async def test_02_undecodable_probe_means_unavailable(self):
        provider = OllamaProvider(base_url="http://localhost:11434", model="llama3")
        with patch.object(provider, "get", AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "", 0))):
            self.assertFalse(await provider.health_check())


class TestNarrateAll(unittest.IsolatedAsyncioTestCase):

    async def test_01_interpretations_keyed_by_layer(self):
        """Completion order differs from request order; every text still matches its own layer"""
        layers = [
            make_layer("lst", mean=41.17),
            make_layer("ndvi", mean=0.2345, minimum=-0.1, maximum=0.6, std_dev=0.12),
            make_layer("uhi", mean=-0.0123, minimum=-3.1, maximum=3.4, std_dev=1.0),
        ]
        delays = {"LST": 0.06, "NDVI": 0.03, "UHI": 0.0}
        provider = FakeProvider(
            "groq",
            echo=True,
            delay=lambda match: delays[match.group(1)] if match else 0.0,
        )
        narrator = make_narrator(provider)

        insights = await narrator.narrate_all(make_enhanced(layers=layers))

        self.assertEqual(list(insights.statistics_interpretations), ["lst", "ndvi", "uhi"])
        self.assertIn("LST layer has a mean of 41.1700", insights.statistics_interpretations["lst"])
        self.assertIn("NDVI layer has a mean of 0.2345", insights.statistics_interpretations["ndvi"])
        self.assertIn("UHI layer has a mean of -0.0123", insights.statistics_interpretations["uhi"])

    async def test_02_every_section_present(self):
        narrator = make_narrator(FakeProvider("groq"))
        enhanced = make_enhanced(additional={"LULC": {"downloadUrl": "https://download.example.com/lulc.tif"}})

        insights = await narrator.narrate_all(enhanced)

        for text in (insights.introduction, insights.supplementary_analysis, insights.conclusion):
            self.assertTrue(text.startswith("**Analysis:**"))
        self.assertEqual(set(insights.statistics_interpretations), {"lst"})

    async def test_03_sections_use_their_token_budgets(self):
        provider = FakeProvider("groq")
        narrator = make_narrator(provider)
        enhanced = make_enhanced(additional=LULC_ONLY)

        await narrator.narrate_all(enhanced)

        budgets = sorted(call["max_tokens"] for call in provider.calls)
        expected = sorted(token_limit(s) for s in (
            SECTION_INTRODUCTION, SECTION_LAYER, SECTION_SUPPLEMENTARY, SECTION_CONCLUSION,
        ))
        self.assertEqual(budgets, expected)

    async def test_04_fallback_insights_need_no_provider(self):
        insights = build_fallback_insights(make_enhanced())
        self.assertIn("41.1700", insights.statistics_interpretations["lst"])
        self.assertIn("Summer", insights.conclusion)


if __name__ == "__main__":
    unittest.main(verbosity=2)
