"""
Insight narration orchestrator.

``narrate(section, facts)`` asks the provider chain for one report section
and always returns text: provider failures end in the deterministic
fallback template for that section.

``narrate_all(enhanced)`` runs introduction, the per-layer group,
supplementary and conclusion concurrently; the per-layer calls inside the
group are concurrent as well. Every call still passes through the shared
governor, so the actual requests go out spaced by the minimum interval.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from heatatlas.config import settings
from heatatlas.llm.governor import RequestGovernor
from heatatlas.llm.monitor import NarrationMonitor
from heatatlas.llm.postprocess import clean_response
from heatatlas.llm.prompts.system_prompts import (
    BASE_INSTRUCTION,
    SECTION_CONCLUSION,
    SECTION_FALLBACKS,
    SECTION_INTRODUCTION,
    SECTION_LAYER,
    SECTION_SUPPLEMENTARY,
    SECTION_TASKS,
    build_user_prompt,
    token_limit,
)
from heatatlas.llm.providers import NarrationProvider, ProviderChain
from heatatlas.schemas.analysis import MetricLayer
from heatatlas.schemas.report import EnhancedReportData, InsightSet
from heatatlas.utils.exceptions import ExternalServiceError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)


class InsightNarrator:
    """Section narration over an ordered provider chain."""

    def __init__(
        self,
        chain: Optional[ProviderChain] = None,
        governor: Optional[RequestGovernor] = None,
        monitor: Optional[NarrationMonitor] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
    ):
        self.chain = chain or ProviderChain()
        self.governor = governor or RequestGovernor()
        self.monitor = monitor or NarrationMonitor()
        self.timeout = timeout or settings.NARRATION_TIMEOUT_SECONDS
        self.temperature = settings.NARRATION_TEMPERATURE if temperature is None else temperature

    def _candidates(self) -> List[NarrationProvider]:
        available = self.chain.available()
        within_budget = [p for p in available if self.governor.should_proceed(p.name)]
        # The budget is advisory: with every provider over it, try them all anyway.
        return within_budget or available

    @staticmethod
    def _needs_no_request(section: str, facts: Dict[str, Any]) -> bool:
        if section == SECTION_SUPPLEMENTARY:
            return not facts.get("additional_layers")
        if section == SECTION_LAYER:
            return not facts["layer"].statistics.is_complete
        return False

    async def narrate(
        self,
        section: str,
        facts: Dict[str, Any],
        centroid: Optional[Tuple[float, float]] = None,
    ) -> str:
        """
        Narrate one section.

        Args:
            section: One of the section constants in ``system_prompts``
            facts: Structured facts for that section (see ``system_prompts``)
            centroid: (lat, lng) of the study area, used to repair coordinates

        Returns:
            Cleaned provider text, or the section's fallback template
        """
        fallback = SECTION_FALLBACKS[section]

        if self._needs_no_request(section, facts):
            return fallback(facts)

        tracker = self.monitor.start_request(section)
        prompt = build_user_prompt(section, SECTION_TASKS[section](facts))
        max_tokens = token_limit(section)
        last_error: Optional[BaseException] = None

        for provider in self._candidates():
            await self.governor.acquire()
            try:
                text = await asyncio.wait_for(
                    provider.request(prompt, BASE_INSTRUCTION, max_tokens, self.temperature),
                    timeout=self.timeout,
                )
            except Exception as e:
                last_error = e
                self.governor.record_outcome(provider.name, e)
                logger.warning(
                    "Narration provider failed, trying next",
                    provider=provider.name,
                    section=section,
                    error=str(e) or type(e).__name__,
                )
                continue

            if not text or not text.strip():
                last_error = ExternalServiceError("Empty narration response", service_name=provider.name)
                self.governor.record_outcome(provider.name, last_error)
                continue

            self.governor.record_outcome(provider.name)
            self.monitor.end_request(tracker, success=True)
            return clean_response(text, centroid)

        self.monitor.end_request(tracker, success=False, error=last_error, used_fallback=True)
        return fallback(facts)

    async def _interpret_layers(
        self,
        layers: List[MetricLayer],
        centroid: Tuple[float, float],
    ) -> Dict[str, str]:
        texts = await asyncio.gather(
            *(self.narrate(SECTION_LAYER, {"layer": layer}, centroid) for layer in layers)
        )
        return {layer.id: text for layer, text in zip(layers, texts)}

    async def narrate_all(self, enhanced: EnhancedReportData) -> InsightSet:
        metadata = enhanced.metadata
        centroid = (metadata.study_area.centroid.lat, metadata.study_area.centroid.lng)

        introduction, interpretations, supplementary, conclusion = await asyncio.gather(
            self.narrate(
                SECTION_INTRODUCTION,
                {"metadata": metadata, "statistics": enhanced.statistics},
                centroid,
            ),
            self._interpret_layers(enhanced.layers, centroid),
            self.narrate(
                SECTION_SUPPLEMENTARY,
                {"additional_layers": list(enhanced.additional_layers), "metadata": metadata},
                centroid,
            ),
            self.narrate(
                SECTION_CONCLUSION,
                {"layers": enhanced.layers, "metadata": metadata},
                centroid,
            ),
        )

        return InsightSet(
            introduction=introduction,
            statistics_interpretations=interpretations,
            supplementary_analysis=supplementary,
            conclusion=conclusion,
        )

    def fallback_insights(self, enhanced: EnhancedReportData) -> InsightSet:
        """Deterministic InsightSet built from the same facts, no provider involved."""
        return build_fallback_insights(enhanced)

    async def probe(self) -> Dict[str, bool]:
        return await self.chain.probe_all()

    def status(self) -> Dict[str, Any]:
        return {
            "providers": self.chain.availability(),
            "metrics": self.monitor.get_metrics(),
            "errors": self.governor.error_summary(),
        }

    async def close(self):
        await self.chain.close()


def build_fallback_insights(enhanced: EnhancedReportData) -> InsightSet:
    metadata = enhanced.metadata
    return InsightSet(
        introduction=SECTION_FALLBACKS[SECTION_INTRODUCTION](
            {"metadata": metadata, "statistics": enhanced.statistics}
        ),
        statistics_interpretations={
            layer.id: SECTION_FALLBACKS[SECTION_LAYER]({"layer": layer}) for layer in enhanced.layers
        },
        supplementary_analysis=SECTION_FALLBACKS[SECTION_SUPPLEMENTARY](
            {"additional_layers": list(enhanced.additional_layers), "metadata": metadata}
        ),
        conclusion=SECTION_FALLBACKS[SECTION_CONCLUSION]({"layers": enhanced.layers, "metadata": metadata}),
    )


# Global narrator instance
insight_narrator = InsightNarrator()
