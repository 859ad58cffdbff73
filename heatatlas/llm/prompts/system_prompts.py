"""
Narration prompts and deterministic fallbacks for the report sections.
heatatlas/llm/prompts/system_prompts.py

Every builder takes the same ``facts`` dict the orchestrator receives:

| Section        | Facts                                   |
|----------------|-----------------------------------------|
| introduction   | metadata (StudyMetadata), statistics    |
| layer_analysis | layer (MetricLayer)                     |
| supplementary  | additional_layers (list of keys), metadata |
| conclusion     | layers (list of MetricLayer), metadata  |
"""

from datetime import date
from typing import Any, Callable, Dict

ANALYSIS_PREFIX = "**Analysis:**"

SECTION_INTRODUCTION = "introduction"
SECTION_LAYER = "layer_analysis"
SECTION_SUPPLEMENTARY = "supplementary"
SECTION_CONCLUSION = "conclusion"

TOKEN_LIMITS = {
    SECTION_INTRODUCTION: 1500,
    SECTION_LAYER: 2000,
    SECTION_SUPPLEMENTARY: 1200,
    SECTION_CONCLUSION: 1000,
    "default": 1500,
}


def token_limit(section: str) -> int:
    return TOKEN_LIMITS.get(section, TOKEN_LIMITS["default"])


# ═══════════════════════════════════════════════════════════════════════════════
# SYSTEM INSTRUCTION
# ═══════════════════════════════════════════════════════════════════════════════

BASE_INSTRUCTION = """You are an urban climatology research analyst producing precise scientific reports. You MUST follow these rules:

CRITICAL DATA VALIDATION RULES:
1. ALWAYS use the exact numerical values provided in the prompt - never invent or approximate numbers
2. Report temperatures in Celsius with correct values (e.g., 41.17°C, not 170°C)
3. Report coordinates accurately (e.g., 28.6904°N, 77.1669°E, not 6904°N, 1669°E)
4. Ensure all statistical values match the input data exactly
5. Complete all sentences and analysis - no truncated responses

RESPONSE REQUIREMENTS:
- Use precise academic language with complete paragraphs
- Reference actual geographic locations when coordinates suggest known cities
- Focus on factual analysis based on the provided data
- Maintain scientific rigor and accuracy
- Ensure all responses are fully complete with proper conclusions

RESPONSE STRUCTURE (strict adherence):
**Analysis:**
[2-3 complete paragraphs of focused analysis using exact data values]
"""

LENGTH_REQUIREMENT = """RESPONSE LENGTH REQUIREMENT:
- Your response must be complete and comprehensive within approximately {tokens} tokens
- Ensure all sentences are fully formed and conclusions are reached
- Do not truncate responses - provide complete analysis
- If approaching length limits, provide a concise but complete conclusion"""


def build_user_prompt(section: str, task: str) -> str:
    """Length requirement for ``section`` followed by the section task."""
    return f"{LENGTH_REQUIREMENT.format(tokens=token_limit(section))}\n\nSPECIFIC ANALYSIS TASK: {task}"


def _f(value: Any, places: int = 4) -> str:
    return "n/a" if value is None else f"{value:.{places}f}"


# ═══════════════════════════════════════════════════════════════════════════════
# SECTION TASKS
# ═══════════════════════════════════════════════════════════════════════════════

def introduction_task(facts: Dict[str, Any]) -> str:
    area = facts["metadata"].study_area
    time_range = facts["metadata"].time_range
    stats = facts["statistics"]

    return f"""Generate an introduction for an urban heat island research report with the following exact specifications:

STUDY AREA DATA:
- Area: {area.area_km2} km²
- Centroid Coordinates: {area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E
- Geographic Bounds: North {area.bounds.north:.4f}°, South {area.bounds.south:.4f}°, East {area.bounds.east:.4f}°, West {area.bounds.west:.4f}°
- Location Description: {area.coordinates_description}

TEMPORAL DATA:
- Analysis Period: {time_range.start} to {time_range.end}
- Duration: {time_range.duration_days} days
- Season: {time_range.season}
- Year: {time_range.year}

METHODOLOGY:
- Layers Processed: {stats.layers_processed}
- Data Points: {stats.total_data_points:,}

REQUIREMENTS:
1. Identify the geographic location based on coordinates (e.g., "National Capital Territory of Delhi, India")
2. Describe the spatial extent and geographic context accurately
3. Explain the seasonal timing significance for urban heat analysis
4. Mention the report generation date: {date.today().isoformat()}
5. Use exact numerical values provided - do not approximate or invent numbers
6. Provide a complete introduction with proper conclusion - no truncated sentences

Provide a comprehensive introduction (3-4 paragraphs) for the research report."""


def layer_task(facts: Dict[str, Any]) -> str:
    layer = facts["layer"]
    stats = layer.statistics

    return f"""Analyze the {layer.name} layer with exact statistical values:
- Mean: {_f(stats.mean)}
- Minimum: {_f(stats.min)}
- Maximum: {_f(stats.max)}
- Standard Deviation: {_f(stats.std_dev)}

Provide a focused interpretation that:
1. Explains what these specific values indicate about urban thermal characteristics
2. Uses the exact numerical values provided - no approximations
3. Relates to urban heat island phenomena
4. Maintains scientific accuracy
5. Provides complete analysis in 2-3 paragraphs with proper conclusions

IMPORTANT: Ensure the analysis is comprehensive and does not end abruptly."""


def supplementary_task(facts: Dict[str, Any]) -> str:
    keys = facts["additional_layers"]
    area = facts["metadata"].study_area

    return f"""Analyze supplementary urban heat vulnerability assessment incorporating {', '.join(keys)} layers for a {area.area_km2} km² area.

Focus on multi-factor risk assessment using the available data layers. Provide comprehensive analysis of:
1. Vulnerability patterns and their spatial distribution
2. Urban planning implications and mitigation strategies
3. Socioeconomic dimensions of heat vulnerability
4. Evidence-based recommendations

Ensure the analysis is complete with proper conclusions and does not truncate mid-thought."""


def conclusion_task(facts: Dict[str, Any]) -> str:
    metadata = facts["metadata"]
    summary = ", ".join(
        f"{layer.name} (mean: {_f(layer.statistics.mean, 2)})" for layer in facts["layers"]
    ) or "no primary layers"

    return f"""Provide a comprehensive concluding summary for an urban heat island research report analyzing {metadata.study_area.area_km2} km² during {metadata.time_range.season} {metadata.time_range.year}.

Key parameters include: {summary}.

Synthesize the principal findings about urban thermal patterns and their implications for:
1. Urban planning and design strategies
2. Climate adaptation and mitigation measures
3. Public health and community resilience
4. Future research directions

CRITICAL: Ensure the conclusion is fully complete with no truncated sentences. Provide a proper summary that ties together all analytical findings."""


# ═══════════════════════════════════════════════════════════════════════════════
# DETERMINISTIC FALLBACKS
# ═══════════════════════════════════════════════════════════════════════════════

def fallback_introduction(facts: Dict[str, Any]) -> str:
    area = facts["metadata"].study_area
    time_range = facts["metadata"].time_range
    stats = facts["statistics"]
    season = time_range.season.lower()

    return (
        f"{ANALYSIS_PREFIX}\n"
        f"This research report presents an urban heat island analysis for a {area.area_km2} km² study area "
        f"centered at {area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E. The analysis covers the {season} "
        f"season from {time_range.start} to {time_range.end}, comprising {time_range.duration_days} days of "
        f"satellite observations.\n\n"
        f"The {season} timing shapes the observed heat island intensity through solar radiation and heat "
        f"accumulation in the built environment. This analysis uses {stats.layers_processed} primary "
        f"environmental parameters processed from {stats.total_data_points:,} data points."
    )


def fallback_layer(facts: Dict[str, Any]) -> str:
    layer = facts["layer"]
    stats = layer.statistics

    if not stats.is_complete:
        return (
            f"{ANALYSIS_PREFIX}\n"
            f"Insufficient statistical data available for comprehensive analysis of {layer.name}. "
            f"Additional data collection would enhance the analytical robustness."
        )

    variability = "significant" if stats.std_dev > abs(stats.mean) * 0.5 else "moderate"
    return (
        f"{ANALYSIS_PREFIX}\n"
        f"The {layer.name} layer shows a mean value of {stats.mean:.4f} with a range from {stats.min:.4f} "
        f"to {stats.max:.4f} and a standard deviation of {stats.std_dev:.4f}, indicating {variability} "
        f"spatial variability. This pattern reflects urban environmental characteristics that influence "
        f"local climate conditions and urban heat island development."
    )


def fallback_supplementary(facts: Dict[str, Any]) -> str:
    keys = facts["additional_layers"]
    if not keys:
        return (
            f"{ANALYSIS_PREFIX}\n"
            "No supplementary vulnerability layers were generated for this analysis. The assessment focuses "
            "on primary thermal and vegetation parameters."
        )
    return (
        f"{ANALYSIS_PREFIX}\n"
        f"Supplementary vulnerability assessment incorporates {len(keys)} additional data layers "
        f"({', '.join(keys)}), which provide context for understanding heat risk distribution across the "
        f"study area and inform targeted intervention strategies for urban climate resilience."
    )


def fallback_conclusion(facts: Dict[str, Any]) -> str:
    metadata = facts["metadata"]
    return (
        f"{ANALYSIS_PREFIX}\n"
        f"This urban heat island analysis reveals thermal patterns across the "
        f"{metadata.study_area.area_km2} km² study area during {metadata.time_range.season} "
        f"{metadata.time_range.year}. The findings provide a basis for urban planning and climate adaptation "
        f"strategies, highlighting areas where targeted interventions could mitigate heat-related risks."
    )


SECTION_TASKS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    SECTION_INTRODUCTION: introduction_task,
    SECTION_LAYER: layer_task,
    SECTION_SUPPLEMENTARY: supplementary_task,
    SECTION_CONCLUSION: conclusion_task,
}

SECTION_FALLBACKS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    SECTION_INTRODUCTION: fallback_introduction,
    SECTION_LAYER: fallback_layer,
    SECTION_SUPPLEMENTARY: fallback_supplementary,
    SECTION_CONCLUSION: fallback_conclusion,
}
