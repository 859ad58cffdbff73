"""
HeatAtlas Report Document Renderer
===================================
Turns the enriched report data and its narratives into deliverable documents:

- ``UHI_Research_Report.pdf``  A4, reportlab platypus story
- ``UHI_Research_Report.html`` same sections with inline SVG histograms and legends
- ``UHI_Research_Report.txt``  plain-text rendition, written only when the PDF fails

reportlab is synchronous and CPU bound, so every build runs in a worker
thread.
"""

import asyncio
import html
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from reportlab.graphics.shapes import Drawing, Line, Rect, String
from reportlab.lib import colors
from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from heatatlas.core.charts import histogram_geometry, histogram_svg, legend_svg
from heatatlas.core.visualization import vis_params_for
from heatatlas.schemas.analysis import MetricLayer
from heatatlas.schemas.report import EnhancedReportData, InsightSet
from heatatlas.utils.exceptions import RenderingError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

DOCUMENT_BASE_NAME = "UHI_Research_Report"
REPORT_TITLE = "Urban Heat Island Analysis Report"

# Design constants
PRIMARY_DARK = HexColor("#2c3e50")
ACCENT = HexColor("#c0392b")
CARD_BG = HexColor("#f8f9fa")
BORDER = HexColor("#dee2e6")
TABLE_HEADER_BG = HexColor("#2c3e50")
TABLE_ALT_ROW = HexColor("#f4f6f7")
TEXT_MUTED = HexColor("#6c757d")

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 0.75 * inch
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN


# ============================================================================
# TEXT HELPERS
# ============================================================================

_BOLD = re.compile(r"\*\*(.+?)\*\*")


def narrative_paragraphs(text: str) -> List[str]:
    """Split narration into paragraphs, dropping blank lines."""
    return [block.strip() for block in re.split(r"\n\s*\n|\n", text or "") if block.strip()]


def to_markup(text: str) -> str:
    """Escape for reportlab's mini-markup and turn ``**bold**`` into ``<b>``."""
    return _BOLD.sub(r"<b>\1</b>", html.escape(text, quote=False))


def strip_markdown(text: str) -> str:
    return _BOLD.sub(r"\1", text)


def _stat(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.4f}"


# ============================================================================
# PDF
# ============================================================================

def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="ReportTitle",
        parent=styles["Heading1"],
        fontSize=26,
        leading=32,
        textColor=PRIMARY_DARK,
        alignment=TA_CENTER,
        spaceAfter=12,
        fontName="Helvetica-Bold",
    ))
    styles.add(ParagraphStyle(
        name="ReportSubtitle",
        parent=styles["Normal"],
        fontSize=12,
        leading=16,
        textColor=TEXT_MUTED,
        alignment=TA_CENTER,
        spaceAfter=24,
    ))
    styles.add(ParagraphStyle(
        name="ReportSectionHeader",
        parent=styles["Heading2"],
        fontSize=15,
        leading=19,
        textColor=PRIMARY_DARK,
        spaceBefore=18,
        spaceAfter=10,
        fontName="Helvetica-Bold",
    ))
    styles.add(ParagraphStyle(
        name="ReportLayerHeader",
        parent=styles["Heading3"],
        fontSize=12,
        leading=15,
        textColor=ACCENT,
        spaceBefore=12,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name="ReportBody",
        parent=styles["Normal"],
        fontSize=10,
        leading=15,
        alignment=TA_JUSTIFY,
        spaceAfter=8,
    ))
    styles.add(ParagraphStyle(
        name="ReportCaption",
        parent=styles["Normal"],
        fontSize=8,
        leading=11,
        textColor=TEXT_MUTED,
        alignment=TA_CENTER,
        spaceAfter=10,
    ))
    return styles


def histogram_drawing(layer: MetricLayer, width: float = 280, height: float = 120) -> Optional[Drawing]:
    """reportlab drawing of the same layout the SVG histogram uses (y axis flipped)."""
    if layer.histogram is None:
        return None
    geometry = histogram_geometry(layer.histogram.histogram, layer.histogram.bucket_means, layer.name, width, height)
    if geometry is None:
        return None

    def flip(y: float) -> float:
        return height - y

    drawing = Drawing(width, height)
    drawing.add(Rect(0, 0, width, height, fillColor=CARD_BG, strokeColor=BORDER, strokeWidth=1))

    for y in geometry.grid_ys:
        drawing.add(Line(geometry.padding, flip(y), width - 10, flip(y), strokeColor=BORDER, strokeWidth=0.5))

    for bar in geometry.bars:
        r, g, b = bar.rgb
        drawing.add(Rect(
            bar.x,
            flip(bar.y + bar.height),
            bar.width,
            bar.height,
            fillColor=colors.Color(r / 255, g / 255, b / 255, alpha=0.8),
            strokeColor=PRIMARY_DARK,
            strokeWidth=0.3,
        ))

    base_y = flip(geometry.baseline_y)
    drawing.add(Line(geometry.padding, base_y, width - 10, base_y, strokeColor=PRIMARY_DARK, strokeWidth=1.5))
    for x, label in geometry.ticks:
        drawing.add(String(x, base_y - 12, label, fontSize=7, fillColor=TEXT_MUTED, textAnchor="middle"))

    drawing.add(String(width / 2, height - 14, f"{layer.name} Distribution", fontSize=9,
                       fontName="Helvetica-Bold", fillColor=PRIMARY_DARK, textAnchor="middle"))

    if geometry.stats is not None:
        stats = geometry.stats
        for offset, text in zip((25, 35, 45), (f"mean={stats.mean:.2f}", f"mode={stats.mode:.2f}",
                                               f"n={stats.total:,.0f}")):
            drawing.add(String(width - 10, height - offset, text, fontSize=7, fillColor=TEXT_MUTED,
                               textAnchor="end"))
    return drawing


def _info_card(title: str, rows: List[List[str]], styles) -> Table:
    data = [[Paragraph(f"<b>{html.escape(title)}</b>", styles["Normal"]), ""]]
    data += [[Paragraph(label, styles["Normal"]), Paragraph(value, styles["Normal"])] for label, value in rows]
    card = Table(data, colWidths=[1.3 * inch, CONTENT_WIDTH / 2 - 1.45 * inch])
    card.setStyle(TableStyle([
        ("SPAN", (0, 0), (-1, 0)),
        ("BACKGROUND", (0, 0), (-1, -1), CARD_BG),
        ("BOX", (0, 0), (-1, -1), 0.5, BORDER),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return card


def _build_cover(enhanced: EnhancedReportData, styles) -> list:
    area = enhanced.metadata.study_area
    time_range = enhanced.metadata.time_range
    story = [
        Spacer(1, 1.6 * inch),
        Paragraph(REPORT_TITLE, styles["ReportTitle"]),
        Paragraph("Remote sensing assessment of land surface temperature, vegetation and built-up "
                  "patterns", styles["ReportSubtitle"]),
        HRFlowable(width="60%", thickness=1, color=ACCENT, hAlign="CENTER"),
        Spacer(1, 0.5 * inch),
    ]

    details = [
        ["STUDY AREA", f"{area.area_km2} km²"],
        ["CENTROID", f"{area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E"],
        ["ANALYSIS PERIOD", f"{time_range.start} to {time_range.end}"],
        ["SEASON", f"{time_range.season} {time_range.year}"],
        ["GENERATED", enhanced.metadata.processing_date],
    ]
    table = Table(details, colWidths=[1.8 * inch, 3.6 * inch])
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("TEXTCOLOR", (0, 0), (0, -1), TEXT_MUTED),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))
    story.append(table)
    story.append(PageBreak())
    return story


def _build_introduction(enhanced: EnhancedReportData, insights: InsightSet, styles) -> list:
    area = enhanced.metadata.study_area
    time_range = enhanced.metadata.time_range
    bounds = area.bounds

    geographic = _info_card("Geographic Information", [
        ["Area", f"{area.area_km2} km²"],
        ["Centroid", f"{area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E"],
        ["Bounds", f"N {bounds.north:.4f}°, S {bounds.south:.4f}°<br/>E {bounds.east:.4f}°, W {bounds.west:.4f}°"],
    ], styles)
    temporal = _info_card("Temporal Information", [
        ["Start", str(time_range.start)],
        ["End", str(time_range.end)],
        ["Duration", f"{time_range.duration_days} days"],
        ["Season", time_range.season],
    ], styles)
    cards = Table([[geographic, temporal]], colWidths=[CONTENT_WIDTH / 2] * 2)
    cards.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))

    story = [Paragraph("1. Introduction", styles["ReportSectionHeader"]), cards, Spacer(1, 0.2 * inch)]
    story += [Paragraph(to_markup(p), styles["ReportBody"]) for p in narrative_paragraphs(insights.introduction)]
    return story


def _build_results(enhanced: EnhancedReportData, styles) -> list:
    story = [PageBreak(), Paragraph("2. Analytical Results", styles["ReportSectionHeader"])]

    if not enhanced.layers:
        story.append(Paragraph("No metric layers were supplied for this report.", styles["ReportBody"]))
        return story

    rows = [["Layer", "Mean", "Min", "Max", "Std Dev"]]
    for layer in enhanced.layers:
        s = layer.statistics
        rows.append([layer.name, _stat(s.mean), _stat(s.min), _stat(s.max), _stat(s.std_dev)])

    table = Table(rows, colWidths=[CONTENT_WIDTH * 0.28] + [CONTENT_WIDTH * 0.18] * 4, repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), TABLE_HEADER_BG),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.25, BORDER),
    ]
    for row in range(2, len(rows), 2):
        style.append(("BACKGROUND", (0, row), (-1, row), TABLE_ALT_ROW))
    table.setStyle(TableStyle(style))
    story += [table, Spacer(1, 0.3 * inch)]

    for layer in enhanced.layers:
        drawing = histogram_drawing(layer)
        if drawing is None:
            continue
        story.append(KeepTogether([
            drawing,
            Paragraph(f"Figure: {html.escape(layer.name)} value distribution within the study area",
                      styles["ReportCaption"]),
        ]))
    return story


def _build_interpretations(enhanced: EnhancedReportData, insights: InsightSet, styles) -> list:
    story = [PageBreak(), Paragraph("3. Layer Interpretations", styles["ReportSectionHeader"])]
    for layer in enhanced.layers:
        text = insights.statistics_interpretations.get(layer.id)
        if not text:
            continue
        story.append(Paragraph(html.escape(layer.name), styles["ReportLayerHeader"]))
        story += [Paragraph(to_markup(p), styles["ReportBody"]) for p in narrative_paragraphs(text)]

    if enhanced.additional_layers:
        story.append(Paragraph("Supplementary Vulnerability Analysis", styles["ReportLayerHeader"]))
        story += [Paragraph(to_markup(p), styles["ReportBody"])
                  for p in narrative_paragraphs(insights.supplementary_analysis)]
    return story


def _build_conclusion(enhanced: EnhancedReportData, insights: InsightSet, styles) -> list:
    story = [Paragraph("4. Conclusion", styles["ReportSectionHeader"])]
    story += [Paragraph(to_markup(p), styles["ReportBody"]) for p in narrative_paragraphs(insights.conclusion)]
    story += [
        Spacer(1, 0.4 * inch),
        HRFlowable(width="100%", thickness=0.5, color=BORDER),
        Paragraph(
            f"Generated by HeatAtlas on {enhanced.metadata.processing_date}. Satellite data: Landsat 9 "
            f"Collection 2 Level 2. Narrative sections are machine generated from the statistics above.",
            styles["ReportCaption"],
        ),
    ]
    return story


def build_story(enhanced: EnhancedReportData, insights: InsightSet) -> list:
    styles = _styles()
    story = []
    story += _build_cover(enhanced, styles)
    story += _build_introduction(enhanced, insights, styles)
    story += _build_results(enhanced, styles)
    story += _build_interpretations(enhanced, insights, styles)
    story += _build_conclusion(enhanced, insights, styles)
    return story


def _page_decorations(area_km2: float):
    generated = datetime.now().strftime("%Y-%m-%d")

    def draw(canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(TEXT_MUTED)
        canvas.drawString(MARGIN, PAGE_HEIGHT - 0.5 * inch, f"{REPORT_TITLE} | {area_km2} km² study area")
        canvas.setStrokeColor(ACCENT)
        canvas.setLineWidth(1)
        canvas.line(MARGIN, PAGE_HEIGHT - 0.55 * inch, PAGE_WIDTH - MARGIN, PAGE_HEIGHT - 0.55 * inch)
        canvas.drawString(MARGIN, 0.4 * inch, f"Generated: {generated}")
        canvas.drawRightString(PAGE_WIDTH - MARGIN, 0.4 * inch, f"Page {canvas.getPageNumber()}")
        canvas.restoreState()

    return draw


def render_pdf(enhanced: EnhancedReportData, insights: InsightSet, path: Path) -> Path:
    """Build the PDF synchronously. Raises RenderingError on any reportlab failure."""
    try:
        doc = SimpleDocTemplate(
            str(path),
            pagesize=A4,
            rightMargin=MARGIN,
            leftMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=REPORT_TITLE,
            author="HeatAtlas",
            subject="Urban heat island analysis",
        )
        decorate = _page_decorations(enhanced.metadata.study_area.area_km2)
        doc.build(build_story(enhanced, insights), onFirstPage=decorate, onLaterPages=decorate)
    except Exception as e:
        path.unlink(missing_ok=True)
        raise RenderingError(f"PDF rendering failed: {e}") from e
    return path


# ============================================================================
# HTML
# ============================================================================

def _html_paragraphs(text: str) -> str:
    strong = r"<strong>\1</strong>"
    return "\n".join(
        "<p>" + _BOLD.sub(strong, html.escape(p)) + "</p>" for p in narrative_paragraphs(text)
    )


def render_html(enhanced: EnhancedReportData, insights: InsightSet) -> str:
    area = enhanced.metadata.study_area
    time_range = enhanced.metadata.time_range

    rows = "\n".join(
        f"<tr><td>{html.escape(layer.name)}</td><td>{_stat(layer.statistics.mean)}</td>"
        f"<td>{_stat(layer.statistics.min)}</td><td>{_stat(layer.statistics.max)}</td>"
        f"<td>{_stat(layer.statistics.std_dev)}</td></tr>"
        for layer in enhanced.layers
    )

    figures = []
    for layer in enhanced.layers:
        parts = []
        if layer.histogram is not None:
            svg = histogram_svg(layer.histogram.histogram, layer.histogram.bucket_means, layer.name)
            if svg:
                parts.append(svg)
        legend = legend_svg(vis_params_for(layer.id), layer.name)
        if legend:
            parts.append(legend)
        if parts:
            figures.append(f'<figure class="layer">{"".join(parts)}</figure>')

    figure_markup = "".join(figures)

    interpretations = "\n".join(
        f"<h3>{html.escape(layer.name)}</h3>\n"
        f"{_html_paragraphs(insights.statistics_interpretations.get(layer.id, ''))}"
        for layer in enhanced.layers
    )
    supplementary = (
        f"<h3>Supplementary Vulnerability Analysis</h3>\n{_html_paragraphs(insights.supplementary_analysis)}"
        if enhanced.additional_layers else ""
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{REPORT_TITLE}</title>
<style>
body {{ font-family: Arial, sans-serif; color: #2c3e50; max-width: 900px; margin: 0 auto; padding: 24px; }}
table {{ border-collapse: collapse; width: 100%; }}
th, td {{ border: 1px solid #dee2e6; padding: 6px; text-align: right; }}
th:first-child, td:first-child {{ text-align: left; }}
th {{ background: #2c3e50; color: #fff; }}
figure.layer {{ display: inline-block; margin: 8px; }}
</style>
</head>
<body>
<h1>{REPORT_TITLE}</h1>
<p>Study area: {area.area_km2} km² centred at {area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E
({html.escape(area.coordinates_description)})</p>
<p>Period: {time_range.start} to {time_range.end} ({time_range.duration_days} days, {time_range.season} {time_range.year})</p>
<h2>1. Introduction</h2>
{_html_paragraphs(insights.introduction)}
<h2>2. Analytical Results</h2>
<table>
<tr><th>Layer</th><th>Mean</th><th>Min</th><th>Max</th><th>Std Dev</th></tr>
{rows}
</table>
{figure_markup}
<h2>3. Layer Interpretations</h2>
{interpretations}
{supplementary}
<h2>4. Conclusion</h2>
{_html_paragraphs(insights.conclusion)}
<footer><small>Generated by HeatAtlas on {html.escape(enhanced.metadata.processing_date)}</small></footer>
</body>
</html>
"""


# ============================================================================
# PLAIN TEXT
# ============================================================================

def render_text(enhanced: EnhancedReportData, insights: InsightSet) -> str:
    area = enhanced.metadata.study_area
    time_range = enhanced.metadata.time_range
    rule = "=" * 72

    lines = [
        rule,
        REPORT_TITLE.upper(),
        rule,
        f"Study area: {area.area_km2} km²",
        f"Centroid: {area.centroid.lat:.4f}°N, {area.centroid.lng:.4f}°E",
        f"Bounds: {area.coordinates_description}",
        f"Period: {time_range.start} to {time_range.end} ({time_range.duration_days} days)",
        f"Season: {time_range.season} {time_range.year}",
        f"Generated: {enhanced.metadata.processing_date}",
        "",
        "1. INTRODUCTION",
        "-" * 72,
        strip_markdown(insights.introduction),
        "",
        "2. ANALYTICAL RESULTS",
        "-" * 72,
        f"{'Layer':<24}{'Mean':>12}{'Min':>12}{'Max':>12}{'Std Dev':>12}",
    ]
    for layer in enhanced.layers:
        s = layer.statistics
        lines.append(
            f"{layer.name:<24}{_stat(s.mean):>12}{_stat(s.min):>12}{_stat(s.max):>12}{_stat(s.std_dev):>12}"
        )

    lines += ["", "3. LAYER INTERPRETATIONS", "-" * 72]
    for layer in enhanced.layers:
        text = insights.statistics_interpretations.get(layer.id)
        if text:
            lines += [f"[{layer.name}]", strip_markdown(text), ""]
    if enhanced.additional_layers:
        lines += ["[Supplementary Vulnerability Analysis]", strip_markdown(insights.supplementary_analysis), ""]

    lines += ["4. CONCLUSION", "-" * 72, strip_markdown(insights.conclusion), ""]
    return "\n".join(lines)


# ============================================================================
# RENDERER
# ============================================================================

class DocumentRenderer:
    """Writes the report documents into a report directory."""

    def __init__(self, base_name: str = DOCUMENT_BASE_NAME):
        self.base_name = base_name

    async def render(self, enhanced: EnhancedReportData, insights: InsightSet, directory: Path) -> List[Path]:
        """
        Render every document for one report.

        Returns:
            Paths of the documents written (PDF or text, plus HTML when it succeeds)

        Raises:
            RenderingError: neither the PDF nor the plain-text rendition could be written
        """
        documents: List[Path] = []

        pdf_path = directory / f"{self.base_name}.pdf"
        try:
            documents.append(await asyncio.to_thread(render_pdf, enhanced, insights, pdf_path))
            logger.info("PDF report rendered", path=str(pdf_path))
        except RenderingError as e:
            logger.warning("PDF rendering failed, writing plain-text report", error=e.message)
            text_path = directory / f"{self.base_name}.txt"
            try:
                await asyncio.to_thread(text_path.write_text, render_text(enhanced, insights), "utf-8")
            except OSError as write_error:
                raise RenderingError(f"Plain-text report could not be written: {write_error}") from write_error
            documents.append(text_path)

        html_path = directory / f"{self.base_name}.html"
        try:
            await asyncio.to_thread(html_path.write_text, render_html(enhanced, insights), "utf-8")
            documents.append(html_path)
        except Exception as e:
            logger.warning("HTML report could not be written", error=str(e), exc_info=True)
            html_path.unlink(missing_ok=True)

        return documents


# Global renderer instance
document_renderer = DocumentRenderer()
