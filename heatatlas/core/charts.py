"""
HeatAtlas Chart Markup
Histogram and legend graphics for the report document.

Pure functions of their inputs: no network, no filesystem, identical input
gives byte-identical output. ``histogram_geometry`` is the single source of
bar/axis positions; the SVG writer here and the PDF renderer both draw
from it.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

# Base RGB per layer, scaled by bar intensity
LAYER_BASE_COLORS: Dict[str, Tuple[int, int, int]] = {
    "LST": (220, 80, 80),
    "UHI": (80, 120, 220),
    "NDVI": (80, 180, 80),
    "NDBI": (180, 120, 80),
    "UTFVI": (160, 80, 160),
}
DEFAULT_BASE_COLOR = (150, 150, 150)

PADDING = 30
GRID_LINES = 4
MAX_AXIS_LABELS = 5


# ============================================================================
# GEOMETRY
# ============================================================================

@dataclass
class HistogramStats:
    mean: float
    mode: float
    total: float


@dataclass
class Bar:
    x: float
    y: float
    width: float
    height: float
    rgb: Tuple[int, int, int]


@dataclass
class HistogramGeometry:
    width: float
    height: float
    padding: float
    max_bar_height: float
    bars: List[Bar] = field(default_factory=list)
    ticks: List[Tuple[float, str]] = field(default_factory=list)
    grid_ys: List[float] = field(default_factory=list)
    stats: Optional[HistogramStats] = None

    @property
    def baseline_y(self) -> float:
        return self.height - self.padding


def format_axis_label(value: float) -> str:
    """Fewer decimals for larger magnitudes."""
    magnitude = abs(value)
    if magnitude >= 100:
        return f"{value:.0f}"
    if magnitude >= 10:
        return f"{value:.1f}"
    if magnitude >= 1:
        return f"{value:.2f}"
    return f"{value:.3f}"


def layer_color(layer_name: str, intensity: float) -> Tuple[int, int, int]:
    base = LAYER_BASE_COLORS.get(layer_name.upper(), DEFAULT_BASE_COLOR)
    return tuple(int(channel * intensity) for channel in base)


def histogram_stats(counts: Sequence[float], means: Sequence[float]) -> Optional[HistogramStats]:
    """Count-weighted mean, modal bucket mean and total count; None for an empty histogram."""
    total = sum(counts)
    if total == 0 or len(counts) != len(means):
        return None

    weighted = sum(count * mean for count, mean in zip(counts, means))
    mode_index = list(counts).index(max(counts))
    return HistogramStats(mean=weighted / total, mode=means[mode_index], total=total)


def histogram_geometry(
    counts: Sequence[float],
    means: Sequence[float],
    layer_name: str,
    width: float = 280,
    height: float = 120,
) -> Optional[HistogramGeometry]:
    """
    Lay out a histogram trimmed to its first..last non-zero bucket.

    Returns None when there is nothing to draw (no buckets, all zero, or
    counts and means of different lengths).
    """
    if not counts or len(counts) != len(means):
        return None

    non_zero = [i for i, value in enumerate(counts) if value > 0]
    if not non_zero:
        return None

    first, last = non_zero[0], non_zero[-1]
    visible = list(counts[first:last + 1])
    visible_means = list(means[first:last + 1])

    max_value = max(visible)
    bar_width = max(2, (width - 40) / len(visible))
    max_bar_height = height - PADDING - 20

    geometry = HistogramGeometry(
        width=width,
        height=height,
        padding=PADDING,
        max_bar_height=max_bar_height,
        stats=histogram_stats(counts, means),
    )

    for i, value in enumerate(visible):
        if value == 0:
            continue
        bar_height = (value / max_value) * max_bar_height
        intensity = min(1.0, value / max_value * 1.5)
        geometry.bars.append(Bar(
            x=PADDING + i * bar_width,
            y=height - PADDING - bar_height,
            width=bar_width * 0.8,
            height=bar_height,
            rgb=layer_color(layer_name, intensity),
        ))

    label_count = min(MAX_AXIS_LABELS, len(visible_means))
    label_step = max(1, len(visible_means) // label_count)
    for i in range(label_count):
        index = min(i * label_step, len(visible_means) - 1)
        x = PADDING + (index / len(visible_means)) * (width - PADDING - 10)
        geometry.ticks.append((x, format_axis_label(visible_means[index])))

    geometry.grid_ys = [
        height - PADDING - (i / GRID_LINES) * max_bar_height for i in range(GRID_LINES + 1)
    ]
    return geometry


# ============================================================================
# SVG
# ============================================================================

def _n(value: float) -> str:
    return f"{value:.2f}"


def _rgb(rgb: Tuple[int, int, int]) -> str:
    return f"rgb({rgb[0]}, {rgb[1]}, {rgb[2]})"


def histogram_svg(
    counts: Sequence[float],
    means: Sequence[float],
    layer_name: str,
    width: float = 280,
    height: float = 120,
) -> Optional[str]:
    geometry = histogram_geometry(counts, means, layer_name, width, height)
    if geometry is None:
        return None

    name = escape(layer_name)
    base_y = geometry.baseline_y
    parts = [
        f'<svg width="{_n(width)}" height="{_n(height)}" xmlns="http://www.w3.org/2000/svg">',
        f"<title>{name} Distribution Histogram</title>",
        f'<rect width="{_n(width)}" height="{_n(height)}" fill="#f8f9fa" stroke="#dee2e6" stroke-width="1"/>',
    ]

    for y in geometry.grid_ys:
        parts.append(
            f'<line x1="{_n(PADDING)}" y1="{_n(y)}" x2="{_n(width - 10)}" y2="{_n(y)}" '
            f'stroke="#e9ecef" stroke-width="0.5" stroke-dasharray="2,2"/>'
        )

    for bar in geometry.bars:
        parts.append(
            f'<rect x="{_n(bar.x)}" y="{_n(bar.y)}" width="{_n(bar.width)}" height="{_n(bar.height)}" '
            f'fill="{_rgb(bar.rgb)}" opacity="0.8" stroke="#2c3e50" stroke-width="0.3"/>'
        )

    parts.append(
        f'<line x1="{_n(PADDING)}" y1="{_n(base_y)}" x2="{_n(width - 10)}" y2="{_n(base_y)}" '
        f'stroke="#495057" stroke-width="1.5"/>'
    )
    for x, label in geometry.ticks:
        parts.append(
            f'<line x1="{_n(x)}" y1="{_n(base_y)}" x2="{_n(x)}" y2="{_n(base_y + 5)}" '
            f'stroke="#495057" stroke-width="1"/>'
        )
        parts.append(
            f'<text x="{_n(x)}" y="{_n(base_y + 15)}" text-anchor="middle" font-size="9" '
            f'fill="#6c757d" font-family="Arial, sans-serif">{label}</text>'
        )
    parts.append(
        f'<text x="15" y="{_n(height / 2)}" text-anchor="middle" font-size="9" fill="#6c757d" '
        f'transform="rotate(-90, 15, {_n(height / 2)})" font-family="Arial, sans-serif">Frequency</text>'
    )

    parts.append(
        f'<text x="{_n(width / 2)}" y="15" text-anchor="middle" font-size="11" font-weight="600" '
        f'fill="#2c3e50">{name} Distribution</text>'
    )

    stats = geometry.stats
    if stats is not None:
        lines = (
            f"μ={stats.mean:.2f}",
            f"mode={stats.mode:.2f}",
            f"n={stats.total:,.0f}",
        )
        for offset, text in zip((25, 35, 45), lines):
            parts.append(
                f'<text x="{_n(width - 10)}" y="{offset}" text-anchor="end" font-size="8" '
                f'fill="#6c757d" font-family="Arial, sans-serif">{text}</text>'
            )

    parts.append("</svg>")
    return "\n".join(parts)


def _hex(color: str) -> str:
    if color.startswith("#") or not all(c in "0123456789abcdefABCDEF" for c in color):
        return color
    return f"#{color}"


def legend_svg(vis_params: Dict, layer_name: str, width: float = 200, height: float = 25) -> Optional[str]:
    """Horizontal gradient legend from a ``{min, max, palette}`` dict."""
    if not vis_params or not vis_params.get("palette"):
        return None

    palette = vis_params["palette"]
    name = escape(layer_name)
    parts = [f'<svg width="{_n(width)}" height="{_n(height)}" xmlns="http://www.w3.org/2000/svg">']

    if len(palette) > 1:
        gradient_id = "gradient-" + "-".join(layer_name.split())
        parts.append(f'<defs><linearGradient id="{gradient_id}" x1="0%" y1="0%" x2="100%" y2="0%">')
        for index, color in enumerate(palette):
            offset = index / (len(palette) - 1) * 100
            parts.append(f'<stop offset="{_n(offset)}%" stop-color="{_hex(color)}"/>')
        parts.append("</linearGradient></defs>")
        parts.append(f'<rect x="0" y="5" width="{_n(width)}" height="15" fill="url(#{gradient_id})"/>')
    else:
        parts.append(f'<rect x="0" y="5" width="{_n(width)}" height="15" fill="{_hex(palette[0])}"/>')

    minimum = vis_params.get("min")
    maximum = vis_params.get("max")
    if minimum is not None:
        parts.append(
            f'<text x="0" y="23" font-size="8" fill="#495057" '
            f'font-family="Arial, sans-serif">{format_axis_label(minimum)}</text>'
        )
    if maximum is not None:
        parts.append(
            f'<text x="{_n(width)}" y="23" text-anchor="end" font-size="8" fill="#495057" '
            f'font-family="Arial, sans-serif">{format_axis_label(maximum)}</text>'
        )
    parts.append(
        f'<text x="{_n(width / 2)}" y="23" text-anchor="middle" font-size="8" fill="#495057" '
        f'font-family="Arial, sans-serif">{name}</text>'
    )
    parts.append("</svg>")
    return "\n".join(parts)
