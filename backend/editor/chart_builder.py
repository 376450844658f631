"""
Chart builder - renders chart data as pgfplots / pgf-pie LaTeX figures.

Bar, line, scatter and area charts become a ``tikzpicture`` with an ``axis``;
pie charts use the first dataset only.
"""
import logging
from typing import List

from backend.rendering.latex_formatter import escape_latex
from backend.shared.errors import ValidationError
from backend.shared.models import ChartData, ChartOptions

logger = logging.getLogger(__name__)

PLOT_COLORS = ["blue", "red", "green", "orange", "purple", "brown"]


def _number(value: float) -> str:
    return f"{value:g}"


def _validate(data: ChartData, options: ChartOptions) -> None:
    for dataset in data.datasets:
        if len(dataset.data) != len(data.labels):
            raise ValidationError(
                f"Dataset '{dataset.label}' has {len(dataset.data)} values for {len(data.labels)} labels",
                details={"dataset": dataset.label}
            )
    if options.type == "pie":
        values = data.datasets[0].data
        if any(v < 0 for v in values):
            raise ValidationError("Pie chart values must not be negative")
        if sum(values) <= 0:
            raise ValidationError("Pie chart values must sum to more than zero")


def _axis_options(data: ChartData, options: ChartOptions) -> List[str]:
    axes = options.axes
    lines = [
        f"width={_number(options.width)}cm",
        f"height={_number(options.height)}cm",
        f"xlabel={{{escape_latex(axes.x.title or '')}}}",
        f"ylabel={{{escape_latex(axes.y.title or '')}}}",
        f"title={{{escape_latex(options.title or '')}}}",
        f"grid={'major' if options.grid else 'none'}",
        "xtick={" + ",".join(str(i) for i in range(len(data.labels))) + "}",
        "xticklabels={" + ",".join(f"{{{escape_latex(label)}}}" for label in data.labels) + "}",
    ]
    if options.type == "bar":
        lines += ["ybar", "bar width=0.6cm"]
    if options.legend:
        lines += ["legend pos=north west", r"legend style={font=\footnotesize}"]
    for name, axis in (("x", axes.x), ("y", axes.y)):
        if axis.min is not None:
            lines.append(f"{name}min={_number(axis.min)}")
        if axis.max is not None:
            lines.append(f"{name}max={_number(axis.max)}")
    return lines


def _plot_style(chart_type: str, index: int) -> str:
    color = PLOT_COLORS[index % len(PLOT_COLORS)]
    if chart_type == "bar":
        return f"fill={color}!{30 + index * 20}, draw={color}!70"
    if chart_type == "scatter":
        return f"color={color}, only marks, mark=*"
    if chart_type == "area":
        return f"fill={color}!20, draw={color}, thick"
    return f"color={color}, mark=*, thick"


def _axis_chart(data: ChartData, options: ChartOptions) -> List[str]:
    lines = [r"\begin{tikzpicture}", r"\begin{axis}["]
    lines += [f"  {option}," for option in _axis_options(data, options)]
    lines.append("]")

    for index, dataset in enumerate(data.datasets):
        coordinates = " ".join(f"({i}, {_number(v)})" for i, v in enumerate(dataset.data))
        closing = r" \closedcycle;" if options.type == "area" else ";"
        lines.append(f"\\addplot[{_plot_style(options.type, index)}] coordinates {{{coordinates}}}{closing}")
        if options.legend:
            lines.append(f"\\addlegendentry{{{escape_latex(dataset.label)}}}")

    lines += [r"\end{axis}", r"\end{tikzpicture}"]
    return lines


def _pie_chart(data: ChartData, options: ChartOptions) -> List[str]:
    values = data.datasets[0].data
    total = sum(values)
    slices = ", ".join(
        f"{value / total * 100:.1f}/{{{escape_latex(label)}}}"
        for label, value in zip(data.labels, values)
    )
    radius = _number(options.width / 2)
    text = "legend" if options.legend else "label"
    return [r"\begin{tikzpicture}", f"\\pie[radius={radius}, text={text}]{{{slices}}}", r"\end{tikzpicture}"]


def build_chart(data: ChartData, options: ChartOptions) -> str:
    """
    Render chart data as a LaTeX figure.

    Args:
        data: Labels and one or more datasets of equal length
        options: Chart type, size (cm), axes and legend settings

    Returns:
        A ``figure`` environment ready to be used as CHART section content

    Raises:
        ValidationError: dataset lengths do not match the labels, or pie values are unusable
    """
    _validate(data, options)

    body = _pie_chart(data, options) if options.type == "pie" else _axis_chart(data, options)
    lines = [r"\begin{figure}[h]", r"\centering", *body]
    if options.title:
        lines.append(f"\\caption{{{escape_latex(options.title)}}}")
    lines.append(r"\end{figure}")

    logger.debug(f"Built {options.type} chart with {len(data.datasets)} datasets and {len(data.labels)} labels")
    return "\n".join(lines)
