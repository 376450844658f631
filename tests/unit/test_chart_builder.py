"""Tests for pgfplots chart rendering."""
import pytest

from backend.editor.chart_builder import build_chart
from backend.shared.errors import ValidationError
from backend.shared.models import ChartData, ChartOptions

YEARS = ChartData(
    labels=["2020", "2021", "2022"],
    datasets=[
        {"label": "Coral cover", "data": [41, 37.5, 33]},
        {"label": "Algae", "data": [12, 15, 19]},
    ],
)


class TestAxisCharts:
    """Tests for bar, line, scatter and area charts."""

    def test_bar_chart(self):
        latex = build_chart(YEARS, ChartOptions(type="bar", title="Reef health"))
        assert latex.startswith("\\begin{figure}[h]")
        assert latex.endswith("\\end{figure}")
        assert "  ybar," in latex
        assert "xticklabels={{2020},{2021},{2022}}" in latex
        assert "coordinates {(0, 41) (1, 37.5) (2, 33)};" in latex
        assert latex.count("\\addplot[") == 2
        assert "\\caption{Reef health}" in latex

    def test_line_chart_without_legend(self):
        latex = build_chart(YEARS, ChartOptions(type="line", legend=False))
        assert "ybar" not in latex
        assert "\\addlegendentry" not in latex
        assert "legend pos" not in latex
        assert "\\caption" not in latex

    def test_scatter_and_area_styles(self):
        assert "only marks" in build_chart(YEARS, ChartOptions(type="scatter"))
        assert "\\closedcycle;" in build_chart(YEARS, ChartOptions(type="area"))

    def test_axis_titles_and_limits_are_escaped(self):
        options = ChartOptions(axes={"y": {"title": "Cover (%)", "min": 0, "max": 100}})
        latex = build_chart(YEARS, options)
        assert "ylabel={Cover (\\%)}" in latex
        assert "ymin=0" in latex
        assert "ymax=100" in latex

    def test_length_mismatch(self):
        data = ChartData(labels=["a", "b"], datasets=[{"label": "S", "data": [1]}])
        with pytest.raises(ValidationError) as exc_info:
            build_chart(data, ChartOptions())
        assert exc_info.value.details == {"dataset": "S"}


class TestPieCharts:
    """Tests for pgf-pie output."""

    def test_percentages_from_first_dataset(self):
        data = ChartData(labels=["Hard coral", "Algae & sponge"], datasets=[{"label": "Share", "data": [3, 1]}])
        latex = build_chart(data, ChartOptions(type="pie", width=8))
        assert "\\pie[radius=4, text=legend]{75.0/{Hard coral}, 25.0/{Algae \\& sponge}}" in latex
        assert "\\begin{axis}" not in latex

    @pytest.mark.parametrize("values", [[0, 0], [5, -1]])
    def test_unusable_values(self, values):
        data = ChartData(labels=["a", "b"], datasets=[{"label": "S", "data": values}])
        with pytest.raises(ValidationError):
            build_chart(data, ChartOptions(type="pie"))
