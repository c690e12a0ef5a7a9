from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Literal, Sequence
import json
import logging
import re

import pandas as pd
import plotly.graph_objects as go

from datamind.models.schemas import ChartSpec, VisualizationDraft

logger = logging.getLogger(__name__)

ColumnKind = Literal["numeric", "categorical", "date", "text"]

SAMPLE_SIZE = 10
MAX_CATEGORIES = 20
PIE_MAX_SLICES = 10

# Checked in order; the first keyword found in the request wins
CHART_KEYWORDS = [
    ("bar", ("bar chart", "bar graph")),
    ("line", ("line chart", "line graph")),
    ("pie", ("pie chart", "pie graph")),
    ("scatter", ("scatter",)),
    ("histogram", ("histogram",)),
]

CHART_TYPES = {chart_type for chart_type, _ in CHART_KEYWORDS}

_TITLE_VERBS = re.compile(r'^\s*(show|display|create|generate)\s+(me\s+)?', re.IGNORECASE)

@dataclass
class ColumnProfile:
    name: str
    kind: ColumnKind
    unique_values: int

class VisualizationService:
    """Pick a chart type for a result set and emit a Plotly spec"""

    def __init__(self):
        self.default_layout = {
            "font": {"family": "Inter, Arial, sans-serif"},
            "showlegend": True,
            "hovermode": "closest",
            "margin": {"l": 60, "r": 30, "t": 50, "b": 60}
        }

    def infer_column_type(self, values: Sequence[Any]) -> ColumnKind:
        sample = [v for v in values if v is not None and v != ""][:SAMPLE_SIZE]
        if not sample:
            return "text"

        series = pd.Series(sample, dtype=object)
        if all(not isinstance(v, bool) for v in sample) and pd.to_numeric(series, errors="coerce").notna().all():
            return "numeric"
        if self._all_dates(series):
            return "date"

        unique = len({str(v) for v in sample})
        if unique <= len(sample) * 0.5 and unique <= MAX_CATEGORIES:
            return "categorical"
        return "text"

    @staticmethod
    def _all_dates(series: pd.Series) -> bool:
        try:
            parsed = pd.to_datetime(series.astype(str), errors="coerce", format="mixed")
        except (ValueError, TypeError, OverflowError):
            return False
        return bool(parsed.notna().all())

    def analyze_data(self, rows: List[Dict[str, Any]]) -> List[ColumnProfile]:
        if not rows:
            return []
        df = pd.DataFrame(rows)
        return [
            ColumnProfile(
                name=str(column),
                kind=self.infer_column_type(df[column].tolist()),
                unique_values=int(df[column].astype(str).nunique()),
            )
            for column in df.columns
        ]

    def select_chart_type(self, profiles: List[ColumnProfile], user_request: str = "") -> str:
        text = (user_request or "").lower()
        for chart_type, keywords in CHART_KEYWORDS:
            if any(k in text for k in keywords):
                return chart_type

        numeric = [p for p in profiles if p.kind == "numeric"]
        categorical = [p for p in profiles if p.kind == "categorical"]

        if len(categorical) == 1 and len(numeric) == 1:
            return "bar"
        if len(numeric) >= 2:
            return "line"
        if len(categorical) == 1 and categorical[0].unique_values <= PIE_MAX_SLICES:
            return "pie"
        return "bar"

    def build_chart(self, rows: List[Dict[str, Any]], chart_type: str,
                    profiles: List[ColumnProfile], title: str) -> ChartSpec:
        df = pd.DataFrame(rows)
        numeric = [p.name for p in profiles if p.kind == "numeric"]
        dimension = self._dimension_column(profiles)

        if chart_type == "pie":
            traces = [self._pie_trace(df, dimension or df.columns[0], numeric)]
        elif chart_type == "histogram":
            target = numeric[0] if numeric else df.columns[0]
            traces = [go.Histogram(x=df[target].tolist(), name=str(target))]
        elif chart_type == "scatter":
            traces = [self._scatter_trace(df, dimension, numeric)]
        elif chart_type == "line":
            traces = self._line_traces(df, dimension, numeric)
        else:
            traces = [self._bar_trace(df, dimension or df.columns[0], numeric)]

        fig = go.Figure(data=traces)
        fig.update_layout(title={"text": title}, **self.default_layout)
        spec = json.loads(fig.to_json())
        spec.get("layout", {}).pop("template", None)

        return ChartSpec(
            data=spec.get("data", []),
            layout=spec.get("layout", {}),
            config={"responsive": True, "displayModeBar": True, "displaylogo": False},
        )

    @staticmethod
    def _dimension_column(profiles: List[ColumnProfile]) -> Optional[str]:
        for kind in ("categorical", "date", "text"):
            for p in profiles:
                if p.kind == kind:
                    return p.name
        return None

    @staticmethod
    def _bar_trace(df: pd.DataFrame, x: str, numeric: List[str]):
        values = [c for c in numeric if c != x]
        if values:
            return go.Bar(x=df[x].tolist(), y=df[values[0]].tolist(), name=str(values[0]))
        counts = df[x].astype(str).value_counts()
        return go.Bar(x=counts.index.tolist(), y=counts.tolist(), name="count")

    @staticmethod
    def _line_traces(df: pd.DataFrame, x: Optional[str], numeric: List[str]):
        if x is None:
            x, series = (numeric[0], numeric[1:]) if len(numeric) > 1 else (None, numeric)
        else:
            series = [c for c in numeric if c != x]
        x_values = df[x].tolist() if x else list(range(len(df)))
        return [
            go.Scatter(x=x_values, y=df[c].tolist(), mode="lines+markers", name=str(c))
            for c in series
        ] or [go.Scatter(x=x_values, y=df[df.columns[0]].tolist(), mode="lines+markers")]

    @staticmethod
    def _pie_trace(df: pd.DataFrame, labels: str, numeric: List[str]):
        values = [c for c in numeric if c != labels]
        if values:
            grouped = df.groupby(df[labels].astype(str))[values[0]].sum()
        else:
            grouped = df[labels].astype(str).value_counts()
        return go.Pie(labels=grouped.index.tolist(), values=grouped.tolist())

    @staticmethod
    def _scatter_trace(df: pd.DataFrame, dimension: Optional[str], numeric: List[str]):
        if len(numeric) >= 2:
            x, y = numeric[0], numeric[1]
        else:
            x = dimension or df.columns[0]
            y = numeric[0] if numeric else df.columns[-1]
        return go.Scatter(x=df[x].tolist(), y=df[y].tolist(), mode="markers", name=f"{y} vs {x}")

    @staticmethod
    def generate_title(user_request: str) -> str:
        title = _TITLE_VERBS.sub("", (user_request or "").strip()).strip().rstrip("?.!")
        if not title:
            return "Query results"
        return title[0].upper() + title[1:]

    @staticmethod
    def generate_description(chart_type: str, rows: List[Dict[str, Any]], column_count: int) -> str:
        return f"{chart_type.capitalize()} chart showing {len(rows)} data points across {column_count} columns."

    def create_visualization(self, rows: List[Dict[str, Any]], sql_query: Optional[str] = None,
                             user_request: str = "",
                             chart_type: Optional[str] = None) -> Optional[VisualizationDraft]:
        """Build a chart for a result set; empty results produce nothing.

        An explicit ``chart_type`` wins over keywords in the request and over
        the data-shape heuristic.
        """
        if not rows:
            return None

        profiles = self.analyze_data(rows)
        if chart_type not in CHART_TYPES:
            chart_type = self.select_chart_type(profiles, user_request)
        title = self.generate_title(user_request)

        try:
            spec = self.build_chart(rows, chart_type, profiles, title)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Could not build {chart_type} chart: {e}")
            return None

        return VisualizationDraft(
            title=title,
            description=self.generate_description(chart_type, rows, len(profiles)),
            chart_type=chart_type,
            chart_config=spec,
            data=rows,
            sql_query=sql_query,
        )

    def suggest_visualizations(self, profiles: List[ColumnProfile]) -> List[str]:
        numeric = [p.name for p in profiles if p.kind == "numeric"]
        categorical = [p.name for p in profiles if p.kind == "categorical"]
        dates = [p.name for p in profiles if p.kind == "date"]

        suggestions = []
        if categorical and numeric:
            suggestions.append(f"Bar chart of {numeric[0]} by {categorical[0]}")
        if dates and numeric:
            suggestions.append(f"Line chart of {numeric[0]} over {dates[0]}")
        if len(numeric) >= 2:
            suggestions.append(f"Scatter plot of {numeric[1]} against {numeric[0]}")
        if numeric:
            suggestions.append(f"Histogram of {numeric[0]}")
        for p in profiles:
            if p.kind == "categorical" and p.unique_values <= PIE_MAX_SLICES:
                suggestions.append(f"Pie chart of {p.name} share")
                break
        return suggestions
