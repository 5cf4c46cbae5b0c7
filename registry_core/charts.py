from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def line_chart(
    labels: Sequence[str],
    series: Dict[str, Sequence[float]],
    *,
    title: str,
    y_title: str = "%",
) -> Dict[str, Any]:
    """Multi-series line chart over an ordered categorical x axis."""
    rows: List[Dict[str, Any]] = []
    for name, values in series.items():
        for label, value in zip(labels, values):
            rows.append({"label": label, "series": name, "value": value})
    df = pd.DataFrame(rows, columns=["label", "series", "value"])
    chart = (
        alt.Chart(df)
        .mark_line(point=True)
        .encode(
            x=alt.X("label:N", sort=list(labels), title=None),
            y=alt.Y("value:Q", title=y_title),
            color=alt.Color("series:N", title=None),
            tooltip=["label", "series", alt.Tooltip("value:Q", format=".1f")],
        )
        .properties(title=title, height=260)
    )
    return to_vega_spec(chart)


def bar_chart(
    items: Sequence[Dict[str, Any]],
    *,
    x: str,
    y: str,
    title: str,
    sort: Optional[Sequence[str]] = None,
    horizontal: bool = False,
) -> Dict[str, Any]:
    df = pd.DataFrame(list(items), columns=[x, y])
    x_enc = alt.X(f"{x}:N", sort=list(sort) if sort else None, title=None)
    y_enc = alt.Y(f"{y}:Q", title=None)
    if horizontal:
        enc = {"y": alt.Y(f"{x}:N", sort=list(sort) if sort else "-x", title=None), "x": alt.X(f"{y}:Q", title=None)}
    else:
        enc = {"x": x_enc, "y": y_enc}
    chart = alt.Chart(df).mark_bar().encode(tooltip=[x, y], **enc).properties(title=title, height=240)
    return to_vega_spec(chart)


def donut_chart(items: Sequence[Dict[str, Any]], *, category: str, value: str, title: str) -> Dict[str, Any]:
    df = pd.DataFrame(list(items), columns=[category, value])
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=60)
        .encode(
            theta=alt.Theta(f"{value}:Q"),
            color=alt.Color(f"{category}:N", title=None),
            tooltip=[category, alt.Tooltip(f"{value}:Q", format=".1f")],
        )
        .properties(title=title, height=240)
    )
    return to_vega_spec(chart)


def grouped_bar_chart(
    items: Sequence[Dict[str, Any]],
    *,
    x: str,
    series: Sequence[str],
    title: str,
    horizontal: bool = False,
) -> Dict[str, Any]:
    """Side-by-side bars, one per series column, keeping the row order of ``items``."""
    order = [row[x] for row in items]
    rows = [{x: row[x], "series": name, "value": row[name]} for row in items for name in series]
    df = pd.DataFrame(rows, columns=[x, "series", "value"])
    cat = alt.Y(f"{x}:N", sort=order, title=None) if horizontal else alt.X(f"{x}:N", sort=order, title=None)
    val = alt.X("value:Q", title=None) if horizontal else alt.Y("value:Q", title=None)
    offset = {"yOffset": "series:N"} if horizontal else {"xOffset": "series:N"}
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(cat, val, color=alt.Color("series:N", title=None), tooltip=[x, "series", "value"], **offset)
        .properties(title=title, height=260)
    )
    return to_vega_spec(chart)


def scatter_chart(
    items: Sequence[Dict[str, Any]],
    *,
    x: str,
    y: str,
    color: str,
    label: str,
    title: str,
    x_title: Optional[str] = None,
    y_title: Optional[str] = None,
) -> Dict[str, Any]:
    df = pd.DataFrame(list(items), columns=[label, x, y, color])
    chart = (
        alt.Chart(df)
        .mark_circle(size=90)
        .encode(
            x=alt.X(f"{x}:Q", title=x_title),
            y=alt.Y(f"{y}:Q", title=y_title),
            color=alt.Color(f"{color}:N", title=None),
            tooltip=[label, x, y, color],
        )
        .properties(title=title, height=280)
    )
    return to_vega_spec(chart)
