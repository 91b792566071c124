# dashboard.py: weekly summary metrics and spend-vs-limit chart

import streamlit as st
import plotly.graph_objects as go
import pandas as pd
from typing import List

from controller import CategoryCard

def cards_frame(cards: List[CategoryCard]) -> pd.DataFrame:
    """
    One row per category card, in display order.
    """
    columns = ["Category", "Weekly Limit", "Spent", "Remaining", "Progress %", "Over Budget"]
    if not cards:
        return pd.DataFrame(columns=columns)

    return pd.DataFrame([{
        "Category": c.name,
        "Weekly Limit": c.weekly_limit,
        "Spent": c.current_week_spending,
        "Remaining": c.remaining,
        "Progress %": c.progress,
        "Over Budget": c.is_over_budget,
    } for c in cards], columns=columns)

def weekly_totals(cards: List[CategoryCard]) -> dict:
    df = cards_frame(cards)
    limit = float(df["Weekly Limit"].sum()) if not df.empty else 0.0
    spent = float(df["Spent"].sum()) if not df.empty else 0.0
    return {
        "limit": limit,
        "spent": spent,
        "remaining": limit - spent,
        "over_count": int(df["Over Budget"].sum()) if not df.empty else 0,
    }

def render_kpis(cards: List[CategoryCard]):
    """
    Week-at-a-glance metrics above the category cards.
    """
    totals = weekly_totals(cards)
    col1, col2, col3 = st.columns(3)
    col1.metric("🎯 Weekly Budget", f"${totals['limit']:,.2f}")
    col2.metric("💸 Spent", f"${totals['spent']:,.2f}")
    col3.metric(
        "🛡️ Remaining",
        f"${totals['remaining']:,.2f}",
        delta=f"{totals['over_count']} over budget" if totals["over_count"] else None,
        delta_color="inverse",
    )

def spend_vs_limit(cards: List[CategoryCard]):
    """
    Grouped bar chart of this week's spending against each limit.
    """
    df = cards_frame(cards)
    colors = ['#FF5252' if over else '#4C8BF5' for over in df["Over Budget"]]

    fig = go.Figure()
    fig.add_trace(go.Bar(x=df['Category'], y=df['Weekly Limit'], name='Weekly Limit', marker_color='#CFD8DC'))
    fig.add_trace(go.Bar(x=df['Category'], y=df['Spent'], name='Spent', marker_color=colors))

    fig.update_layout(barmode='group', title="Spending vs Weekly Limit", height=380)
    return fig
