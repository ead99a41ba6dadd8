"""
app.py
======
PGC Analyst — Streamlit dashboard for the long-term financial analysis
of PGC balance sheets and income statements.

Tabs:
  1. Anàlisi a llarg termini (grups patrimonials)
  2. Ràtios (autofinançament, solvència, endeutament, impostos, cobertura)
  3. Capital circulant
  4. Dades
"""

import logging
from typing import List, Optional

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from pgc_platform.types import (
    AnalysisOptions, CompanySnapshot, DisplayOptions, FinancialStatement,
    BalanceSheet, IncomeStatement, VIEW_MODES, LOCALES,
)
from pgc_platform.parser import parse_file
from pgc_platform.engine import compute_all_years, compute_working_capital_all_years
from pgc_platform.tables import (
    long_term_sections, ratio_sections, working_capital_sections,
    format_section_frame, metrics_frame, chart_frame, working_capital_chart_frame,
)
from pgc_platform.formatting import (
    format_value, format_percent, format_ratio, unit_label, year_label, get_ratio_color,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ─── Page Configuration ───────────────────────────────────────────────────────

st.set_page_config(
    page_title="PGC Analyst",
    page_icon="🏦",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .main-header {
        background: linear-gradient(135deg, #1a1a2e 0%, #0d1117 100%);
        border-radius: 12px;
        padding: 1.2rem 1.5rem;
        color: #fbbf24;
        margin-bottom: 1.5rem;
    }
    .main-header h1 { margin: 0; font-size: 1.6rem; font-weight: 700; }
    .main-header p  { margin: 0.25rem 0 0; font-size: 0.85rem; opacity: 0.85; color: #e5e7eb; }
    .section-title { font-size: 0.9rem; font-weight: 600; color: #b45309; margin: 0.8rem 0 0.3rem; }
</style>
""", unsafe_allow_html=True)

VIEW_MODE_LABELS = {
    "values_percentages": "Vista de valors i percentatges",
    "values": "Vista de valors",
    "values_total": "Vista de valors i % sobre total",
    "values_deviation": "Vista de valors i % de desviació",
}


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _build_grouped_bar(df: pd.DataFrame, x: str, series: List[str], title: str, yaxis_title: str = "",
                       yaxis_range: Optional[List[float]] = None) -> go.Figure:
    palette = ["#f59e0b", "#22d3ee", "#a78bfa", "#10b981"]
    fig = go.Figure()
    for i, name in enumerate(series):
        fig.add_trace(go.Bar(x=df[x], y=df[name], name=name, marker_color=palette[i % len(palette)]))
    fig.update_layout(
        title=dict(text=title, font=dict(size=14, color="#1e293b")),
        barmode="group", yaxis_title=yaxis_title,
        paper_bgcolor="white", plot_bgcolor="#f8fafc",
        margin=dict(l=40, r=20, t=40, b=30), height=300,
        legend=dict(orientation="h", y=-0.2),
        font=dict(family="sans-serif", size=11, color="#64748b"),
    )
    if yaxis_range is not None:
        fig.update_yaxes(range=yaxis_range)
    return fig


def _render_sections(sections, metrics, display: DisplayOptions) -> None:
    for section in sections:
        st.markdown(f"<div class='section-title'>{section.title}</div>", unsafe_allow_html=True)
        st.dataframe(format_section_frame(section, metrics, display), width='stretch')


def _generate_sample_data() -> CompanySnapshot:
    """Three fiscal years of a mid-sized Andorran trading company."""
    snap = CompanySnapshot(name="Comercial Pirineu, SA")
    rows = {
        2021: dict(share_capital=600_000, share_premium=50_000, legal_reserve=120_000,
                   voluntary_reserves=310_000, retained_earnings=40_000, current_year_result=95_000,
                   long_term_provisions=20_000, long_term_debts=450_000, deferred_tax_liabilities=12_000,
                   intangible_assets=35_000, goodwill=60_000, tangible_assets=980_000,
                   long_term_financial_investments=70_000, inventory=310_000, trade_receivables=260_000,
                   cash_equivalents=85_000, short_term_debts=140_000, trade_payables=230_000,
                   other_creditors=45_000),
        2022: dict(share_capital=600_000, share_premium=50_000, legal_reserve=120_000,
                   voluntary_reserves=380_000, retained_earnings=55_000, current_year_result=128_000,
                   long_term_provisions=25_000, long_term_debts=410_000, deferred_tax_liabilities=14_000,
                   intangible_assets=32_000, goodwill=60_000, tangible_assets=1_020_000,
                   long_term_financial_investments=75_000, inventory=335_000, trade_receivables=290_000,
                   short_term_financial_investments=40_000, cash_equivalents=102_000,
                   short_term_debts=150_000, trade_payables=255_000, other_creditors=52_000),
        2023: dict(share_capital=600_000, share_premium=50_000, legal_reserve=120_000,
                   voluntary_reserves=470_000, retained_earnings=60_000, current_year_result=141_500,
                   treasury_shares=15_000, long_term_provisions=25_000, long_term_debts=380_000,
                   long_term_group_debts=60_000, deferred_tax_liabilities=15_500,
                   intangible_assets=29_000, goodwill=60_000, tangible_assets=1_060_000,
                   long_term_financial_investments=82_000, real_estate_investments=120_000,
                   inventory=348_000, trade_receivables=305_000, short_term_financial_investments=35_000,
                   cash_equivalents=118_000, short_term_debts=160_000, short_term_group_debts=20_000,
                   trade_payables=270_000, other_creditors=48_000, short_term_provisions=8_000),
    }
    income = {
        2021: dict(net_turnover=2_450_000, financial_expenses=-24_000, corporate_tax=10_500),
        2022: dict(net_turnover=2_720_000, financial_expenses=-21_500, corporate_tax=14_200),
        2023: dict(net_turnover=2_905_000, financial_expenses=-23_800, corporate_tax=15_700),
    }
    for year, bs in rows.items():
        sid = f"sample-{year}"
        snap.statements.append(FinancialStatement(id=sid, fiscal_year=year, status="archived"))
        snap.balance_sheets[sid] = BalanceSheet(statement_id=sid, **bs)
        snap.income_statements[sid] = IncomeStatement(statement_id=sid, **income[year])
    return snap


@st.cache_data(ttl=300)
def _load_snapshot(file_bytes: bytes, filename: str) -> CompanySnapshot:
    return parse_file(file_bytes, filename)


# ─── Session State ────────────────────────────────────────────────────────────

def _init_state() -> None:
    defaults = {
        "step": "upload",           # upload | dashboard
        "snapshot": None,
        "thousands": True,
        "view_mode": "values",
        "locale": "es-ES",
        "max_years": 5,
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


_init_state()


# ─── Sidebar ──────────────────────────────────────────────────────────────────

with st.sidebar:
    st.markdown("""
    <div style='text-align:center; padding:0.5rem 0 1rem;'>
        <span style='font-size:2rem;'>🏦</span><br>
        <strong style='font-size:1rem; color:#b45309;'>PGC Analyst</strong><br>
        <span style='font-size:0.72rem; color:#64748b;'>Adaptació PGC Andorra</span>
    </div>
    """, unsafe_allow_html=True)
    st.markdown("---")

    if st.session_state["step"] == "dashboard":
        st.subheader("Visió de dades")
        st.session_state["view_mode"] = st.radio(
            "Vista", VIEW_MODES,
            index=VIEW_MODES.index(st.session_state["view_mode"]),
            format_func=VIEW_MODE_LABELS.get,
            label_visibility="collapsed",
        )
        st.session_state["thousands"] = st.checkbox("Milers €", value=st.session_state["thousands"])
        st.session_state["locale"] = st.selectbox(
            "Format numèric", LOCALES, index=LOCALES.index(st.session_state["locale"]),
        )
        st.session_state["max_years"] = st.slider(
            "Exercicis analitzats", 1, 10, st.session_state["max_years"],
            help="Only the most recent fiscal years are analysed",
        )
        st.markdown("---")
        if st.button("🔄 Nova anàlisi", width='stretch'):
            st.session_state["step"] = "upload"
            st.session_state["snapshot"] = None
            st.rerun()
    else:
        st.info("Carregueu els estats financers per començar.", icon="📁")


# ─── Main Header ─────────────────────────────────────────────────────────────

st.markdown("""
<div class='main-header'>
    <h1>🏦 Anàlisi Financer a llarg termini</h1>
    <p>Grups patrimonials, autofinançament, solvència i capital circulant</p>
</div>
""", unsafe_allow_html=True)


# ═══════════════════════════════════════════════════════════════════════════════
# STEP 1: UPLOAD
# ═══════════════════════════════════════════════════════════════════════════════

if st.session_state["step"] == "upload":
    uploaded = st.file_uploader(
        "Balanços i comptes de resultats (CSV, XLSX o JSON)",
        type=["csv", "xlsx", "json"],
    )
    col1, col2 = st.columns([1, 3])
    with col1:
        use_sample = st.button("Dades d'exemple")

    if uploaded is not None:
        try:
            snapshot = _load_snapshot(uploaded.getvalue(), uploaded.name)
        except ValueError as exc:
            st.error(str(exc))
        else:
            if snapshot.unmapped:
                st.warning(f"Conceptes no reconeguts: {', '.join(snapshot.unmapped)}")
            st.session_state["snapshot"] = snapshot
            st.session_state["step"] = "dashboard"
            st.rerun()
    elif use_sample:
        st.session_state["snapshot"] = _generate_sample_data()
        st.session_state["step"] = "dashboard"
        st.rerun()


# ═══════════════════════════════════════════════════════════════════════════════
# STEP 2: DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════════

elif st.session_state["step"] == "dashboard":
    snapshot: CompanySnapshot = st.session_state["snapshot"]
    options = AnalysisOptions(max_years=st.session_state["max_years"])
    display = DisplayOptions(
        thousands=st.session_state["thousands"],
        locale=st.session_state["locale"],
        view_mode=st.session_state["view_mode"],
    )

    metrics = compute_all_years(
        snapshot.statements, snapshot.balance_sheets, snapshot.income_statements, options,
    )
    wc_metrics = compute_working_capital_all_years(snapshot.statements, snapshot.balance_sheets, options)

    if not metrics:
        st.warning("No hi ha estats financers per analitzar.")
        st.stop()

    latest = metrics[0]
    col_h1, col_h2, col_h3, col_h4, col_h5 = st.columns(5)
    col_h1.metric("Empresa", snapshot.name[:20] + "…" if len(snapshot.name) > 20 else snapshot.name)
    col_h2.metric(f"Fons propis ({unit_label(display)})", format_value(latest.equity, display))
    col_h3.metric(f"Capital corrent ({unit_label(display)})", format_value(latest.working_capital, display))
    col_h4.metric("Solvència", format_ratio(latest.solvency_ratio))
    col_h5.metric("Tipus efectiu", format_percent(latest.effective_tax_rate))

    badges = [
        ("Cobertura", latest.coverage_ratio, get_ratio_color(latest.coverage_ratio, good=3.0, warn=1.5)),
        ("Endeutament total", latest.total_debt_ratio,
         get_ratio_color(-latest.total_debt_ratio if latest.total_debt_ratio is not None else None, good=-1.0, warn=-2.0)),
    ]
    if wc_metrics:
        wc_latest = wc_metrics[0]
        badges.append(("Liquidesa (AC/PC)", wc_latest.current_ratio,
                       get_ratio_color(wc_latest.current_ratio, good=1.5, warn=1.0)))
    st.markdown(
        f"<span style='color:#64748b; font-size:0.8rem;'>{year_label(latest.year)}</span> &nbsp; " + " &nbsp; ".join(
            f"<span style='color:{color}; font-weight:600;'>{name}: {format_ratio(value)}</span>"
            for name, value, color in badges
        ),
        unsafe_allow_html=True,
    )

    st.markdown("---")

    tabs = st.tabs(["📊 Llarg termini", "📐 Ràtios", "💧 Capital circulant", "🔍 Dades"])

    with tabs[0]:
        _render_sections(long_term_sections(), metrics, display)
        chart = chart_frame(metrics, display)
        c1, c2 = st.columns(2)
        with c1:
            st.plotly_chart(
                _build_grouped_bar(chart, "Exercici", ["Fons propis", "Fons aliens"],
                                   "Estructura de finançament", unit_label(display)),
                width='stretch',
            )
        with c2:
            st.plotly_chart(
                _build_grouped_bar(chart, "Exercici", ["Endeutament %"], "Fons Propis Totals",
                                   "%", yaxis_range=[0, 100]),
                width='stretch',
            )

    with tabs[1]:
        _render_sections(ratio_sections(), metrics, display)

    with tabs[2]:
        _render_sections(working_capital_sections(), wc_metrics, display)
        wc_chart = working_capital_chart_frame(wc_metrics, display)
        c1, c2 = st.columns(2)
        with c1:
            st.plotly_chart(
                _build_grouped_bar(wc_chart, "Exercici", ["Actiu circulant", "Passiu circulant"],
                                   "Actiu vs Passiu circulant", unit_label(display)),
                width='stretch',
            )
        with c2:
            st.plotly_chart(
                _build_grouped_bar(wc_chart, "Exercici", ["% Existències"], "% Existències sobre AC", "%"),
                width='stretch',
            )

    with tabs[3]:
        df = metrics_frame(metrics)
        st.dataframe(df, width='stretch')
        st.download_button(
            "⬇ Descarregar CSV", df.to_csv().encode("utf-8"),
            file_name=f"{snapshot.name}_analisi.csv", mime="text/csv",
        )
