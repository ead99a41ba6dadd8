"""
tests/test_tables.py
====================
Unit tests for report sections, the four data-view modes and chart frames.

Run:  pytest tests/ -v
"""

import math
from dataclasses import fields

import pytest

from pgc_platform.engine import compute_all_years, compute_working_capital_all_years
from pgc_platform.tables import (
    long_term_sections, ratio_sections, working_capital_sections,
    build_section_frame, format_section_frame, metrics_frame,
    chart_frame, working_capital_chart_frame,
)
from pgc_platform.types import DisplayOptions, FinancialStatement, WorkingCapitalMetrics, YearMetrics


@pytest.fixture
def metrics(statements, balance_sheets, income_statements):
    return compute_all_years(statements, balance_sheets, income_statements)


@pytest.fixture
def equity_section():
    return long_term_sections()[0]


def _section(sections, title):
    return next(s for s in sections if s.title == title)


# ─── Section Definitions ──────────────────────────────────────────────────────

def test_section_keys_exist_on_metrics():
    year_fields = {f.name for f in fields(YearMetrics)}
    wc_fields = {f.name for f in fields(WorkingCapitalMetrics)}
    for sections, known in ((long_term_sections() + ratio_sections(), year_fields),
                            (working_capital_sections(), wc_fields)):
        for s in sections:
            for r in list(s.rows) + ([s.total] if s.total else []):
                assert r.key in known, r.key
            if s.grand_total_key:
                assert s.grand_total_key in known


# ─── View Modes ───────────────────────────────────────────────────────────────

def test_values_mode_has_one_column_per_year(metrics, equity_section):
    df = build_section_frame(equity_section, metrics, "values")
    assert list(df.columns) == ["2023", "2022"]
    assert df.index.name == "I. FONS DE FINANÇAMENT (PROPIS)"
    assert df.index[-1] == "TOTAL FONS PROPIS"
    assert df.loc["Capital subscrit", "2023"] == 1000
    assert df.loc["TOTAL FONS PROPIS", "2022"] == 1000


def test_values_percentages_mode(metrics, equity_section):
    df = build_section_frame(equity_section, metrics, "values_percentages")
    assert list(df.columns) == ["2023", "2023 %", "2022", "2022 %"]
    assert df.loc["Capital subscrit", "2023 %"] == pytest.approx(1000 / 1200 * 100)
    assert df.loc["TOTAL FONS PROPIS", "2023 %"] == pytest.approx(100.0)


def test_values_total_mode_uses_grand_total(metrics, equity_section):
    df = build_section_frame(equity_section, metrics, "values_total")
    assert df.loc["Capital subscrit", "2023 % total"] == pytest.approx(1000 / 1550 * 100)
    assert df.loc["TOTAL FONS PROPIS", "2022 % total"] == pytest.approx(1000 / 1500 * 100)


def test_values_deviation_mode(metrics, equity_section):
    df = build_section_frame(equity_section, metrics, "values_deviation")
    assert df.loc["Capital subscrit", "2023 % desv."] == pytest.approx(25.0)
    assert df.loc["TOTAL FONS PROPIS", "2023 % desv."] == pytest.approx(20.0)
    # no earlier year to compare against
    assert df.loc["Capital subscrit", "2022 % desv."] == 0.0
    # previous value of zero
    assert df.loc["Resultats d'exercicis anteriors", "2023 % desv."] == 0.0


def test_share_of_zero_total_is_zero():
    metrics = compute_all_years([FinancialStatement(id="z", fiscal_year=2023)], {}, {})
    df = build_section_frame(long_term_sections()[0], metrics, "values_percentages")
    assert (df["2023 %"] == 0).all()


def test_ratio_rows_have_no_extra_value(metrics):
    solvency = _section(ratio_sections(), "SOLVÈNCIA")
    df = build_section_frame(solvency, metrics, "values_percentages")
    assert df.loc["Proporció (b/a)", "2023"] == pytest.approx(800 / 1550)
    assert math.isnan(df.loc["Proporció (b/a)", "2023 %"])


def test_unknown_view_mode_rejected(metrics, equity_section):
    with pytest.raises(ValueError):
        build_section_frame(equity_section, metrics, "values_everything")


# ─── Formatting ───────────────────────────────────────────────────────────────

def test_format_section_frame_values(metrics, equity_section):
    out = format_section_frame(equity_section, metrics)
    assert out.loc["Capital subscrit", "2023"] == "1000,00"
    assert out.loc["TOTAL FONS PROPIS", "2023"] == "1200,00"


def test_format_section_frame_thousands_and_percentages(metrics, equity_section):
    display = DisplayOptions(thousands=True, view_mode="values_percentages")
    out = format_section_frame(equity_section, metrics, display)
    assert out.loc["Capital subscrit", "2023"] == "1,00"
    assert out.loc["Capital subscrit", "2023 %"] == "83.3%"


def test_format_section_frame_ratio_and_percent_rows(metrics):
    display = DisplayOptions(view_mode="values_percentages")
    solvency = format_section_frame(_section(ratio_sections(), "SOLVÈNCIA"), metrics, display)
    assert solvency.loc["Proporció (b/a)", "2023"] == "0.52"
    assert solvency.loc["Proporció (b/a)", "2023 %"] == ""
    tax = format_section_frame(_section(ratio_sections(), "TIPUS IMPOSITIU EFECTIU"), metrics)
    assert tax.loc["Tipus efectiu impositiu (a/b)*100", "2023"] == "20.0%"


def test_working_capital_section_frame(statements, balance_sheets):
    wc = compute_working_capital_all_years(statements, balance_sheets)
    df = build_section_frame(working_capital_sections()[0], wc, "values_total")
    assert df.loc["TOTAL ACTIU CIRCULANT", "2023"] == 250
    assert df.loc["Existències", "2023 % total"] == pytest.approx(120 / 250 * 100)


# ─── Chart & Export Frames ────────────────────────────────────────────────────

def test_chart_frame_oldest_first(metrics):
    df = chart_frame(metrics)
    assert list(df["Exercici"]) == ["2022", "2023"]
    assert list(df["Fons propis"]) == [1000, 1200]
    assert df["Endeutament %"].iloc[1] == pytest.approx(1200 / 1550 * 100)


def test_chart_frame_thousands(metrics):
    df = chart_frame(metrics, DisplayOptions(thousands=True))
    assert list(df["Fons propis"]) == pytest.approx([1.0, 1.2])
    assert list(df["Fons aliens"]) == pytest.approx([0.5, 0.35])


def test_working_capital_chart_frame(statements, balance_sheets):
    wc = compute_working_capital_all_years(statements, balance_sheets)
    df = working_capital_chart_frame(wc)
    assert list(df["Exercici"]) == ["2022", "2023"]
    assert list(df["Actiu circulant"]) == [100, 250]
    assert list(df["Passiu circulant"]) == [100, 100]


def test_metrics_frame(metrics):
    df = metrics_frame(metrics)
    assert list(df.index) == [2023, 2022]
    assert df.loc[2023, "equity"] == 1200
    assert df.loc[2022, "solvency_ratio"] == pytest.approx(0.6)
    assert metrics_frame([]).empty
