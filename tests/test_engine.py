"""
tests/test_engine.py
====================
Unit tests for the aggregation engine: grouping rules, zero-defaulting,
statement selection, guarded ratios and the working capital breakdown.

Run:  pytest tests/ -v
"""

import copy
import logging
import math
from dataclasses import asdict, fields

import numpy as np
import pandas as pd
import pytest

from pgc_platform.engine import (
    select_recent_statements,
    index_by_statement_id,
    find_statement,
    get_balance_value,
    get_income_value,
    compute_year_metrics,
    compute_all_years,
    analysis_years,
    compute_working_capital_metrics,
    compute_working_capital_all_years,
)
from pgc_platform.types import (
    AnalysisOptions, BalanceSheet, FinancialStatement, IncomeStatement,
    YearMetrics, BALANCE_SHEET_FIELDS, INCOME_STATEMENT_FIELDS,
)


def _single(year=2023, **bs):
    """One statement with a balance sheet built from ``bs`` (income fields split out)."""
    income = {k: bs.pop(k) for k in list(bs) if k in INCOME_STATEMENT_FIELDS}
    sid = f"st-{year}"
    return (
        [FinancialStatement(id=sid, fiscal_year=year)],
        {sid: BalanceSheet(statement_id=sid, **bs)},
        {sid: IncomeStatement(statement_id=sid, **income)},
    )


def _metric_values(m: YearMetrics):
    return {f.name: getattr(m, f.name) for f in fields(m) if f.name != "year"}


# ─── Grouping Rules ───────────────────────────────────────────────────────────

def test_all_zero_inputs_give_all_zero_metrics():
    bs = {k: 0 for k in BALANCE_SHEET_FIELDS}
    inc = {k: 0 for k in INCOME_STATEMENT_FIELDS}
    st, bss, incs = _single(**bs, **inc)
    m = compute_year_metrics(2023, st, bss, incs)
    assert all(v == 0 for v in _metric_values(m).values())


def test_equity_from_share_capital_and_result():
    st, bss, incs = _single(share_capital=1000, share_premium=0, legal_reserve=0,
                            statutory_reserves=0, voluntary_reserves=0, retained_earnings=0,
                            current_year_result=200, treasury_shares=0)
    assert compute_year_metrics(2023, st, bss, incs).equity == 1200


def test_treasury_shares_are_subtracted_and_reserves_grouped():
    st, bss, incs = _single(share_capital=1000, legal_reserve=10, statutory_reserves=20,
                            voluntary_reserves=30, treasury_shares=100)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.reserves == 60
    assert m.equity == 960


def test_total_financing_funds(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.long_term_liabilities == 350
    assert m.total_financing_funds == 1550


def test_solvency_ratio(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.non_current_investments == 800
    assert m.non_current_assets == 800
    assert m.solvency_ratio == pytest.approx(0.5161, abs=1e-4)
    assert m.debt_ratio == pytest.approx(1200 / 1550)


def test_non_current_investments_include_goodwill():
    st, bss, incs = _single(deferred_tax_assets=5, long_term_group_investments=10,
                            intangible_assets=20, goodwill=30, tangible_assets=40,
                            long_term_financial_investments=50, real_estate_investments=60)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.intangible_assets == 50
    assert m.non_current_investments == 215


def test_working_capital_group(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.current_assets == 250
    assert m.current_liabilities == 100
    assert m.working_capital == 150
    assert m.total_investments == 1050


def test_pre_tax_profit_and_zero_tax_rate():
    st, bss, incs = _single(current_year_result=100, corporate_tax=0)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.pre_tax_profit == 100
    assert m.effective_tax_rate == 0


def test_effective_tax_rate_is_a_percentage(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.pre_tax_profit == 250
    assert m.effective_tax_rate == pytest.approx(20.0)


def test_effective_tax_rate_zero_when_pre_tax_profit_zero():
    st, bss, incs = _single(current_year_result=-30, corporate_tax=30)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.pre_tax_profit == 0
    assert m.effective_tax_rate == 0


def test_coverage_uses_absolute_financial_expenses(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.financial_expenses == -40
    assert m.coverage_ratio == pytest.approx(5.0)


def test_coverage_zero_when_no_financial_expenses():
    st, bss, incs = _single(current_year_result=12345, financial_expenses=0)
    assert compute_year_metrics(2023, st, bss, incs).coverage_ratio == 0


def test_self_financing(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2022, statements, balance_sheets, income_statements)
    assert m.self_financing == 200


def test_total_debt_ratio(statements, balance_sheets, income_statements):
    m = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert m.total_debt_ratio == pytest.approx((350 + 100) / 1200)


def test_net_turnover_is_echoed(statements, balance_sheets, income_statements):
    assert compute_year_metrics(2023, statements, balance_sheets, income_statements).net_turnover == 5000


# ─── Zero Denominators ────────────────────────────────────────────────────────

def test_ratios_zero_when_financing_funds_zero():
    st, bss, incs = _single(share_capital=500, long_term_debts=-500, tangible_assets=900)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.total_financing_funds == 0
    assert m.solvency_ratio == 0
    assert m.debt_ratio == 0


def test_ratios_zero_when_financing_funds_negative():
    st, bss, incs = _single(share_capital=100, treasury_shares=400, tangible_assets=900)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.total_financing_funds == -300
    assert m.solvency_ratio == 0
    assert m.debt_ratio == 0


def test_total_debt_ratio_zero_when_equity_zero():
    st, bss, incs = _single(long_term_debts=100, short_term_debts=50)
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.equity == 0
    assert m.total_debt_ratio == 0


def test_no_ratio_is_nan_or_infinite():
    st, bss, incs = _single(current_year_result=-50, corporate_tax=50, treasury_shares=10)
    for v in _metric_values(compute_year_metrics(2023, st, bss, incs)).values():
        assert math.isfinite(v)


# ─── Missing Data ─────────────────────────────────────────────────────────────

def test_missing_year_defaults_to_zero(statements, balance_sheets, income_statements):
    m = compute_year_metrics(1999, statements, balance_sheets, income_statements)
    assert m.year == 1999
    assert all(v == 0 for v in _metric_values(m).values())


def test_statement_without_rows_defaults_to_zero():
    st = [FinancialStatement(id="lonely", fiscal_year=2023)]
    m = compute_year_metrics(2023, st, {}, {})
    assert m.equity == 0 and m.coverage_ratio == 0


def test_none_and_nan_fields_read_as_zero():
    st = [FinancialStatement(id="a", fiscal_year=2023)]
    bss = {"a": {"statement_id": "a", "share_capital": None, "current_year_result": float("nan"),
                 "share_premium": 300}}
    m = compute_year_metrics(2023, st, bss, {})
    assert m.share_capital == 0
    assert m.current_year_result == 0
    assert m.equity == 300


def test_dict_rows_match_dataclass_rows(statements, balance_sheets, income_statements):
    dict_statements = [asdict(s) for s in statements]
    dict_bs = {k: asdict(v) for k, v in balance_sheets.items()}
    dict_inc = {k: asdict(v) for k, v in income_statements.items()}
    for year in (2022, 2023):
        assert (compute_year_metrics(year, dict_statements, dict_bs, dict_inc)
                == compute_year_metrics(year, statements, balance_sheets, income_statements))


def test_integer_statement_ids_resolve_rows():
    st = [{"id": 7, "fiscal_year": 2023}]
    bss = {7: {"statement_id": 7, "share_capital": 1000, "current_year_result": 200}}
    incs = {7: {"statement_id": 7, "corporate_tax": 50}}
    m = compute_year_metrics(2023, st, bss, incs)
    assert m.equity == 1200
    assert m.pre_tax_profit == 250


def test_integer_statement_ids_with_string_keys():
    st = [{"id": 7, "fiscal_year": 2023}]
    bss = {"7": {"statement_id": "7", "share_capital": 1000}}
    assert compute_year_metrics(2023, st, bss, {}).share_capital == 1000


def test_pandas_rows_read_numpy_values():
    frame = pd.DataFrame([{"statement_id": "a", "share_capital": 1000, "current_year_result": 200}])
    st = [FinancialStatement(id="a", fiscal_year=2023)]
    m = compute_year_metrics(2023, st, {"a": frame.iloc[0]}, {})
    assert m.share_capital == 1000
    assert m.equity == 1200


def test_numpy_scalars_are_values():
    st = [FinancialStatement(id="a", fiscal_year=2023)]
    bss = {"a": {"statement_id": "a", "share_capital": np.int64(1000),
                 "share_premium": np.float64(50.5), "legal_reserve": np.float64("nan")}}
    m = compute_year_metrics(2023, st, bss, {})
    assert m.share_capital == 1000
    assert m.share_premium == 50.5
    assert m.reserves == 0
    assert m.equity == 1050.5


def test_missing_as_unknown_propagates_none():
    st, bss, incs = _single(share_capital=1000, current_year_result=200)
    opts = AnalysisOptions(missing_as_zero=False)
    m = compute_year_metrics(2023, st, bss, incs, opts)
    assert m.share_capital == 1000
    assert m.share_premium is None
    assert m.equity is None
    assert m.solvency_ratio is None


def test_missing_as_unknown_with_complete_rows_matches_default():
    bs = {k: 1.0 for k in BALANCE_SHEET_FIELDS}
    inc = {k: 2.0 for k in INCOME_STATEMENT_FIELDS}
    st, bss, incs = _single(**bs, **inc)
    strict = compute_year_metrics(2023, st, bss, incs, AnalysisOptions(missing_as_zero=False))
    assert strict == compute_year_metrics(2023, st, bss, incs)


def test_undefined_ratio_can_be_reported_as_none():
    st, bss, incs = _single(current_year_result=100)
    opts = AnalysisOptions(undefined_ratio_as_zero=False)
    m = compute_year_metrics(2023, st, bss, incs, opts)
    assert m.coverage_ratio is None
    assert m.effective_tax_rate == 0
    assert m.debt_ratio == 1.0


# ─── Purity ───────────────────────────────────────────────────────────────────

def test_idempotent_and_does_not_mutate_inputs(statements, balance_sheets, income_statements):
    snapshot = copy.deepcopy((statements, balance_sheets, income_statements))
    first = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    second = compute_year_metrics(2023, statements, balance_sheets, income_statements)
    assert first == second
    assert (statements, balance_sheets, income_statements) == snapshot


# ─── Statement Selection ──────────────────────────────────────────────────────

def test_select_recent_statements_sorts_descending_and_limits():
    st = [FinancialStatement(id=str(y), fiscal_year=y) for y in (2018, 2023, 2020, 2019, 2022, 2021)]
    recent = select_recent_statements(st, 5)
    assert [s.fiscal_year for s in recent] == [2023, 2022, 2021, 2020, 2019]


def test_select_recent_statements_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        select_recent_statements([], 0)
    with pytest.raises(ValueError):
        AnalysisOptions(max_years=0)


def test_year_outside_recent_window_is_zero():
    st = [FinancialStatement(id=str(y), fiscal_year=y) for y in range(2018, 2024)]
    bss = {str(y): BalanceSheet(statement_id=str(y), share_capital=100) for y in range(2018, 2024)}
    assert compute_year_metrics(2018, st, bss, {}).share_capital == 0
    assert compute_year_metrics(2019, st, bss, {}).share_capital == 100
    assert compute_year_metrics(2018, st, bss, {}, AnalysisOptions(max_years=6)).share_capital == 100


def test_duplicate_fiscal_year_uses_first_statement(caplog):
    st = [FinancialStatement(id="first", fiscal_year=2023), FinancialStatement(id="second", fiscal_year=2023)]
    bss = {
        "first": BalanceSheet(statement_id="first", share_capital=1),
        "second": BalanceSheet(statement_id="second", share_capital=2),
    }
    with caplog.at_level(logging.WARNING, logger="pgc_platform.engine"):
        m = compute_year_metrics(2023, st, bss, {})
    assert m.share_capital == 1
    assert "share fiscal year 2023" in caplog.text
    assert find_statement(2023, st).id == "first"


def test_index_by_statement_id_keeps_first(caplog):
    rows = [
        BalanceSheet(statement_id="a", share_capital=1),
        BalanceSheet(statement_id="a", share_capital=2),
        {"statement_id": "b", "share_capital": 3},
    ]
    with caplog.at_level(logging.WARNING, logger="pgc_platform.engine"):
        index = index_by_statement_id(rows)
    assert index["a"].share_capital == 1
    assert index["b"]["share_capital"] == 3
    assert "Duplicate row for statement a" in caplog.text


def test_field_accessors(statements, balance_sheets, income_statements):
    assert get_balance_value(2022, "legal_reserve", statements, balance_sheets) == 40
    assert get_balance_value(2022, "goodwill", statements, balance_sheets) == 0
    assert get_income_value(2023, "corporate_tax", statements, income_statements) == 50
    assert get_income_value(2030, "corporate_tax", statements, income_statements) == 0


def test_compute_all_years_newest_first(statements, balance_sheets, income_statements):
    metrics = compute_all_years(statements, balance_sheets, income_statements)
    assert [m.year for m in metrics] == [2023, 2022]
    assert metrics[1].equity == 1000
    assert metrics[1].solvency_ratio == pytest.approx(0.6)


def test_analysis_years_deduplicates():
    st = [FinancialStatement(id="a", fiscal_year=2023), FinancialStatement(id="b", fiscal_year=2023),
          FinancialStatement(id="c", fiscal_year=2022)]
    assert analysis_years(st) == [2023, 2022]


# ─── Working Capital ──────────────────────────────────────────────────────────

@pytest.fixture
def wc_snapshot():
    st = [FinancialStatement(id="wc", fiscal_year=2023)]
    bss = {"wc": BalanceSheet(
        statement_id="wc",
        non_current_assets_held_for_sale=10, inventory=200, trade_receivables=150,
        short_term_financial_investments=40, cash_equivalents=60, accruals_assets=5,
        short_term_group_receivables=25,
        short_term_debts=100, short_term_group_debts=20, trade_payables=130,
        other_creditors=30, short_term_provisions=10, short_term_accruals=10,
    )}
    return st, bss


def test_working_capital_totals(wc_snapshot):
    m = compute_working_capital_metrics(2023, *wc_snapshot)
    assert m.total_current_assets == 465
    assert m.total_current_liabilities == 300
    assert m.working_capital == 165
    assert m.operating_current_assets == 350
    assert m.total_operating_assets == 375
    assert m.non_operating_assets == 115


def test_working_capital_ratios(wc_snapshot):
    m = compute_working_capital_metrics(2023, *wc_snapshot)
    assert m.current_ratio == pytest.approx(1.55)
    assert m.acid_test_ratio == pytest.approx(250 / 300)
    assert m.cash_ratio == pytest.approx(100 / 300)
    assert m.basic_financing_coefficient == pytest.approx(265 / 465)
    assert m.inventory_share == pytest.approx(200 / 465 * 100)


def test_working_capital_treasury_and_minimum(wc_snapshot):
    m = compute_working_capital_metrics(2023, *wc_snapshot)
    assert m.net_treasury == -40
    assert m.minimum_working_capital == pytest.approx(160)
    custom = compute_working_capital_metrics(2023, *wc_snapshot, AnalysisOptions(minimum_working_capital_factor=0.5))
    assert custom.minimum_working_capital == pytest.approx(100)


def test_working_capital_ratios_zero_without_liabilities():
    st = [FinancialStatement(id="x", fiscal_year=2023)]
    bss = {"x": BalanceSheet(statement_id="x", cash_equivalents=100)}
    m = compute_working_capital_metrics(2023, st, bss)
    assert m.current_ratio == 0
    assert m.acid_test_ratio == 0
    assert m.cash_ratio == 0
    assert m.basic_financing_coefficient == pytest.approx(1.0)


def test_working_capital_all_years(statements, balance_sheets):
    metrics = compute_working_capital_all_years(statements, balance_sheets)
    assert [m.year for m in metrics] == [2023, 2022]
    assert metrics[0].total_current_assets == 250
