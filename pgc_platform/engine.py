"""
pgc_platform/engine.py
======================
Aggregation engine for PGC balance sheets and income statements.

Covers:
  - Statement selection (most recent N fiscal years, newest first)
  - Field access over dataclass or mapping rows, with zero-defaulting
  - Long-term analysis groups: Fons Propis, Fons Aliens, non-current
    investments, capital corrent, self-financing, tax rate, coverage,
    solvency and debt proportions
  - Working capital breakdown: current assets/liabilities by liquidity,
    operating vs non-operating, current / acid-test / cash ratios

Every function here is pure: inputs are a fully loaded snapshot and are
never mutated.
"""
from __future__ import annotations
import logging
import math
import numbers
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .types import (
    AnalysisOptions, FinancialStatement, Row, WorkingCapitalMetrics, YearMetrics,
)

logger = logging.getLogger(__name__)

_DEFAULT_OPTIONS = AnalysisOptions()


# ─── Data Access Helpers ──────────────────────────────────────────────────────

def _attr(row: Any, name: str) -> Any:
    if row is None:
        return None
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _to_float(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (numbers.Real, Decimal)):
        v = float(raw)
        return None if math.isnan(v) else v
    return None


def _fiscal_year(statement: Any) -> Optional[int]:
    raw = _attr(statement, "fiscal_year")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _statement_id(statement: Any) -> Optional[str]:
    raw = _attr(statement, "id")
    return None if raw is None else str(raw)


def _row_for(statement: Any, rows: Mapping[Any, Row]) -> Optional[Row]:
    """Row keyed by the statement id as given, or by its string form."""
    raw = _attr(statement, "id")
    if raw is None:
        return None
    row = rows.get(raw)
    if row is None:
        row = rows.get(str(raw))
    return row


def select_recent_statements(
    statements: Iterable[FinancialStatement], max_years: int = 5
) -> List[FinancialStatement]:
    """Sort by fiscal_year descending and keep the first ``max_years``."""
    if max_years < 1:
        raise ValueError(f"max_years must be >= 1, got {max_years}")
    dated = [s for s in statements if _fiscal_year(s) is not None]
    dated.sort(key=_fiscal_year, reverse=True)
    return dated[:max_years]


def index_by_statement_id(rows: Iterable[Row]) -> Dict[str, Row]:
    """Build the ``statement_id`` lookup; the first row wins on duplicates."""
    index: Dict[str, Row] = {}
    for row in rows:
        sid = _attr(row, "statement_id")
        if sid is None:
            logger.warning("Skipping row without statement_id: %r", row)
            continue
        sid = str(sid)
        if sid in index:
            logger.warning("Duplicate row for statement %s ignored", sid)
            continue
        index[sid] = row
    return index


def find_statement(year: int, statements: Sequence[FinancialStatement]) -> Optional[FinancialStatement]:
    matches = [s for s in statements if _fiscal_year(s) == year]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "%d statements share fiscal year %s; using %s",
            len(matches), year, _statement_id(matches[0]),
        )
    return matches[0]


class _YearView:
    """Balance-sheet and income-statement rows bound to one fiscal year."""

    def __init__(
        self,
        year: int,
        statements: Sequence[FinancialStatement],
        balance_sheets: Mapping[str, Row],
        income_statements: Mapping[str, Row],
        options: AnalysisOptions,
    ):
        self.year = year
        self.options = options
        self.balance = None
        self.income = None
        statement = find_statement(year, statements)
        if statement is None:
            logger.debug("No statement for fiscal year %s; defaulting to zero", year)
            return
        self.balance = _row_for(statement, balance_sheets)
        self.income = _row_for(statement, income_statements)

    def _read(self, row: Any, name: str) -> Optional[float]:
        v = _to_float(_attr(row, name))
        if v is None and self.options.missing_as_zero:
            return 0.0
        return v

    def bs(self, name: str) -> Optional[float]:
        return self._read(self.balance, name)

    def inc(self, name: str) -> Optional[float]:
        return self._read(self.income, name)


def get_balance_value(
    year: int,
    name: str,
    statements: Sequence[FinancialStatement],
    balance_sheets: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> Optional[float]:
    opts = options or _DEFAULT_OPTIONS
    recent = select_recent_statements(statements, opts.max_years)
    return _YearView(year, recent, balance_sheets, {}, opts).bs(name)


def get_income_value(
    year: int,
    name: str,
    statements: Sequence[FinancialStatement],
    income_statements: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> Optional[float]:
    opts = options or _DEFAULT_OPTIONS
    recent = select_recent_statements(statements, opts.max_years)
    return _YearView(year, recent, {}, income_statements, opts).inc(name)


# ─── Arithmetic Helpers ───────────────────────────────────────────────────────

def _sum(*vals: Optional[float]) -> Optional[float]:
    if any(v is None for v in vals):
        return None
    total = vals[0]
    for v in vals[1:]:
        total += v
    return total


def _sub(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    return a - b


def _ratio(
    num: Optional[float], den: Optional[float], defined: bool, options: AnalysisOptions
) -> Optional[float]:
    """num / den when ``defined``; otherwise 0 (or None when zero-masking is off)."""
    if num is None or den is None:
        return None
    if not defined:
        return 0.0 if options.undefined_ratio_as_zero else None
    return num / den


def _mul(a: Optional[float], k: float) -> Optional[float]:
    return None if a is None else a * k


# ─── Long-term Analysis ───────────────────────────────────────────────────────

def compute_year_metrics(
    year: int,
    statements: Sequence[FinancialStatement],
    balance_sheets: Mapping[str, Row],
    income_statements: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> YearMetrics:
    """
    Grouped subtotals and ratios for one fiscal year.

    Only the most recent ``options.max_years`` statements are searched; a year
    outside that window (or with no statement at all) yields zeros.
    """
    opts = options or _DEFAULT_OPTIONS
    recent = select_recent_statements(statements, opts.max_years)
    v = _YearView(year, recent, balance_sheets, income_statements, opts)

    # Fons propis
    share_capital = v.bs("share_capital")
    share_premium = v.bs("share_premium")
    revaluation_reserve = v.bs("revaluation_reserve")
    reserves = _sum(v.bs("legal_reserve"), v.bs("statutory_reserves"), v.bs("voluntary_reserves"))
    retained_earnings = v.bs("retained_earnings")
    current_year_result = v.bs("current_year_result")
    treasury_shares = v.bs("treasury_shares")
    equity = _sub(
        _sum(share_capital, share_premium, revaluation_reserve, reserves,
             retained_earnings, current_year_result),
        treasury_shares,
    )

    # Fons aliens
    provisions = v.bs("long_term_provisions")
    long_term_debts = v.bs("long_term_debts")
    long_term_group_debts = v.bs("long_term_group_debts")
    deferred_tax_liabilities = v.bs("deferred_tax_liabilities")
    long_term_liabilities = _sum(provisions, long_term_debts, long_term_group_debts, deferred_tax_liabilities)

    total_financing_funds = _sum(equity, long_term_liabilities)

    # Inversions en actius no corrents
    deferred_tax_assets = v.bs("deferred_tax_assets")
    group_investments = v.bs("long_term_group_investments")
    intangible_assets = _sum(v.bs("intangible_assets"), v.bs("goodwill"))
    tangible_assets = v.bs("tangible_assets")
    financial_investments = v.bs("long_term_financial_investments")
    real_estate = v.bs("real_estate_investments")
    non_current_investments = _sum(
        deferred_tax_assets, group_investments, intangible_assets,
        tangible_assets, financial_investments, real_estate,
    )

    # Capital corrent
    current_assets = _sum(
        v.bs("inventory"), v.bs("trade_receivables"),
        v.bs("short_term_financial_investments"), v.bs("cash_equivalents"),
    )
    current_liabilities = _sum(
        v.bs("short_term_debts"), v.bs("short_term_group_debts"),
        v.bs("trade_payables"), v.bs("other_creditors"),
    )
    working_capital = _sub(current_assets, current_liabilities)

    # Autofinançament
    corporate_tax = v.inc("corporate_tax")
    financial_expenses = v.inc("financial_expenses")
    pre_tax_profit = _sum(current_year_result, corporate_tax)
    self_financing = _sum(reserves, retained_earnings, current_year_result)

    solvency_ratio = _ratio(
        non_current_investments, total_financing_funds,
        total_financing_funds is not None and total_financing_funds > 0, opts,
    )
    debt_ratio = _ratio(
        equity, total_financing_funds,
        total_financing_funds is not None and total_financing_funds > 0, opts,
    )
    effective_tax_rate = _mul(
        _ratio(corporate_tax, pre_tax_profit, pre_tax_profit != 0, opts), 100
    )
    coverage_ratio = _ratio(
        current_year_result,
        None if financial_expenses is None else abs(financial_expenses),
        financial_expenses != 0, opts,
    )
    total_debt_ratio = _ratio(
        _sum(long_term_liabilities, current_liabilities), equity, equity != 0, opts,
    )

    return YearMetrics(
        year=year,
        share_capital=share_capital,
        share_premium=share_premium,
        revaluation_reserve=revaluation_reserve,
        reserves=reserves,
        retained_earnings=retained_earnings,
        current_year_result=current_year_result,
        treasury_shares=treasury_shares,
        equity=equity,
        long_term_provisions=provisions,
        long_term_debts=long_term_debts,
        long_term_group_debts=long_term_group_debts,
        deferred_tax_liabilities=deferred_tax_liabilities,
        long_term_liabilities=long_term_liabilities,
        total_financing_funds=total_financing_funds,
        deferred_tax_assets=deferred_tax_assets,
        long_term_group_investments=group_investments,
        intangible_assets=intangible_assets,
        tangible_assets=tangible_assets,
        long_term_financial_investments=financial_investments,
        real_estate_investments=real_estate,
        non_current_investments=non_current_investments,
        current_assets=current_assets,
        current_liabilities=current_liabilities,
        working_capital=working_capital,
        total_investments=_sum(non_current_investments, current_assets),
        self_financing=self_financing,
        pre_tax_profit=pre_tax_profit,
        corporate_tax=corporate_tax,
        effective_tax_rate=effective_tax_rate,
        financial_expenses=financial_expenses,
        coverage_ratio=coverage_ratio,
        net_turnover=v.inc("net_turnover"),
        non_current_assets=non_current_investments,
        solvency_ratio=solvency_ratio,
        debt_ratio=debt_ratio,
        total_debt_ratio=total_debt_ratio,
    )


def analysis_years(
    statements: Sequence[FinancialStatement], options: Optional[AnalysisOptions] = None
) -> List[int]:
    """Distinct fiscal years of the selected statements, newest first."""
    opts = options or _DEFAULT_OPTIONS
    years: List[int] = []
    for s in select_recent_statements(statements, opts.max_years):
        y = _fiscal_year(s)
        if y not in years:
            years.append(y)
    return years


def compute_all_years(
    statements: Sequence[FinancialStatement],
    balance_sheets: Mapping[str, Row],
    income_statements: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> List[YearMetrics]:
    return [
        compute_year_metrics(y, statements, balance_sheets, income_statements, options)
        for y in analysis_years(statements, options)
    ]


# ─── Working Capital ──────────────────────────────────────────────────────────

def compute_working_capital_metrics(
    year: int,
    statements: Sequence[FinancialStatement],
    balance_sheets: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> WorkingCapitalMetrics:
    """Capital circulant breakdown, ordered by liquidity, for one fiscal year."""
    opts = options or _DEFAULT_OPTIONS
    recent = select_recent_statements(statements, opts.max_years)
    v = _YearView(year, recent, balance_sheets, {}, opts)

    held_for_sale = v.bs("non_current_assets_held_for_sale")
    inventory = v.bs("inventory")
    receivables = v.bs("trade_receivables")
    st_investments = v.bs("short_term_financial_investments")
    cash = v.bs("cash_equivalents")
    accruals = v.bs("accruals_assets")
    group_receivables = v.bs("short_term_group_receivables")

    st_debts = v.bs("short_term_debts")
    st_group_debts = v.bs("short_term_group_debts")
    payables = v.bs("trade_payables")
    other_creditors = v.bs("other_creditors")
    st_provisions = v.bs("short_term_provisions")
    st_accruals = v.bs("short_term_accruals")

    total_ca = _sum(held_for_sale, inventory, receivables, st_investments, cash, accruals)
    total_cl = _sum(st_debts, st_group_debts, payables, other_creditors, st_provisions, st_accruals)

    operating_ca = _sum(inventory, receivables)
    has_cl = total_cl != 0
    has_ca = total_ca != 0

    return WorkingCapitalMetrics(
        year=year,
        non_current_assets_held_for_sale=held_for_sale,
        inventory=inventory,
        trade_receivables=receivables,
        short_term_financial_investments=st_investments,
        cash_equivalents=cash,
        accruals_assets=accruals,
        short_term_group_receivables=group_receivables,
        total_current_assets=total_ca,
        short_term_debts=st_debts,
        short_term_group_debts=st_group_debts,
        trade_payables=payables,
        other_creditors=other_creditors,
        short_term_provisions=st_provisions,
        short_term_accruals=st_accruals,
        total_current_liabilities=total_cl,
        operating_current_assets=operating_ca,
        total_operating_assets=_sum(operating_ca, group_receivables),
        non_operating_assets=_sum(held_for_sale, st_investments, cash, accruals),
        current_ratio=_ratio(total_ca, total_cl, has_cl, opts),
        acid_test_ratio=_ratio(_sum(cash, st_investments, receivables), total_cl, has_cl, opts),
        cash_ratio=_ratio(_sum(cash, st_investments), total_cl, has_cl, opts),
        working_capital=_sub(total_ca, total_cl),
        minimum_working_capital=_mul(inventory, opts.minimum_working_capital_factor),
        net_treasury=_sub(cash, st_debts),
        basic_financing_coefficient=_ratio(_sub(total_ca, inventory), total_ca, has_ca, opts),
        inventory_share=_mul(_ratio(inventory, total_ca, has_ca, opts), 100),
    )


def compute_working_capital_all_years(
    statements: Sequence[FinancialStatement],
    balance_sheets: Mapping[str, Row],
    options: Optional[AnalysisOptions] = None,
) -> List[WorkingCapitalMetrics]:
    return [
        compute_working_capital_metrics(y, statements, balance_sheets, options)
        for y in analysis_years(statements, options)
    ]
