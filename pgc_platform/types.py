"""
pgc_platform/types.py
=====================
Dataclasses for the PGC statement snapshot consumed by the engine,
the per-year metric records it produces, and the analysis/display options.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Literal, Mapping, Any, Union

# ─── Core Data Types ──────────────────────────────────────────────────────────

ViewMode = Literal["values", "values_percentages", "values_total", "values_deviation"]
LocaleCode = Literal["es-ES", "en-US"]
StatementKind = Literal["BalanceSheet", "IncomeStatement"]

VIEW_MODES: List[str] = ["values_percentages", "values", "values_total", "values_deviation"]
LOCALES: List[str] = ["es-ES", "en-US"]

# A row may be one of the dataclasses below or a plain mapping from a DB client.
Row = Union["BalanceSheet", "IncomeStatement", Mapping[str, Any]]

BALANCE_SHEET_FIELDS: List[str] = [
    # Equity (Fons propis)
    "share_capital",
    "share_premium",
    "revaluation_reserve",
    "legal_reserve",
    "statutory_reserves",
    "voluntary_reserves",
    "retained_earnings",
    "current_year_result",
    "treasury_shares",
    # Long-term liabilities (Fons aliens)
    "long_term_provisions",
    "long_term_debts",
    "long_term_group_debts",
    "deferred_tax_liabilities",
    # Non-current assets
    "deferred_tax_assets",
    "long_term_group_investments",
    "intangible_assets",
    "goodwill",
    "tangible_assets",
    "long_term_financial_investments",
    "real_estate_investments",
    # Current assets
    "non_current_assets_held_for_sale",
    "inventory",
    "trade_receivables",
    "short_term_group_receivables",
    "short_term_financial_investments",
    "accruals_assets",
    "cash_equivalents",
    # Current liabilities
    "short_term_provisions",
    "short_term_debts",
    "short_term_group_debts",
    "trade_payables",
    "other_creditors",
    "short_term_accruals",
]

INCOME_STATEMENT_FIELDS: List[str] = [
    "net_turnover",
    "financial_expenses",
    "corporate_tax",
]


@dataclass(frozen=True)
class FinancialStatement:
    id: str
    fiscal_year: int
    statement_type: str = "annual"
    status: str = "draft"


@dataclass(frozen=True)
class BalanceSheet:
    statement_id: str
    share_capital: Optional[float] = None
    share_premium: Optional[float] = None
    revaluation_reserve: Optional[float] = None
    legal_reserve: Optional[float] = None
    statutory_reserves: Optional[float] = None
    voluntary_reserves: Optional[float] = None
    retained_earnings: Optional[float] = None
    current_year_result: Optional[float] = None
    treasury_shares: Optional[float] = None
    long_term_provisions: Optional[float] = None
    long_term_debts: Optional[float] = None
    long_term_group_debts: Optional[float] = None
    deferred_tax_liabilities: Optional[float] = None
    deferred_tax_assets: Optional[float] = None
    long_term_group_investments: Optional[float] = None
    intangible_assets: Optional[float] = None
    goodwill: Optional[float] = None
    tangible_assets: Optional[float] = None
    long_term_financial_investments: Optional[float] = None
    real_estate_investments: Optional[float] = None
    non_current_assets_held_for_sale: Optional[float] = None
    inventory: Optional[float] = None
    trade_receivables: Optional[float] = None
    short_term_group_receivables: Optional[float] = None
    short_term_financial_investments: Optional[float] = None
    accruals_assets: Optional[float] = None
    cash_equivalents: Optional[float] = None
    short_term_provisions: Optional[float] = None
    short_term_debts: Optional[float] = None
    short_term_group_debts: Optional[float] = None
    trade_payables: Optional[float] = None
    other_creditors: Optional[float] = None
    short_term_accruals: Optional[float] = None


@dataclass(frozen=True)
class IncomeStatement:
    statement_id: str
    net_turnover: Optional[float] = None
    financial_expenses: Optional[float] = None
    corporate_tax: Optional[float] = None


# ─── Options ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AnalysisOptions:
    """
    Engine switches. The defaults reproduce the dashboard behaviour:
    missing fields read as 0 and guarded ratios resolve to 0.
    """
    max_years: int = 5
    missing_as_zero: bool = True
    undefined_ratio_as_zero: bool = True
    minimum_working_capital_factor: float = 0.8

    def __post_init__(self) -> None:
        if self.max_years < 1:
            raise ValueError(f"max_years must be >= 1, got {self.max_years}")


@dataclass(frozen=True)
class DisplayOptions:
    thousands: bool = False
    locale: LocaleCode = "es-ES"
    view_mode: ViewMode = "values"

    def __post_init__(self) -> None:
        if self.view_mode not in VIEW_MODES:
            raise ValueError(f"Unknown view mode: {self.view_mode!r}")
        if self.locale not in LOCALES:
            raise ValueError(f"Unsupported locale: {self.locale!r}")


# ─── Engine Output ────────────────────────────────────────────────────────────

@dataclass
class YearMetrics:
    year: int
    # Fons propis
    share_capital: Optional[float] = 0.0
    share_premium: Optional[float] = 0.0
    revaluation_reserve: Optional[float] = 0.0
    reserves: Optional[float] = 0.0
    retained_earnings: Optional[float] = 0.0
    current_year_result: Optional[float] = 0.0
    treasury_shares: Optional[float] = 0.0
    equity: Optional[float] = 0.0
    # Fons aliens
    long_term_provisions: Optional[float] = 0.0
    long_term_debts: Optional[float] = 0.0
    long_term_group_debts: Optional[float] = 0.0
    deferred_tax_liabilities: Optional[float] = 0.0
    long_term_liabilities: Optional[float] = 0.0
    total_financing_funds: Optional[float] = 0.0
    # Inversions en actius no corrents
    deferred_tax_assets: Optional[float] = 0.0
    long_term_group_investments: Optional[float] = 0.0
    intangible_assets: Optional[float] = 0.0
    tangible_assets: Optional[float] = 0.0
    long_term_financial_investments: Optional[float] = 0.0
    real_estate_investments: Optional[float] = 0.0
    non_current_investments: Optional[float] = 0.0
    # Capital corrent
    current_assets: Optional[float] = 0.0
    current_liabilities: Optional[float] = 0.0
    working_capital: Optional[float] = 0.0
    total_investments: Optional[float] = 0.0
    # Autofinançament, impostos, cobertura
    self_financing: Optional[float] = 0.0
    pre_tax_profit: Optional[float] = 0.0
    corporate_tax: Optional[float] = 0.0
    effective_tax_rate: Optional[float] = 0.0
    financial_expenses: Optional[float] = 0.0
    coverage_ratio: Optional[float] = 0.0
    net_turnover: Optional[float] = 0.0
    # Solvència i endeutament
    non_current_assets: Optional[float] = 0.0
    solvency_ratio: Optional[float] = 0.0
    debt_ratio: Optional[float] = 0.0
    total_debt_ratio: Optional[float] = 0.0


@dataclass
class WorkingCapitalMetrics:
    year: int
    non_current_assets_held_for_sale: Optional[float] = 0.0
    inventory: Optional[float] = 0.0
    trade_receivables: Optional[float] = 0.0
    short_term_financial_investments: Optional[float] = 0.0
    cash_equivalents: Optional[float] = 0.0
    accruals_assets: Optional[float] = 0.0
    short_term_group_receivables: Optional[float] = 0.0
    total_current_assets: Optional[float] = 0.0
    short_term_debts: Optional[float] = 0.0
    short_term_group_debts: Optional[float] = 0.0
    trade_payables: Optional[float] = 0.0
    other_creditors: Optional[float] = 0.0
    short_term_provisions: Optional[float] = 0.0
    short_term_accruals: Optional[float] = 0.0
    total_current_liabilities: Optional[float] = 0.0
    operating_current_assets: Optional[float] = 0.0
    total_operating_assets: Optional[float] = 0.0
    non_operating_assets: Optional[float] = 0.0
    current_ratio: Optional[float] = 0.0
    acid_test_ratio: Optional[float] = 0.0
    cash_ratio: Optional[float] = 0.0
    working_capital: Optional[float] = 0.0
    minimum_working_capital: Optional[float] = 0.0
    net_treasury: Optional[float] = 0.0
    basic_financing_coefficient: Optional[float] = 0.0
    inventory_share: Optional[float] = 0.0


# ─── Loader / Report Types ────────────────────────────────────────────────────

@dataclass
class CompanySnapshot:
    """Everything the engine needs for one company, as loaded from a file."""
    name: str
    statements: List[FinancialStatement] = field(default_factory=list)
    balance_sheets: Dict[str, BalanceSheet] = field(default_factory=dict)
    income_statements: Dict[str, IncomeStatement] = field(default_factory=dict)
    unmapped: List[str] = field(default_factory=list)

    @property
    def years(self) -> List[int]:
        return sorted({s.fiscal_year for s in self.statements}, reverse=True)


RowKind = Literal["value", "ratio", "percent"]


@dataclass(frozen=True)
class ReportRow:
    label: str
    key: str
    kind: RowKind = "value"


@dataclass(frozen=True)
class ReportSection:
    title: str
    rows: List[ReportRow]
    total: Optional[ReportRow] = None
    # Field used as the denominator for the "% sobre total" view.
    grand_total_key: Optional[str] = None
