"""
pgc_platform/tables.py
======================
Report sections for the long-term and working-capital views, rendered to
pandas DataFrames (one column per fiscal year, newest first) with the four
data-view modes:

  values              – values only
  values_percentages  – plus each row as % of its section total
  values_total        – plus each row as % of the side's grand total
  values_deviation    – plus % change against the previous fiscal year
"""
from __future__ import annotations
from dataclasses import asdict
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from .formatting import format_cell, format_percent
from .types import (
    DisplayOptions, ReportRow, ReportSection, ViewMode, VIEW_MODES,
    WorkingCapitalMetrics, YearMetrics,
)

Metrics = Union[YearMetrics, WorkingCapitalMetrics]

_EXTRA_COLUMN = {
    "values_percentages": "%",
    "values_total": "% total",
    "values_deviation": "% desv.",
}


# ─── Section Definitions ──────────────────────────────────────────────────────

def long_term_sections() -> List[ReportSection]:
    R = ReportRow
    return [
        ReportSection(
            "I. FONS DE FINANÇAMENT (PROPIS)",
            [
                R("Capital subscrit", "share_capital"),
                R("Prima d'emissió", "share_premium"),
                R("Reserva de revalorització", "revaluation_reserve"),
                R("Reserves", "reserves"),
                R("Resultats d'exercicis anteriors", "retained_earnings"),
                R("Resultat de l'exercici", "current_year_result"),
                R("(Accions pròpies)", "treasury_shares"),
            ],
            R("TOTAL FONS PROPIS", "equity"),
            grand_total_key="total_financing_funds",
        ),
        ReportSection(
            "II. FONS DE FINANÇAMENT (ALIENS)",
            [
                R("Provisions per a riscos i despeses", "long_term_provisions"),
                R("Deutes amb entitats de crèdit a llarg termini", "long_term_debts"),
                R("Deutes amb entitats del Grup i Associades", "long_term_group_debts"),
                R("Passius per impost diferit", "deferred_tax_liabilities"),
            ],
            R("TOTAL FONS ALIENS", "long_term_liabilities"),
            grand_total_key="total_financing_funds",
        ),
        ReportSection(
            "FONS TOTALS DE FINANÇAMENT",
            [
                R("Fons propis", "equity"),
                R("Fons aliens", "long_term_liabilities"),
            ],
            R("FONS TOTALS DE FINANÇAMENT", "total_financing_funds"),
            grand_total_key="total_financing_funds",
        ),
        ReportSection(
            "INVERSIONS EN ACTIUS NO CORRENTS",
            [
                R("Actius per impostos diferits", "deferred_tax_assets"),
                R("Inversions en empreses del grup i ass.", "long_term_group_investments"),
                R("Immobilitzat intangible Net", "intangible_assets"),
                R("Immobilitzat material net", "tangible_assets"),
                R("Inversions financeres", "long_term_financial_investments"),
                R("Inversions immobiliàries", "real_estate_investments"),
            ],
            R("TOTAL INVERSIONS EN ACTIUS NO CORRENTS", "non_current_investments"),
            grand_total_key="total_investments",
        ),
        ReportSection(
            "CAPITAL CORRENT",
            [
                R("Actiu Corrent", "current_assets"),
                R("Passiu Corrent", "current_liabilities"),
            ],
            R("TOTAL CAPITAL CORRENT", "working_capital"),
            grand_total_key="total_investments",
        ),
        ReportSection(
            "INVERSIONS TOTALS",
            [
                R("Inversions en actius no corrents", "non_current_investments"),
                R("Actiu Corrent", "current_assets"),
            ],
            R("INVERSIONS TOTALS", "total_investments"),
            grand_total_key="total_investments",
        ),
    ]


def ratio_sections() -> List[ReportSection]:
    R = ReportRow
    return [
        ReportSection(
            "AUTOFINANÇAMENT D'ENRIQUIMENT",
            [
                R("Reserves", "reserves"),
                R("Resultats d'exercicis anteriors", "retained_earnings"),
                R("Resultat de l'exercici", "current_year_result"),
            ],
            R("TOTAL AUTOFINANÇAMENT D'ENRIQUIMENT", "self_financing"),
        ),
        ReportSection(
            "SOLVÈNCIA",
            [
                R("Fons de Finançament (a)", "total_financing_funds"),
                R("Actiu NoCorrent (b)", "non_current_assets"),
                R("Proporció (b/a)", "solvency_ratio", "ratio"),
            ],
        ),
        ReportSection(
            "ENDEUTAMENT",
            [
                R("Fons de Finançament (a)", "total_financing_funds"),
                R("Fons Propis (b)", "equity"),
                R("Proporció (b/a)", "debt_ratio", "ratio"),
            ],
        ),
        ReportSection(
            "RELACIÓ D'ENDEUTAMENT TOTAL",
            [
                R("Fons de Finançament Aliens l/pzo. (a)", "long_term_liabilities"),
                R("Passiu Corrent (curt termini) (b)", "current_liabilities"),
                R("Fons de Finançament Propis (c)", "equity"),
                R("Proporció (a+b)/(c)", "total_debt_ratio", "ratio"),
            ],
        ),
        ReportSection(
            "TIPUS IMPOSITIU EFECTIU",
            [
                R("Impost Societats (a)", "corporate_tax"),
                R("Benefici abans d'Impostos (BAI) (b)", "pre_tax_profit"),
                R("Tipus efectiu impositiu (a/b)*100", "effective_tax_rate", "percent"),
            ],
        ),
        ReportSection(
            "RÀTIO DE COBERTURA",
            [
                R("Benefici després d'impostos (a)", "current_year_result"),
                R("Impostos (b)", "corporate_tax"),
                R("Despeses financeres (c)", "financial_expenses"),
                R("Cobertura (a)/|c|", "coverage_ratio", "ratio"),
            ],
        ),
    ]


def working_capital_sections() -> List[ReportSection]:
    R = ReportRow
    return [
        ReportSection(
            "ACTIU CIRCULANT",
            [
                R("Actius no corrents mantinguts per a la venda", "non_current_assets_held_for_sale"),
                R("Existències", "inventory"),
                R("Clients per vendes i prestacions de serveis", "trade_receivables"),
                R("Inversions financeres temporals", "short_term_financial_investments"),
                R("Tresoreria i altres actius líquids equiv.", "cash_equivalents"),
                R("Periodificacions a curt termini", "accruals_assets"),
            ],
            R("TOTAL ACTIU CIRCULANT", "total_current_assets"),
            grand_total_key="total_current_assets",
        ),
        ReportSection(
            "PASSIU CIRCULANT",
            [
                R("Deutes a curt termini", "short_term_debts"),
                R("Deutes amb entitats del grup i assoc. a c/pzo.", "short_term_group_debts"),
                R("Proveïdors", "trade_payables"),
                R("Altres creditors", "other_creditors"),
                R("Provisions a curt termini", "short_term_provisions"),
                R("Periodificacions a curt termini", "short_term_accruals"),
            ],
            R("TOTAL PASSIU CIRCULANT", "total_current_liabilities"),
            grand_total_key="total_current_liabilities",
        ),
        ReportSection(
            "CAPITAL CIRCULANT D'EXPLOTACIÓ",
            [
                R("Existències", "inventory"),
                R("Clients per vendes i prestacions de serveis", "trade_receivables"),
                R("Empreses del Grup, deutores", "short_term_group_receivables"),
            ],
            R("TOTAL ACTIU CIRCULANT D'EXPLOTACIÓ", "total_operating_assets"),
            grand_total_key="total_current_assets",
        ),
        ReportSection(
            "CAPITAL CIRCULANT EXTERN A L'EXPLOTACIÓ",
            [
                R("Actius no corrents mantinguts per a la venda", "non_current_assets_held_for_sale"),
                R("Inversions financeres temporals", "short_term_financial_investments"),
                R("Tresoreria i altres actius líquids equiv.", "cash_equivalents"),
                R("Periodificacions a curt termini", "accruals_assets"),
            ],
            R("TOTAL ACTIU CIRCULANT EXTERN A L'EXPLOT.", "non_operating_assets"),
            grand_total_key="total_current_assets",
        ),
        ReportSection(
            "CAPITAL CIRCULANT",
            [
                R("CAPITAL CIRCULANT REAL", "working_capital"),
                R("CAPITAL CIRCULANT MÍNIM", "minimum_working_capital"),
                R("TRESORERIA NETA", "net_treasury"),
                R("Coeficient bàsic de finançament", "basic_financing_coefficient", "ratio"),
            ],
        ),
        ReportSection(
            "RÀTIOS DEL CIRCULANT",
            [
                R("Ràtio de solvència (AC / PC)", "current_ratio", "ratio"),
                R("Acid-test (Tresoreria + IFT + Deutors) / PC", "acid_test_ratio", "ratio"),
                R("Tresoreria líquida (Tresoreria + IFT) / PC", "cash_ratio", "ratio"),
                R("% Existències sobre AC", "inventory_share", "percent"),
            ],
        ),
    ]


# ─── Frame Builders ───────────────────────────────────────────────────────────

def _section_rows(section: ReportSection) -> List[ReportRow]:
    return list(section.rows) + ([section.total] if section.total else [])


def _value(m: Metrics, key: Optional[str]) -> Optional[float]:
    return getattr(m, key, None) if key else None


def _share(num: Optional[float], den: Optional[float]) -> Optional[float]:
    if num is None or den is None:
        return None
    return num / den * 100 if den != 0 else 0.0


def _deviation(cur: Optional[float], prev: Optional[float]) -> Optional[float]:
    if cur is None:
        return None
    if prev is None or prev == 0:
        return 0.0
    return (cur - prev) / abs(prev) * 100


def _extra(
    mode: str, section: ReportSection, row: ReportRow,
    metrics: Sequence[Metrics], i: int,
) -> Optional[float]:
    m = metrics[i]
    cur = _value(m, row.key)
    if mode == "values_percentages":
        return _share(cur, _value(m, section.total.key if section.total else None))
    if mode == "values_total":
        key = section.grand_total_key or (section.total.key if section.total else None)
        return _share(cur, _value(m, key))
    prev = _value(metrics[i + 1], row.key) if i + 1 < len(metrics) else None
    return _deviation(cur, prev)


def build_section_frame(
    section: ReportSection, metrics: Sequence[Metrics], view_mode: ViewMode = "values"
) -> pd.DataFrame:
    """
    One row per report line (total last), one value column per year in the
    order of ``metrics``. Ratio and percent rows get no extra column value.
    """
    if view_mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode: {view_mode!r}")
    extra = _EXTRA_COLUMN.get(view_mode)

    data: Dict[str, List[Optional[float]]] = {}
    rows = _section_rows(section)
    for i, m in enumerate(metrics):
        data[str(m.year)] = [_value(m, r.key) for r in rows]
        if extra:
            data[f"{m.year} {extra}"] = [
                _extra(view_mode, section, r, metrics, i) if r.kind == "value" else None
                for r in rows
            ]

    df = pd.DataFrame(data, index=[r.label for r in rows], dtype="float64")
    df.index.name = section.title
    return df


def format_section_frame(
    section: ReportSection, metrics: Sequence[Metrics], display: Optional[DisplayOptions] = None
) -> pd.DataFrame:
    """String rendering of ``build_section_frame`` for tables."""
    opts = display or DisplayOptions()
    df = build_section_frame(section, metrics, opts.view_mode)
    kinds = [r.kind for r in _section_rows(section)]
    year_cols = {str(m.year) for m in metrics}

    formatted: Dict[str, List[str]] = {}
    for col in df.columns:
        values = [None if pd.isna(v) else float(v) for v in df[col].tolist()]
        if col in year_cols:
            formatted[col] = [format_cell(v, k, opts) for v, k in zip(values, kinds)]
        else:
            formatted[col] = ["" if v is None else format_percent(v) for v in values]
    out = pd.DataFrame(formatted, index=df.index, columns=df.columns)
    out.index.name = df.index.name
    return out


def metrics_frame(metrics: Sequence[Metrics]) -> pd.DataFrame:
    """Every metric field as a column, indexed by fiscal year."""
    df = pd.DataFrame([asdict(m) for m in metrics])
    if df.empty:
        return df
    return df.set_index("year")


def chart_frame(metrics: Sequence[YearMetrics], display: Optional[DisplayOptions] = None) -> pd.DataFrame:
    """Financing structure series (Fons propis vs Fons aliens), oldest year first."""
    opts = display or DisplayOptions()
    scale = 1000 if opts.thousands else 1
    rows = [
        {
            "Exercici": str(m.year),
            "Fons propis": (m.equity or 0.0) / scale,
            "Fons aliens": (m.long_term_liabilities or 0.0) / scale,
            "Endeutament %": (m.debt_ratio or 0.0) * 100,
        }
        for m in metrics
    ]
    return pd.DataFrame(rows[::-1], columns=["Exercici", "Fons propis", "Fons aliens", "Endeutament %"])


def working_capital_chart_frame(
    metrics: Sequence[WorkingCapitalMetrics], display: Optional[DisplayOptions] = None
) -> pd.DataFrame:
    opts = display or DisplayOptions()
    scale = 1000 if opts.thousands else 1
    rows = [
        {
            "Exercici": str(m.year),
            "Actiu circulant": (m.total_current_assets or 0.0) / scale,
            "Passiu circulant": (m.total_current_liabilities or 0.0) / scale,
            "% Existències": m.inventory_share or 0.0,
        }
        for m in metrics
    ]
    return pd.DataFrame(rows[::-1], columns=["Exercici", "Actiu circulant", "Passiu circulant", "% Existències"])
