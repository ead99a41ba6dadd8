"""
pgc_platform/field_patterns.py
==============================
PGC line-item label patterns (Catalan, Spanish, English) and a
confidence-based matcher from spreadsheet labels to statement fields.
"""
from __future__ import annotations
import re
import unicodedata
from typing import Dict, List, Optional, Tuple

from .types import StatementKind

# ─── Pattern Definitions ──────────────────────────────────────────────────────

class PatternDef:
    __slots__ = ("statement", "patterns", "exclude_patterns", "priority")

    def __init__(
        self,
        statement: StatementKind,
        patterns: List[str],
        exclude_patterns: Optional[List[str]] = None,
        priority: int = 5,
    ):
        self.statement = statement
        self.patterns = patterns
        self.exclude_patterns = exclude_patterns or []
        self.priority = priority


FIELD_DEFS: Dict[str, PatternDef] = {
    # ── Fons propis ─────────────────────────────────────────────────────────
    "share_capital": PatternDef("BalanceSheet", ["capital subscrit", "capital social", "capital escriturado", "share capital"], priority=9),
    "share_premium": PatternDef("BalanceSheet", ["prima d emissio", "prima de emision", "share premium"], priority=8),
    "revaluation_reserve": PatternDef("BalanceSheet", ["reserva de revaloritzacio", "reserva de revalorizacion", "revaluation reserve"], priority=8),
    "legal_reserve": PatternDef("BalanceSheet", ["reserva legal", "legal reserve"], priority=8),
    "statutory_reserves": PatternDef("BalanceSheet", ["reserves estatutaries", "reservas estatutarias", "statutory reserves"], priority=7),
    "voluntary_reserves": PatternDef("BalanceSheet", ["reserves voluntaries", "reservas voluntarias", "voluntary reserves", "altres reserves", "otras reservas", "reserves", "reservas"], ["revaloritzacio", "revalorizacion", "revaluation"], priority=7),
    "retained_earnings": PatternDef("BalanceSheet", ["resultats d exercicis anteriors", "resultados de ejercicios anteriores", "romanent", "remanente", "retained earnings"], priority=8),
    "current_year_result": PatternDef("BalanceSheet", ["resultat de l exercici", "resultado del ejercicio", "profit for the year", "current year result", "net income"], ["anteriors", "anteriores"], priority=9),
    "treasury_shares": PatternDef("BalanceSheet", ["accions propies", "acciones propias", "participacions propies", "treasury shares"], priority=7),
    # ── Fons aliens ─────────────────────────────────────────────────────────
    "long_term_provisions": PatternDef("BalanceSheet", ["provisions per a riscos i despeses", "provisions a llarg termini", "provisiones a largo plazo", "long term provisions"], ["curt termini", "corto plazo", "short term"], priority=7),
    "long_term_debts": PatternDef("BalanceSheet", ["deutes amb entitats de credit a llarg termini", "deutes a llarg termini", "deudas a largo plazo", "long term debts", "long term borrowings"], ["grup", "grupo", "group"], priority=8),
    "long_term_group_debts": PatternDef("BalanceSheet", ["deutes amb entitats del grup i associades", "deutes amb empreses del grup a llarg termini", "deudas con empresas del grupo a largo plazo", "long term group debts"], ["curt termini", "c pzo", "corto plazo", "short term"], priority=8),
    "deferred_tax_liabilities": PatternDef("BalanceSheet", ["passius per impost diferit", "passius per impostos diferits", "pasivos por impuesto diferido", "deferred tax liabilities"], priority=8),
    # ── Actiu no corrent ────────────────────────────────────────────────────
    "deferred_tax_assets": PatternDef("BalanceSheet", ["actius per impostos diferits", "actius per impost diferit", "activos por impuesto diferido", "deferred tax assets"], priority=8),
    "long_term_group_investments": PatternDef("BalanceSheet", ["inversions en empreses del grup i ass", "inversions en empreses del grup i associades a llarg termini", "inversiones en empresas del grupo y asociadas a largo plazo", "long term group investments"], ["curt termini", "corto plazo"], priority=8),
    "intangible_assets": PatternDef("BalanceSheet", ["immobilitzat intangible", "immobilitzat intangible net", "inmovilizado intangible", "intangible assets"], priority=8),
    "goodwill": PatternDef("BalanceSheet", ["fons de comerc", "fondo de comercio", "goodwill"], priority=7),
    "tangible_assets": PatternDef("BalanceSheet", ["immobilitzat material", "immobilitzat material net", "inmovilizado material", "tangible assets", "property plant and equipment"], priority=8),
    "long_term_financial_investments": PatternDef("BalanceSheet", ["inversions financeres a llarg termini", "inversiones financieras a largo plazo", "long term financial investments", "inversions financeres"], ["grup", "grupo", "curt termini", "temporals", "corto plazo", "short term"], priority=7),
    "real_estate_investments": PatternDef("BalanceSheet", ["inversions immobiliaries", "inversiones inmobiliarias", "real estate investments", "investment property"], priority=7),
    # ── Actiu corrent ───────────────────────────────────────────────────────
    "non_current_assets_held_for_sale": PatternDef("BalanceSheet", ["actius no corrents mantinguts per a la venda", "activos no corrientes mantenidos para la venta", "non current assets held for sale"], priority=8),
    "inventory": PatternDef("BalanceSheet", ["existencies", "existencias", "inventory", "inventories"], ["variacio", "variacion", "changes"], priority=8),
    "trade_receivables": PatternDef("BalanceSheet", ["clients per vendes i prestacions de serveis", "deutors comercials", "deudores comerciales", "clientes por ventas", "trade receivables"], priority=8),
    "short_term_group_receivables": PatternDef("BalanceSheet", ["empreses del grup deutores", "empresas del grupo deudoras", "short term group receivables"], priority=6),
    "short_term_financial_investments": PatternDef("BalanceSheet", ["inversions financeres temporals", "inversions financeres a curt termini", "inversiones financieras a corto plazo", "short term financial investments"], priority=7),
    "accruals_assets": PatternDef("BalanceSheet", ["periodificacions a curt termini actiu", "periodificaciones a corto plazo activo", "periodificacions a curt termini", "periodificaciones a corto plazo", "accruals assets", "prepayments"], ["passiu", "pasivo"], priority=5),
    "cash_equivalents": PatternDef("BalanceSheet", ["tresoreria i altres actius liquids equiv", "efectivo y otros activos liquidos equivalentes", "tresoreria", "cash and cash equivalents", "cash equivalents"], ["neta", "net"], priority=8),
    # ── Passiu corrent ──────────────────────────────────────────────────────
    "short_term_provisions": PatternDef("BalanceSheet", ["provisions a curt termini", "provisiones a corto plazo", "short term provisions"], priority=7),
    "short_term_debts": PatternDef("BalanceSheet", ["deutes a curt termini", "deutes amb entitats de credit a curt termini", "deudas a corto plazo", "short term debts", "short term borrowings"], ["grup", "grupo", "group"], priority=8),
    "short_term_group_debts": PatternDef("BalanceSheet", ["deutes amb entitats del grup i assoc a c pzo", "deutes amb empreses del grup a curt termini", "deudas con empresas del grupo a corto plazo", "short term group debts"], priority=8),
    "trade_payables": PatternDef("BalanceSheet", ["proveidors", "creditors comercials", "acreedores comerciales", "proveedores", "trade payables"], ["altres", "otros", "other"], priority=8),
    "other_creditors": PatternDef("BalanceSheet", ["altres creditors", "otros acreedores", "other creditors"], priority=7),
    "short_term_accruals": PatternDef("BalanceSheet", ["periodificacions a curt termini passiu", "periodificaciones a corto plazo pasivo", "short term accruals", "deferred income"], priority=5),
    # ── Compte de resultats ─────────────────────────────────────────────────
    "net_turnover": PatternDef("IncomeStatement", ["import net de la xifra de negocis", "importe neto de la cifra de negocios", "xifra de negocis", "net turnover", "revenue"], priority=9),
    "financial_expenses": PatternDef("IncomeStatement", ["despeses financeres", "gastos financieros", "financial expenses", "finance costs", "interest expense"], priority=8),
    "corporate_tax": PatternDef("IncomeStatement", ["impost sobre beneficis", "impost de societats", "impuesto sobre beneficios", "impuesto de sociedades", "corporate tax", "income tax"], ["diferit", "diferido", "deferred"], priority=8),
}

MIN_CONFIDENCE = 0.8


# ─── Helpers ──────────────────────────────────────────────────────────────────

def normalize_label(s: str) -> str:
    """Lower-case, strip accents and punctuation, collapse whitespace."""
    s = unicodedata.normalize("NFKD", str(s))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.lower().strip()
    s = re.sub(r"[^a-z0-9]+", " ", s)
    return re.sub(r"\s+", " ", s).strip()


# ─── Core Matching ────────────────────────────────────────────────────────────

class MatchResult:
    __slots__ = ("field", "confidence", "statement")

    def __init__(self, field: str, confidence: float, statement: StatementKind):
        self.field = field
        self.confidence = confidence
        self.statement = statement


def match_label(label: str) -> List[MatchResult]:
    """All candidate fields for a label, best first."""
    clean = normalize_label(label)
    if not clean:
        return []
    results: List[MatchResult] = []

    for name, defn in FIELD_DEFS.items():
        if clean == normalize_label(name):
            results.append(MatchResult(name, 1.0, defn.statement))
            continue
        if any(normalize_label(ep) in clean for ep in defn.exclude_patterns):
            continue

        best = 0.0
        for pattern in defn.patterns:
            pat = normalize_label(pattern)
            if clean == pat:
                score = 0.98
            elif pat in clean:
                score = 0.85 + (len(pat) / max(len(clean), 1)) * 0.10
            else:
                continue
            best = max(best, score)
        if best > 0:
            results.append(MatchResult(name, min(best, 0.99), defn.statement))

    results.sort(key=lambda m: (m.confidence, FIELD_DEFS[m.field].priority), reverse=True)
    return results


def match_field(label: str) -> Optional[str]:
    """Best field for ``label`` or None when nothing clears MIN_CONFIDENCE."""
    matches = match_label(label)
    if matches and matches[0].confidence >= MIN_CONFIDENCE:
        return matches[0].field
    return None


def auto_map_fields(labels: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Greedy confidence-based mapper: each field is claimed by at most one label.
    Returns (label → field, unmapped labels).
    """
    scored: List[Tuple[str, str, float, int]] = []
    for label in labels:
        for m in match_label(label):
            if m.confidence >= MIN_CONFIDENCE:
                scored.append((label, m.field, m.confidence, FIELD_DEFS[m.field].priority))
    scored.sort(key=lambda t: (t[2], t[3]), reverse=True)

    mapping: Dict[str, str] = {}
    used_fields: set = set()
    for label, name, _, _ in scored:
        if label in mapping or name in used_fields:
            continue
        mapping[label] = name
        used_fields.add(name)

    unmapped = [l for l in labels if l not in mapping]
    return mapping, unmapped


def get_statement_for_field(name: str) -> Optional[StatementKind]:
    return FIELD_DEFS[name].statement if name in FIELD_DEFS else None
