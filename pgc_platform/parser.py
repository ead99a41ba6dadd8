"""
pgc_platform/parser.py
======================
Company snapshot loader. Handles:
  - CSV (.csv) – comma or semicolon separated, sniffed
  - Excel (.xlsx) – every sheet, merged by fiscal year
  - JSON (.json) – a list of yearly records, or a database export with
    ``statements`` / ``balance_sheets`` / ``income_statements`` arrays

Spreadsheets come in two layouts:
  long – one row per fiscal year, one column per field
  wide – first column holds the line-item label, one column per year
"""
from __future__ import annotations
import io
import json
import logging
import numbers
import re
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .field_patterns import auto_map_fields, normalize_label
from .types import (
    BalanceSheet, CompanySnapshot, FinancialStatement, IncomeStatement,
    BALANCE_SHEET_FIELDS, INCOME_STATEMENT_FIELDS,
)

logger = logging.getLogger(__name__)

# Normalized header → snapshot attribute
META_COLUMNS: Dict[str, str] = {
    "id": "id",
    "statement id": "id",
    "fiscal year": "fiscal_year",
    "year": "fiscal_year",
    "exercici": "fiscal_year",
    "ejercicio": "fiscal_year",
    "any": "fiscal_year",
    "ano": "fiscal_year",
    "statement type": "statement_type",
    "status": "status",
    "estat": "status",
}


# ─── Year Detection ────────────────────────────────────────────────────────────

def extract_year(value: Any) -> Optional[int]:
    """
    Parse a header or cell into a fiscal year.
    Supports: 2024, 2024.0, FY2024, "Exercici 2024", 2024-25 (→ 2024).
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value != value:
            return None
        y = int(value)
        return y if 1990 <= y <= 2099 else None
    s = str(value).strip()
    m = re.search(r"(?<!\d)(19\d{2}|20\d{2})(?!\d)", s)
    if m:
        return int(m.group(1))
    return None


# ─── Numeric Normalisation ────────────────────────────────────────────────────

def to_numeric(val: Any) -> Optional[float]:
    """
    Convert spreadsheet text to float. Accepts es-ES ("1.234,56") and
    en ("1,234.56") notation, parenthesised negatives and currency marks.
    Dots grouping whole thousands ("900.000", "1.000.000") are es-ES
    thousands separators; any other single dot is a decimal point.
    """
    if val is None or val == "":
        return None
    if isinstance(val, bool):
        return None
    if isinstance(val, numbers.Real):
        return None if val != val else float(val)
    s = str(val).strip()
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    s = s.replace("€", "").replace("EUR", "").replace(" ", "").replace(" ", "").strip()
    if s in ("", "-", "--", "—", "N/A", "NA", "n/a", "nan", "None"):
        return None

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        if re.fullmatch(r"-?\d{1,3}(,\d{3})+", s) and s.count(",") > 1:
            s = s.replace(",", "")
        else:
            s = s.replace(",", ".")
    elif re.fullmatch(r"-?\d{1,3}(\.\d{3})+", s):
        s = s.replace(".", "")

    try:
        num = float(s)
    except ValueError:
        return None
    return -num if negative else num


# ─── Frame Parsing ─────────────────────────────────────────────────────────────

def _meta_column(header: Any) -> Optional[str]:
    return META_COLUMNS.get(normalize_label(header))


def detect_layout(df: pd.DataFrame) -> str:
    if any(_meta_column(c) == "fiscal_year" for c in df.columns):
        return "long"
    return "wide"


def _parse_long(df: pd.DataFrame) -> Tuple[List[Dict[str, Any]], List[str]]:
    meta = {c: _meta_column(c) for c in df.columns}
    labels = [str(c) for c in df.columns if meta[c] is None]
    mapping, unmapped = auto_map_fields(labels)

    records: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        rec: Dict[str, Any] = {}
        for col in df.columns:
            attr = meta[col]
            cell = row[col]
            if attr == "fiscal_year":
                rec["fiscal_year"] = extract_year(cell)
            elif attr is not None:
                if not pd.isna(cell) and str(cell).strip():
                    rec[attr] = str(cell).strip()
            elif str(col) in mapping:
                rec[mapping[str(col)]] = to_numeric(cell)
        if rec.get("fiscal_year") is None:
            logger.warning("Skipping row without a fiscal year: %s", dict(row))
            continue
        records.append(rec)
    return records, unmapped


def _parse_wide(df: pd.DataFrame) -> Tuple[List[Dict[str, Any]], List[str]]:
    label_col = df.columns[0]
    year_cols = {c: extract_year(c) for c in df.columns[1:]}
    year_cols = {c: y for c, y in year_cols.items() if y is not None}
    if not year_cols:
        return [], []

    labels = [str(v).strip() for v in df[label_col].tolist() if isinstance(v, str) and v.strip()]
    mapping, unmapped = auto_map_fields(labels)

    by_year: Dict[int, Dict[str, Any]] = {y: {"fiscal_year": y} for y in year_cols.values()}
    seen: set = set()
    for _, row in df.iterrows():
        label = row[label_col]
        if not isinstance(label, str) or label.strip() not in mapping:
            continue
        if label.strip() in seen:
            logger.warning("Repeated label %r ignored; the first row is used", label.strip())
            continue
        seen.add(label.strip())
        name = mapping[label.strip()]
        for col, y in year_cols.items():
            v = to_numeric(row[col])
            if v is not None:
                by_year[y][name] = v
    return list(by_year.values()), unmapped


def parse_frame(df: pd.DataFrame) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Parse one sheet into yearly records. Returns (records, unmapped labels)."""
    df = df.dropna(how="all").dropna(axis=1, how="all")
    if df.empty:
        return [], []
    layout = detect_layout(df)
    logger.info("Detected %s layout (%d rows x %d columns)", layout, *df.shape)
    if layout == "long":
        return _parse_long(df)
    return _parse_wide(df)


def merge_records(*groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge yearly records from several sheets; earlier values win."""
    merged: Dict[int, Dict[str, Any]] = {}
    order: List[int] = []
    for records in groups:
        for rec in records:
            y = rec["fiscal_year"]
            if y not in merged:
                merged[y] = dict(rec)
                order.append(y)
                continue
            for k, v in rec.items():
                if merged[y].get(k) is None:
                    merged[y][k] = v
    return [merged[y] for y in order]


# ─── Snapshot Assembly ────────────────────────────────────────────────────────

def build_snapshot(records: List[Dict[str, Any]], name: str, unmapped: Optional[List[str]] = None) -> CompanySnapshot:
    """Turn yearly records into statements plus per-statement rows."""
    snap = CompanySnapshot(name=name, unmapped=list(unmapped or []))
    seen_ids: set = set()
    for rec in records:
        year = int(rec["fiscal_year"])
        sid = str(rec.get("id") or f"{name}-{year}")
        if sid in seen_ids:
            logger.warning("Duplicate statement id %s in %s", sid, name)
            continue
        seen_ids.add(sid)
        snap.statements.append(FinancialStatement(
            id=sid,
            fiscal_year=year,
            statement_type=rec.get("statement_type", "annual"),
            status=rec.get("status", "draft"),
        ))
        bs_vals = {k: rec[k] for k in BALANCE_SHEET_FIELDS if rec.get(k) is not None}
        is_vals = {k: rec[k] for k in INCOME_STATEMENT_FIELDS if rec.get(k) is not None}
        if bs_vals:
            snap.balance_sheets[sid] = BalanceSheet(statement_id=sid, **bs_vals)
        if is_vals:
            snap.income_statements[sid] = IncomeStatement(statement_id=sid, **is_vals)
    if snap.unmapped:
        logger.warning("%d labels not mapped to PGC fields: %s", len(snap.unmapped), snap.unmapped)
    return snap


def _numeric_fields(row: Dict[str, Any], names: List[str]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for k in names:
        v = to_numeric(row.get(k))
        if v is not None:
            out[k] = v
    return out


def _rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        return list(payload.values())
    return list(payload or [])


def snapshot_from_export(payload: Dict[str, Any], name: str) -> CompanySnapshot:
    """
    Build a snapshot from a database export:
    ``{"statements": [...], "balance_sheets": [...], "income_statements": [...]}``.
    Row lists may also be objects keyed by statement id.
    """
    snap = CompanySnapshot(name=name)
    for row in _rows(payload.get("statements")):
        year = extract_year(row.get("fiscal_year"))
        if row.get("id") is None or year is None:
            logger.warning("Skipping statement without id or fiscal_year: %r", row)
            continue
        snap.statements.append(FinancialStatement(
            id=str(row["id"]),
            fiscal_year=year,
            statement_type=row.get("statement_type") or "annual",
            status=row.get("status") or "draft",
        ))
    for row in _rows(payload.get("balance_sheets")):
        sid = row.get("statement_id")
        if sid is not None and str(sid) not in snap.balance_sheets:
            snap.balance_sheets[str(sid)] = BalanceSheet(
                statement_id=str(sid), **_numeric_fields(row, BALANCE_SHEET_FIELDS))
    for row in _rows(payload.get("income_statements")):
        sid = row.get("statement_id")
        if sid is not None and str(sid) not in snap.income_statements:
            snap.income_statements[str(sid)] = IncomeStatement(
                statement_id=str(sid), **_numeric_fields(row, INCOME_STATEMENT_FIELDS))
    return snap


def _company_name(filename: str) -> str:
    base = filename.rsplit("/", 1)[-1]
    return base.rsplit(".", 1)[0] if "." in base else base


def parse_file(file_bytes: bytes, filename: str, company_name: Optional[str] = None) -> CompanySnapshot:
    """
    Parse uploaded file bytes into a CompanySnapshot.
    Raises ValueError for unsupported, unreadable or year-less files.
    """
    name = company_name or _company_name(filename)
    fn_lower = filename.lower()

    if fn_lower.endswith(".json"):
        try:
            payload = json.loads(file_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"Could not read {filename}: {exc}") from exc
        if isinstance(payload, dict) and "statements" in payload:
            snap = snapshot_from_export(payload, name)
        elif isinstance(payload, list):
            df = pd.DataFrame(payload)
            records, unmapped = parse_frame(df)
            snap = build_snapshot(records, name, unmapped)
        else:
            raise ValueError(f"Unrecognised JSON structure in {filename}")

    elif fn_lower.endswith(".csv"):
        try:
            df = pd.read_csv(io.BytesIO(file_bytes), sep=None, engine="python", dtype=str)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise ValueError(f"Could not read {filename}: {exc}") from exc
        records, unmapped = parse_frame(df)
        snap = build_snapshot(records, name, unmapped)

    elif fn_lower.endswith(".xlsx"):
        try:
            xl = pd.ExcelFile(io.BytesIO(file_bytes), engine="openpyxl")
            frames = [xl.parse(sheet) for sheet in xl.sheet_names]
        except Exception as exc:
            raise ValueError(f"Could not read {filename}: {exc}") from exc
        groups: List[List[Dict[str, Any]]] = []
        unmapped: List[str] = []
        for df in frames:
            records, missing = parse_frame(df)
            groups.append(records)
            unmapped.extend(m for m in missing if m not in unmapped)
        snap = build_snapshot(merge_records(*groups), name, unmapped)

    else:
        raise ValueError(f"Unsupported file type: {filename}")

    if not snap.statements:
        raise ValueError(f"No fiscal years found in {filename}")
    logger.info("Loaded %s: %d statements (%s)", name, len(snap.statements), snap.years)
    return snap
