"""PGC Analyst — long-term financial analysis of PGC balance sheets and income statements."""
from .types import *
from .formatting import *
from .engine import (
    select_recent_statements,
    find_statement,
    index_by_statement_id,
    get_balance_value,
    get_income_value,
    compute_year_metrics,
    analysis_years,
    compute_all_years,
    compute_working_capital_metrics,
    compute_working_capital_all_years,
)
