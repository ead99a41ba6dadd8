"""
tests/conftest.py
=================
Shared pytest fixtures for the PGC Analyst test suite.
"""
import sys
import os

import pytest

# Ensure the project root is on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pgc_platform.types import BalanceSheet, FinancialStatement, IncomeStatement


@pytest.fixture
def statements():
    return [
        FinancialStatement(id="st-2022", fiscal_year=2022, status="archived"),
        FinancialStatement(id="st-2023", fiscal_year=2023, status="archived"),
    ]


@pytest.fixture
def balance_sheets():
    """2023 reproduces the worked examples: equity 1200, financing 1550."""
    return {
        "st-2023": BalanceSheet(
            statement_id="st-2023",
            share_capital=1000,
            share_premium=0,
            current_year_result=200,
            long_term_provisions=50,
            long_term_debts=300,
            tangible_assets=800,
            inventory=120,
            trade_receivables=80,
            cash_equivalents=50,
            short_term_debts=60,
            trade_payables=40,
        ),
        "st-2022": BalanceSheet(
            statement_id="st-2022",
            share_capital=800,
            legal_reserve=40,
            voluntary_reserves=60,
            current_year_result=100,
            long_term_debts=500,
            tangible_assets=900,
            inventory=100,
            short_term_debts=100,
        ),
    }


@pytest.fixture
def income_statements():
    return {
        "st-2023": IncomeStatement(statement_id="st-2023", net_turnover=5000, financial_expenses=-40, corporate_tax=50),
        "st-2022": IncomeStatement(statement_id="st-2022", net_turnover=4200, financial_expenses=0, corporate_tax=0),
    }
