import csv
import io
from datetime import date

import reports
from finance_calc import generate_emi_schedule, calculate_financial_summary

TRANSACTIONS = [
    {"type": "income", "amount": 50000, "category": "Salary", "description": "March salary", "date": date(2024, 3, 1)},
    {"type": "expense", "amount": 1200.5, "category": "Food", "description": "Groceries & <snacks>",
     "date": date(2024, 3, 2)},
]

LOAN = {
    "loan_name": "Car Loan", "lender_name": None, "principal_amount": 12000, "interest_rate": 0,
    "tenure_months": 12, "monthly_emi": 1000, "start_date": date(2024, 1, 1),
}


def read_csv(text):
    return list(csv.reader(io.StringIO(text)))


def test_transactions_csv_has_totals():
    rows = read_csv(reports.transactions_csv(TRANSACTIONS))
    assert rows[0] == ['Date', 'Description', 'Category', 'Type', 'Amount']
    assert rows[2] == ['2024-03-02', 'Groceries & <snacks>', 'Food', 'expense', '1200.50']
    assert rows[-3:] == [
        ['', '', '', 'Total Income', '50000.00'],
        ['', '', '', 'Total Expense', '1200.50'],
        ['', '', '', 'Net Balance', '48799.50'],
    ]


def test_pdf_reports_render():
    utilizations = [{"category": "Food", "budgetLimit": 5000.0, "spent": 4500.0, "remaining": 500.0,
                     "utilizationPercent": 90.0, "status": "warning"}]
    summary = calculate_financial_summary(TRANSACTIONS)

    for content in (
        reports.transactions_pdf(TRANSACTIONS, "2024-03-01 to 2024-03-31"),
        reports.budgets_pdf(utilizations),
        reports.summary_pdf(summary, [], []),
        reports.loan_schedule_pdf(LOAN, generate_emi_schedule(LOAN)),
    ):
        assert content.startswith(b'%PDF')


def test_budgets_csv():
    rows = read_csv(reports.budgets_csv([{"category": "Food", "budgetLimit": 5000.0, "spent": 4500.0,
                                          "remaining": 500.0, "utilizationPercent": 90.0, "status": "warning"}]))
    assert rows == [
        ['Category', 'Budget Amount', 'Spent', 'Remaining', 'Usage %', 'Status'],
        ['Food', '5000.00', '4500.00', '500.00', '90.0%', 'warning'],
    ]


def test_summary_csv_sections():
    summary = calculate_financial_summary(TRANSACTIONS)
    rows = read_csv(reports.summary_csv(summary, [{"category": "Food", "amount": 1200.5, "count": 1,
                                                   "percentage": 100.0}], []))
    assert ['Total Income', '50000.00'] in rows
    assert ['Food', '1200.50', '1', '100.0'] in rows


def test_loan_schedule_csv():
    rows = read_csv(reports.loan_schedule_csv(generate_emi_schedule(LOAN)))
    assert len(rows) == 13
    assert rows[1] == ['1', '2024-01-01', '1000.00', '1000.00', '0.00', '11000.00']


def test_transaction_totals_count_only_income_and_expense_rows():
    mixed = TRANSACTIONS + [
        {"type": "investment", "amount": 10000, "category": "Mutual Funds", "description": "SIP",
         "date": date(2024, 3, 5)},
        {"type": "borrow", "amount": 2000, "category": "Borrowed", "description": "From Asha",
         "date": date(2024, 3, 6)},
    ]
    rows = read_csv(reports.transactions_csv(mixed))
    assert rows[-2:] == [['', '', '', 'Total Expense', '1200.50'], ['', '', '', 'Net Balance', '48799.50']]
