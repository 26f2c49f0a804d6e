import csv
import io
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from finance_calc import get_field, amount_of, to_date


def _csv(header: List[str], rows: List[List]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    writer.writerows(rows)
    return output.getvalue()


def _table_style(total_rows: int = 0) -> TableStyle:
    body_end = -1 - total_rows
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 11),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('BACKGROUND', (0, 1), (-1, body_end), colors.beige),
        ('GRID', (0, 0), (-1, body_end), 1, colors.black),
    ]
    if total_rows:
        commands += [
            ('FONTNAME', (0, -total_rows), (-1, -1), 'Helvetica-Bold'),
            ('BACKGROUND', (0, -total_rows), (-1, -1), colors.lightgrey),
        ]
    return TableStyle(commands)


def _build_pdf(title: str, period: Optional[str], sections: List) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter)
    styles = getSampleStyleSheet()

    elements = [Paragraph(escape(title), styles['Title']), Spacer(1, 0.3 * inch)]
    if period:
        elements.append(Paragraph(escape(f"Period: {period}"), styles['Normal']))
        elements.append(Spacer(1, 0.2 * inch))

    for heading, table in sections:
        if heading:
            elements.append(Paragraph(escape(heading), styles['Heading2']))
            elements.append(Spacer(1, 0.1 * inch))
        elements.append(table)
        elements.append(Spacer(1, 0.3 * inch))

    doc.build(elements)
    buffer.seek(0)
    return buffer.getvalue()


def _money(value) -> str:
    return f"{float(value):,.2f}"


# Transactions

def _totals(transactions) -> Dict[str, float]:
    income = sum(amount_of(t) for t in transactions if get_field(t, 'type') == 'income')
    expense = sum(amount_of(t) for t in transactions if get_field(t, 'type') == 'expense')
    return {"income": income, "expense": expense, "net": income - expense}


def transactions_csv(transactions) -> str:
    transactions = list(transactions)
    rows = [
        [to_date(get_field(t, 'date')).isoformat(), get_field(t, 'description') or '',
         get_field(t, 'category'), get_field(t, 'type'), f"{amount_of(t):.2f}"]
        for t in transactions
    ]
    totals = _totals(transactions)
    rows += [
        ['', '', '', 'Total Income', f"{totals['income']:.2f}"],
        ['', '', '', 'Total Expense', f"{totals['expense']:.2f}"],
        ['', '', '', 'Net Balance', f"{totals['net']:.2f}"],
    ]
    return _csv(['Date', 'Description', 'Category', 'Type', 'Amount'], rows)


def transactions_pdf(transactions, period: Optional[str] = None) -> bytes:
    transactions = list(transactions)
    data = [['Date', 'Description', 'Category', 'Type', 'Amount (INR)']]
    for t in transactions:
        data.append([
            to_date(get_field(t, 'date')).isoformat(),
            (get_field(t, 'description') or '')[:40],
            get_field(t, 'category'),
            str(get_field(t, 'type')).capitalize(),
            _money(amount_of(t))
        ])
    totals = _totals(transactions)
    data.append(['', '', '', 'Total Income:', _money(totals['income'])])
    data.append(['', '', '', 'Total Expense:', _money(totals['expense'])])
    data.append(['', '', '', 'Net Balance:', _money(totals['net'])])

    table = Table(data, colWidths=[1.1 * inch, 2.4 * inch, 1.3 * inch, 1.1 * inch, 1.2 * inch])
    style = _table_style(total_rows=3)
    style.add('ALIGN', (4, 1), (4, -1), 'RIGHT')
    table.setStyle(style)
    return _build_pdf("Transactions Report", period, [(None, table)])


# Budgets

def budgets_csv(utilizations: List[Dict]) -> str:
    rows = [
        [u['category'], f"{u['budgetLimit']:.2f}", f"{u['spent']:.2f}", f"{u['remaining']:.2f}",
         f"{u['utilizationPercent']:.1f}%", u['status']]
        for u in utilizations
    ]
    return _csv(['Category', 'Budget Amount', 'Spent', 'Remaining', 'Usage %', 'Status'], rows)


def budgets_pdf(utilizations: List[Dict], period: Optional[str] = None) -> bytes:
    data = [['Category', 'Budget (INR)', 'Spent (INR)', 'Remaining (INR)', 'Usage %', 'Status']]
    total_budget = total_spent = 0.0
    for u in utilizations:
        data.append([
            u['category'], _money(u['budgetLimit']), _money(u['spent']), _money(u['remaining']),
            f"{u['utilizationPercent']:.1f}%", u['status'].capitalize()
        ])
        total_budget += u['budgetLimit']
        total_spent += u['spent']
    usage = (total_spent / total_budget * 100) if total_budget > 0 else 0
    data.append(['TOTAL', _money(total_budget), _money(total_spent),
                 _money(max(0.0, total_budget - total_spent)), f"{usage:.1f}%", ''])

    table = Table(data, colWidths=[1.6 * inch, 1.1 * inch, 1.1 * inch, 1.2 * inch, 0.9 * inch, 0.9 * inch])
    style = _table_style(total_rows=1)
    style.add('ALIGN', (1, 1), (3, -1), 'RIGHT')
    table.setStyle(style)
    return _build_pdf("Budget Report", period, [(None, table)])


# Financial summary

SUMMARY_LABELS = [
    ("totalIncome", "Total Income"),
    ("totalExpenses", "Total Expenses"),
    ("totalInvestments", "Total Investments"),
    ("totalEMI", "Total EMI"),
    ("netSavings", "Net Savings"),
]


def summary_csv(summary: Dict, categories: List[Dict], monthly: List[Dict]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['Metric', 'Value'])
    for key, label in SUMMARY_LABELS:
        writer.writerow([label, f"{summary[key]:.2f}"])
    writer.writerow(['Savings Rate', f"{summary['savingsRate']:.2f}%"])
    writer.writerow([])
    writer.writerow(['Category', 'Amount', 'Transactions', 'Share %'])
    for c in categories:
        writer.writerow([c['category'], f"{c['amount']:.2f}", c['count'], f"{c['percentage']:.1f}"])
    writer.writerow([])
    writer.writerow(['Month', 'Income', 'Expenses', 'Investments', 'Savings'])
    for m in monthly:
        writer.writerow([m['label'], f"{m['income']:.2f}", f"{m['expenses']:.2f}",
                         f"{m['investments']:.2f}", f"{m['savings']:.2f}"])
    return output.getvalue()


def summary_pdf(summary: Dict, categories: List[Dict], monthly: List[Dict],
                period: Optional[str] = None) -> bytes:
    overview = [['Metric', 'Value (INR)']]
    overview += [[label, _money(summary[key])] for key, label in SUMMARY_LABELS]
    overview.append(['Savings Rate', f"{summary['savingsRate']:.2f}%"])
    overview_table = Table(overview, colWidths=[2.5 * inch, 2 * inch])
    overview_table.setStyle(_table_style())

    top = [['Category', 'Amount (INR)', 'Count', 'Share %']]
    top += [[c['category'], _money(c['amount']), c['count'], f"{c['percentage']:.1f}%"] for c in categories[:10]]
    top_table = Table(top, colWidths=[2 * inch, 1.5 * inch, 0.8 * inch, 1 * inch])
    top_table.setStyle(_table_style())

    months = [['Month', 'Income', 'Expenses', 'Investments', 'Savings']]
    months += [[m['label'], _money(m['income']), _money(m['expenses']),
                _money(m['investments']), _money(m['savings'])] for m in monthly]
    months_table = Table(months, colWidths=[1.2 * inch] + [1.3 * inch] * 4)
    months_table.setStyle(_table_style())

    sections = [("Overview", overview_table)]
    if categories:
        sections.append(("Top Expense Categories", top_table))
    if monthly:
        sections.append(("Monthly Breakdown", months_table))
    return _build_pdf("Financial Summary", period, sections)


# Loan schedule

def loan_schedule_csv(schedule: List[Dict]) -> str:
    rows = [
        [s['month'], s['paymentDate'], f"{s['emiAmount']:.2f}", f"{s['principalComponent']:.2f}",
         f"{s['interestComponent']:.2f}", f"{s['outstandingBalance']:.2f}"]
        for s in schedule
    ]
    return _csv(['Month', 'Payment Date', 'EMI', 'Principal', 'Interest', 'Outstanding'], rows)


def loan_schedule_pdf(loan, schedule: List[Dict]) -> bytes:
    details = [
        ['Loan', get_field(loan, 'loan_name')],
        ['Lender', get_field(loan, 'lender_name') or '-'],
        ['Principal (INR)', _money(get_field(loan, 'principal_amount'))],
        ['Interest Rate', f"{float(get_field(loan, 'interest_rate')):.2f}%"],
        ['Tenure', f"{get_field(loan, 'tenure_months')} months"],
        ['Monthly EMI (INR)', _money(get_field(loan, 'monthly_emi'))],
    ]
    details_table = Table(details, colWidths=[2 * inch, 3 * inch])
    details_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ]))

    data = [['#', 'Date', 'EMI', 'Principal', 'Interest', 'Outstanding']]
    for s in schedule:
        data.append([s['month'], s['paymentDate'], _money(s['emiAmount']), _money(s['principalComponent']),
                     _money(s['interestComponent']), _money(s['outstandingBalance'])])
    total_interest = sum(s['interestComponent'] for s in schedule)
    total_paid = sum(s['emiAmount'] for s in schedule)
    data.append(['', 'TOTAL', _money(total_paid), '', _money(total_interest), ''])

    table = Table(data, colWidths=[0.5 * inch, 1.1 * inch, 1.2 * inch, 1.2 * inch, 1.2 * inch, 1.3 * inch],
                  repeatRows=1)
    style = _table_style(total_rows=1)
    style.add('ALIGN', (2, 1), (-1, -1), 'RIGHT')
    table.setStyle(style)
    return _build_pdf("Loan Amortization Schedule", None, [(None, details_table), ("Schedule", table)])
