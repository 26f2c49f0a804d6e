import io
from datetime import date, datetime
from decimal import Decimal

import openpyxl
import pytest

from statement_parser import (
    detect_columns, parse_amount, normalize_date, parse_statement, read_csv_rows,
    make_external_id, UnsupportedFileError, StatementParseError
)

BANK_CSV = (
    "Date,Description,Debit,Credit,Balance\n"
    "01/03/2024,ZOMATO ORDER,450.00,,10000\n"
    "02/03/2024,SALARY MARCH,,50000.00,60000\n"
    "bad-date,Something,10,,1\n"
    "05/03/2024,,20,,1\n"
    "06/03/2024,Zero row,0,0,1\n"
).encode()


def test_detect_columns_exact_headers():
    mapping = detect_columns(['Date', 'Description', 'Debit', 'Credit', 'Balance'])
    assert mapping == {'date': 'Date', 'description': 'Description', 'debit': 'Debit', 'credit': 'Credit'}


def test_detect_columns_ignores_balance_and_matches_words():
    headers = ['Transaction Date', 'Transaction Remarks', 'Withdrawal Amt (INR)',
               'Deposit Amt (INR)', 'Balance (INR)']
    mapping = detect_columns(headers)
    assert mapping['date'] == 'Transaction Date'
    assert mapping['description'] == 'Transaction Remarks'
    assert mapping['debit'] == 'Withdrawal Amt (INR)'
    assert mapping['credit'] == 'Deposit Amt (INR)'
    assert 'amount' not in mapping


@pytest.mark.parametrize("raw, expected", [
    ("₹1,234.50", Decimal("1234.50")),
    ("(500)", Decimal("-500")),
    ("1,000 Dr", Decimal("-1000")),
    ("250-", Decimal("-250")),
    ("Rs. 99", Decimal("99")),
    (75.5, Decimal("75.5")),
    ("abc", None),
    ("", None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("05/03/2024", date(2024, 3, 5)),
    ("2024-03-05", date(2024, 3, 5)),
    ("03/25/2024", date(2024, 3, 25)),
    ("15-03-24", date(2024, 3, 15)),
    ("05 Mar 2024", date(2024, 3, 5)),
    (45000, date(2023, 3, 15)),
    (datetime(2024, 3, 5, 10, 30), date(2024, 3, 5)),
    ("31/02/2024", None),
    ("not a date", None),
])
def test_normalize_date(raw, expected):
    assert normalize_date(raw) == expected


def test_parse_statement_debit_credit_columns():
    result = parse_statement('statement.csv', BANK_CSV)

    assert [(t.date, t.description, t.amount, t.type) for t in result.transactions] == [
        (date(2024, 3, 1), 'ZOMATO ORDER', Decimal('450.00'), 'expense'),
        (date(2024, 3, 2), 'SALARY MARCH', Decimal('50000.00'), 'income'),
    ]
    assert result.errors == [
        {"row": 4, "message": "Invalid date: bad-date"},
        {"row": 5, "message": "Missing description"},
    ]
    assert result.skipped == 1


def test_row_errors_are_capped_but_parsing_continues():
    lines = ["Date,Description,Amount"]
    lines += [f"bad-date,Row {n},-10" for n in range(150)]
    lines.append("07/03/2024,Last row,-25")
    result = parse_statement('statement.csv', "\n".join(lines).encode())

    assert len(result.errors) == 100
    assert result.errors[0] == {"row": 2, "message": "Invalid date: bad-date"}
    assert result.errors[-1]["row"] == 101
    assert [t.description for t in result.transactions] == ['Last row']


def test_parse_statement_signed_amount_with_type_marker():
    data = (
        "Txn Date;Narration;Amount;Dr/Cr\n"
        "2024-03-10;UBER TRIP;250.50;DR\n"
        "2024-03-11;REFUND;100;CR\n"
    ).encode()
    result = parse_statement('statement.csv', data)

    assert [(t.description, t.type, t.amount) for t in result.transactions] == [
        ('UBER TRIP', 'expense', Decimal('250.50')),
        ('REFUND', 'income', Decimal('100.00')),
    ]


def test_header_row_is_found_below_preamble():
    data = (
        "Account Statement\n"
        "Account: XXXX1234\n"
        "Date,Narration,Amount\n"
        "01/04/2024,Coffee,-120\n"
    ).encode()
    table = read_csv_rows(data)
    assert table.headers == ['Date', 'Narration', 'Amount']
    assert table.line_numbers == [4]


def test_column_mapping_override():
    data = "When,What,How Much\n2024-01-02,Books,-300\n".encode()
    result = parse_statement('s.csv', data, {'date': 'When', 'description': 'What', 'amount': 'How Much'})
    assert result.transactions[0].type == 'expense'
    assert result.mapping['amount'] == 'How Much'

    with pytest.raises(StatementParseError):
        parse_statement('s.csv', data, {'date': 'Missing Column'})


def test_xlsx_statement():
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["Statement for account XXXX"])
    sheet.append(["Transaction Date", "Transaction Remarks", "Withdrawal Amt (INR)",
                  "Deposit Amt (INR)", "Balance (INR)"])
    sheet.append([datetime(2024, 3, 1), "Swiggy order", 320.0, None, 1000.0])
    sheet.append([datetime(2024, 3, 2), "Interest credit", None, 15.5, 1015.5])
    buffer = io.BytesIO()
    workbook.save(buffer)

    result = parse_statement('statement.xlsx', buffer.getvalue())

    assert [(t.date, t.type, t.amount) for t in result.transactions] == [
        (date(2024, 3, 1), 'expense', Decimal('320.00')),
        (date(2024, 3, 2), 'income', Decimal('15.50')),
    ]


def test_unsupported_and_unreadable_files():
    with pytest.raises(UnsupportedFileError):
        parse_statement('statement.pdf', b'%PDF')
    with pytest.raises(StatementParseError):
        parse_statement('statement.csv', b'foo,bar\n1,2\n')
    with pytest.raises(StatementParseError):
        parse_statement('statement.csv', b'')


def test_make_external_id_is_normalized():
    tx = {'date': '2024-03-01', 'description': '  ZOMATO   Order ', 'amount': 450, 'type': 'expense'}
    assert make_external_id('u1', tx) == 'u1_2024-03-01_zomato order_450.00_expense'
    assert make_external_id('u1', dict(tx, date=date(2024, 3, 1))) == make_external_id('u1', tx)
