"""Bank statement parsing.

Turns an uploaded CSV or XLSX statement into normalized transactions:
headers are matched heuristically to the fields we need, amounts are read
from debit/credit or signed amount columns, and dates in the usual bank
formats (day first) are normalized. Rows that cannot be understood are
reported with their spreadsheet line number instead of being guessed.
"""
import csv
import io
import logging
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import openpyxl
from dateutil import parser as date_parser

from finance_calc import get_field

logger = logging.getLogger(__name__)

MAX_ERRORS = 100

FIELD_CANDIDATES = {
    'date': ['date', 'transaction date', 'txn date', 'tran date', 'value date',
             'posted date', 'posting date', 'transaction_date', 'txn_date'],
    'debit': ['debit', 'withdrawal', 'withdrawals', 'withdrawal amt', 'withdrawal amount',
              'debit amount', 'debit amt', 'debit_amount', 'dr', 'paid out'],
    'credit': ['credit', 'deposit', 'deposits', 'deposit amt', 'deposit amount',
               'credit amount', 'credit amt', 'credit_amount', 'cr', 'paid in'],
    'type': ['type', 'dr cr', 'cr dr', 'transaction type', 'txn type', 'debit credit'],
    'amount': ['amount', 'value', 'txn amount', 'transaction amount', 'amount inr'],
    'description': ['description', 'particulars', 'narration', 'details', 'remarks',
                    'memo', 'payee', 'title', 'transaction details', 'transaction remarks'],
    'category': ['category'],
}

# Order in which fields claim headers
FIELD_ORDER = ['date', 'debit', 'credit', 'type', 'amount', 'description', 'category']
AMOUNT_FIELDS = ('debit', 'credit', 'amount')

DEBIT_MARKERS = {'dr', 'd', 'debit', 'debited', 'withdrawal', 'expense'}
CREDIT_MARKERS = {'cr', 'c', 'credit', 'credited', 'deposit', 'income'}

CURRENCY_PATTERN = re.compile(r'(₹|\$|€|£|¥|\bRS\.?|\bINR\b)', re.IGNORECASE)
NUMBER_PATTERN = re.compile(r'^(\d+(\.\d*)?|\.\d+)$')

ISO_DATE = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$')
YMD_SLASH = re.compile(r'^(\d{4})/(\d{1,2})/(\d{1,2})(?:\s.*)?$')
DAY_FIRST = re.compile(r'^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?:\s.*)?$')
EXCEL_SERIAL = re.compile(r'^\d{5}(\.\d+)?$')
MONTH_NAME_FORMATS = [
    '%d %b %Y', '%d %B %Y', '%d-%b-%Y', '%d-%B-%Y', '%d-%b-%y', '%d %b %y',
    '%d/%b/%Y', '%d/%b/%y', '%b %d, %Y', '%B %d, %Y', '%b %d %Y', '%d %b, %Y',
]
EXCEL_EPOCH = date(1899, 12, 30)


class UnsupportedFileError(ValueError):
    pass


class StatementParseError(ValueError):
    pass


class ParsedTransaction:
    def __init__(self, date: date, description: str, amount: Decimal, type: str,
                 category: Optional[str] = None, row: Optional[int] = None):
        self.date = date
        self.description = description
        self.amount = amount
        self.type = type
        self.category = category
        self.row = row

    def to_dict(self):
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": float(self.amount),
            "type": self.type,
            "category": self.category,
            "row": self.row,
        }


class ParseResult:
    def __init__(self, transactions: List[ParsedTransaction], errors: List[Dict],
                 skipped: int = 0, mapping: Optional[Dict[str, str]] = None):
        self.transactions = transactions
        self.errors = errors
        self.skipped = skipped
        self.mapping = mapping or {}

    def to_dict(self):
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "errors": self.errors[:MAX_ERRORS],
            "skipped": self.skipped,
            "mapping": self.mapping,
        }


class RawTable:
    """Header names plus data rows; ``line_numbers[i]`` is the file line of ``rows[i]``."""

    def __init__(self, headers: List[str], rows: List[Dict], line_numbers: List[int]):
        self.headers = headers
        self.rows = rows
        self.line_numbers = line_numbers


def _normalize_header(header) -> str:
    text = str(header or '').lower().replace('_', ' ')
    text = re.sub(r'[^a-z0-9]+', ' ', text)
    return ' '.join(text.split())


def detect_columns(headers) -> Dict[str, str]:
    normalized = {h: _normalize_header(h) for h in headers if h is not None}
    mapping: Dict[str, str] = {}
    claimed = set()

    # Exact matches first, in candidate priority order
    for field in FIELD_ORDER:
        for candidate in FIELD_CANDIDATES[field]:
            candidate = _normalize_header(candidate)
            match = next((h for h, n in normalized.items() if n == candidate and h not in claimed), None)
            if match is not None:
                mapping[field] = match
                claimed.add(match)
                break

    # Then whole-word containment ("Withdrawal Amt (INR)", "Transaction Remarks")
    for field in FIELD_ORDER:
        if field in mapping:
            continue
        for candidate in FIELD_CANDIDATES[field]:
            candidate = _normalize_header(candidate)
            if len(candidate) <= 3:
                continue
            for header, norm in normalized.items():
                if header in claimed:
                    continue
                if field != 'date' and 'date' in norm.split():
                    continue
                if field in AMOUNT_FIELDS and 'balance' in norm.split():
                    continue
                if f" {candidate} " in f" {norm} ":
                    mapping[field] = header
                    claimed.add(header)
                    break
            if field in mapping:
                break
    return mapping


def _looks_like_header(cells) -> bool:
    mapping = detect_columns([c for c in cells if c])
    return 'date' in mapping and any(f in mapping for f in AMOUNT_FIELDS)


def _header_names(cells) -> List[str]:
    names = []
    for idx, cell in enumerate(cells):
        name = str(cell).strip() if cell is not None else ''
        if not name or name in names:
            name = f"column_{idx + 1}"
        names.append(name)
    return names


def _decode(data: bytes) -> str:
    try:
        return data.decode('utf-8-sig')
    except UnicodeDecodeError:
        logger.info("Statement is not UTF-8, decoding as latin-1")
        return data.decode('latin-1')


def read_csv_rows(data: bytes) -> RawTable:
    text = _decode(data)
    lines = text.splitlines()
    sample = '\n'.join(lines[:50])
    try:
        delimiter = csv.Sniffer().sniff(sample, delimiters=',;\t|').delimiter
    except csv.Error:
        delimiter = ','

    # Keep the reader's line number per record so quoted newlines don't shift row numbers
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    records = [(reader.line_num, cells) for cells in reader]

    header_idx = None
    for idx, (_, cells) in enumerate(records[:50]):
        if _looks_like_header(cells):
            header_idx = idx
            break
    if header_idx is None:
        header_idx = next((i for i, (_, cells) in enumerate(records) if any(c.strip() for c in cells)), None)
    if header_idx is None:
        return RawTable([], [], [])

    header_cells = records[header_idx][1]
    headers = _header_names(header_cells)
    rows, line_numbers = [], []
    for line_num, cells in records[header_idx + 1:]:
        if not any(str(c).strip() for c in cells):
            continue
        rows.append({h: (cells[i] if i < len(cells) else '') for i, h in enumerate(headers)})
        line_numbers.append(line_num)
    return RawTable(headers, rows, line_numbers)


def read_xlsx_rows(data: bytes) -> RawTable:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise StatementParseError(f"Could not read Excel file: {e}") from e
    try:
        sheet = workbook.worksheets[0]
        all_rows = [(idx, list(values)) for idx, values in enumerate(sheet.iter_rows(values_only=True), start=1)]
    finally:
        workbook.close()

    non_empty = [(idx, values) for idx, values in all_rows
                 if any(v is not None and str(v).strip() for v in values)]
    if not non_empty:
        return RawTable([], [], [])

    header_pos = next((pos for pos, (_, values) in enumerate(non_empty[:50])
                       if _looks_like_header([str(v) if v is not None else '' for v in values])), 0)
    headers = _header_names(non_empty[header_pos][1])
    rows, line_numbers = [], []
    for line_num, values in non_empty[header_pos + 1:]:
        rows.append({h: (values[i] if i < len(values) else None) for i, h in enumerate(headers)})
        line_numbers.append(line_num)
    return RawTable(headers, rows, line_numbers)


def parse_amount(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    text = str(value).strip()
    if not text:
        return None
    negative = False
    upper = text.upper()
    if upper.endswith('DR'):
        negative, text = True, text[:-2]
    elif upper.endswith('CR'):
        text = text[:-2]
    text = CURRENCY_PATTERN.sub('', text)
    text = text.replace(',', '').replace(' ', '').strip()
    if text.startswith('(') and text.endswith(')'):
        negative, text = True, text[1:-1]
    if text.endswith('-'):
        negative, text = True, text[:-1]
    if text.startswith('-'):
        negative, text = True, text[1:]
    elif text.startswith('+'):
        text = text[1:]
    if not NUMBER_PATTERN.match(text):
        return None
    amount = Decimal(text)
    return -amount if negative else amount


def _from_excel_serial(serial: float) -> Optional[date]:
    if 1 <= serial < 100000:
        return EXCEL_EPOCH + timedelta(days=int(serial))
    return None


def normalize_date(value) -> Optional[date]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_excel_serial(float(value))

    text = str(value).strip()
    if not text:
        return None
    try:
        if EXCEL_SERIAL.match(text):
            return _from_excel_serial(float(text))
        match = ISO_DATE.match(text) or YMD_SLASH.match(text)
        if match:
            year, month, day = (int(p) for p in match.groups())
            return date(year, month, day)
        match = DAY_FIRST.match(text)
        if match:
            day, month, year = (int(p) for p in match.groups())
            if len(match.group(3)) == 2:
                year += 2000
            if month > 12 and day <= 12:
                day, month = month, day
            return date(year, month, day)
    except ValueError:
        return None

    for fmt in MONTH_NAME_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def _cell(row: Dict, header: Optional[str]):
    if not header:
        return None
    value = row.get(header)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _error(errors: List[Dict], line: int, message: str) -> None:
    if len(errors) < MAX_ERRORS:
        errors.append({"row": line, "message": message})


def normalize_rows(rows: List[Dict], mapping: Dict[str, str],
                   line_numbers: Optional[List[int]] = None) -> ParseResult:
    transactions: List[ParsedTransaction] = []
    errors: List[Dict] = []
    skipped = 0

    for idx, row in enumerate(rows):
        line = line_numbers[idx] if line_numbers else idx + 2
        if not any(v is not None and str(v).strip() for v in row.values()):
            continue

        raw_date = _cell(row, mapping.get('date'))
        if raw_date is None:
            _error(errors, line, "Missing date")
            continue
        parsed_date = normalize_date(raw_date)
        if parsed_date is None:
            _error(errors, line, f"Invalid date: {raw_date}")
            continue

        description = _cell(row, mapping.get('description'))
        description = ' '.join(str(description).split()) if description is not None else ''
        if not description:
            _error(errors, line, "Missing description")
            continue

        raw_amounts = {f: _cell(row, mapping.get(f)) for f in AMOUNT_FIELDS}
        debit = parse_amount(raw_amounts['debit'])
        credit = parse_amount(raw_amounts['credit'])
        signed = parse_amount(raw_amounts['amount'])

        if debit is not None and debit != 0:
            amount, tx_type = abs(debit), 'expense'
        elif credit is not None and credit != 0:
            amount, tx_type = abs(credit), 'income'
        elif signed is not None and signed != 0:
            amount = abs(signed)
            tx_type = 'expense' if signed < 0 else 'income'
            marker = _cell(row, mapping.get('type'))
            marker = _normalize_header(marker) if marker is not None else ''
            if marker in DEBIT_MARKERS:
                tx_type = 'expense'
            elif marker in CREDIT_MARKERS:
                tx_type = 'income'
        elif any(v is not None for v in (debit, credit, signed)):
            skipped += 1
            continue
        elif any(v is not None for v in raw_amounts.values()):
            bad = next(v for v in raw_amounts.values() if v is not None)
            _error(errors, line, f"Invalid amount: {bad}")
            continue
        else:
            _error(errors, line, "Missing amount")
            continue

        category = _cell(row, mapping.get('category'))
        transactions.append(ParsedTransaction(
            date=parsed_date,
            description=description,
            amount=amount.quantize(Decimal('0.01')),
            type=tx_type,
            category=str(category).strip() if category is not None else None,
            row=line,
        ))

    return ParseResult(transactions, errors, skipped, mapping)


def parse_statement(filename: str, data: bytes, column_mapping: Optional[Dict[str, str]] = None) -> ParseResult:
    name = (filename or '').lower()
    if name.endswith('.csv'):
        table = read_csv_rows(data)
    elif name.endswith('.xlsx'):
        table = read_xlsx_rows(data)
    else:
        raise UnsupportedFileError("Unsupported file format. Please upload CSV or XLSX file.")

    if not table.rows:
        raise StatementParseError("No data found in file")

    mapping = detect_columns(table.headers)
    for field, header in (column_mapping or {}).items():
        if not header:
            continue
        if header not in table.headers:
            raise StatementParseError(f"Column not found: {header}")
        mapping[field] = header

    if 'date' not in mapping or 'description' not in mapping or not any(f in mapping for f in AMOUNT_FIELDS):
        raise StatementParseError(
            "Could not detect date, description and amount columns. Found: " + ", ".join(table.headers)
        )

    result = normalize_rows(table.rows, mapping, table.line_numbers)
    logger.info("Parsed %s: %d transactions, %d errors, %d skipped",
                filename, len(result.transactions), len(result.errors), result.skipped)
    return result


def make_external_id(user_id: str, tx) -> str:
    tx_date = get_field(tx, 'date')
    if isinstance(tx_date, (date, datetime)):
        tx_date = tx_date.isoformat()
    description = ' '.join(str(get_field(tx, 'description') or '').lower().split())
    amount = Decimal(str(get_field(tx, 'amount'))).quantize(Decimal('0.01'))
    return f"{user_id}_{tx_date}_{description}_{amount}_{get_field(tx, 'type')}"
