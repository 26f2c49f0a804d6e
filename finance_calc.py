import calendar
from datetime import date, datetime
from typing import List, Dict, Optional, Iterable, Any

from dateutil.relativedelta import relativedelta
from dateutil import parser as date_parser

from models import INVESTMENT_CATEGORIES

BUDGET_WARNING_PERCENT = 80
BUDGET_EXCEEDED_PERCENT = 100


def get_field(item: Any, key: str, default=None):
    if isinstance(item, dict):
        return item.get(key, default)
    return getattr(item, key, default)


def amount_of(item: Any) -> float:
    value = get_field(item, 'amount')
    return float(value) if value is not None else 0.0


def to_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.parse(str(value)).date()


def _round(value: float) -> float:
    return round(value + 0.0, 2)


def add_months(start: date, months: int) -> date:
    return start + relativedelta(months=months)


class DateRange:
    """Inclusive range of calendar days."""

    def __init__(self, start: date, end: date, label: Optional[str] = None):
        self.start = start
        self.end = end
        self.label = label

    def contains(self, value) -> bool:
        day = to_date(value)
        return day is not None and self.start <= day <= self.end

    def to_dict(self):
        result = {"start": self.start.isoformat(), "end": self.end.isoformat()}
        if self.label:
            result["label"] = self.label
        return result

    def __eq__(self, other):
        return isinstance(other, DateRange) and (self.start, self.end) == (other.start, other.end)

    def __repr__(self):
        return f"DateRange({self.start}, {self.end})"


def month_range(year: int, month: int, label: Optional[str] = None) -> DateRange:
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last_day), label)


def current_month_range(today: Optional[date] = None) -> DateRange:
    today = today or date.today()
    return month_range(today.year, today.month)


def last_n_months_range(n: int, today: Optional[date] = None) -> DateRange:
    today = today or date.today()
    first = add_months(today.replace(day=1), -(max(n, 1) - 1))
    return DateRange(first, current_month_range(today).end)


def date_range_presets(today: Optional[date] = None) -> List[DateRange]:
    today = today or date.today()
    last_month = add_months(today.replace(day=1), -1)
    this_month = current_month_range(today)
    return [
        DateRange(this_month.start, this_month.end, "This Month"),
        month_range(last_month.year, last_month.month, "Last Month"),
        DateRange(last_n_months_range(3, today).start, this_month.end, "Last 3 Months"),
        DateRange(last_n_months_range(6, today).start, this_month.end, "Last 6 Months"),
        DateRange(date(today.year, 1, 1), date(today.year, 12, 31), "This Year"),
    ]


def parse_date_range(start: Optional[str] = None, end: Optional[str] = None,
                     month: Optional[str] = None, today: Optional[date] = None) -> Optional[DateRange]:
    """Build a range from query parameters.

    ``month`` (``YYYY-MM``) wins over explicit bounds. A missing bound is
    left open by using date.min / date.max. Returns None when nothing is given.
    Raises ValueError on malformed input.
    """
    if month:
        try:
            year, month_num = (int(part) for part in month.split('-'))
            return month_range(year, month_num)
        except (ValueError, calendar.IllegalMonthError) as e:
            raise ValueError(f"Invalid month: {month}") from e
    if not start and not end:
        return None
    start_date = date.fromisoformat(start) if start else date.min
    end_date = date.fromisoformat(end) if end else date.max
    if start_date > end_date:
        raise ValueError("Start date must be before end date")
    return DateRange(start_date, end_date)


def filter_by_date_range(items: Iterable, date_range: Optional[DateRange], field: str = 'date') -> List:
    if date_range is None:
        return list(items)
    return [item for item in items if date_range.contains(get_field(item, field))]


def available_months(transactions: Iterable) -> List[Dict]:
    counts: Dict[str, int] = {}
    for t in transactions:
        day = to_date(t if isinstance(t, (date, datetime)) else get_field(t, 'date'))
        if day is None:
            continue
        key = day.strftime('%Y-%m')
        counts[key] = counts.get(key, 0) + 1
    months = []
    for key in sorted(counts, reverse=True):
        year, month = (int(part) for part in key.split('-'))
        months.append({
            "value": key,
            "label": date(year, month, 1).strftime('%B %Y'),
            "count": counts[key],
        })
    return months


# EMI

def calculate_emi(principal, annual_rate, tenure_months) -> float:
    principal = float(principal)
    annual_rate = float(annual_rate)
    tenure_months = int(tenure_months)
    if principal <= 0 or tenure_months <= 0:
        return 0.0
    if annual_rate == 0:
        return _round(principal / tenure_months)

    monthly_rate = annual_rate / 12 / 100
    factor = (1 + monthly_rate) ** tenure_months
    emi = (principal * monthly_rate * factor) / (factor - 1)
    return _round(emi)


def calculate_total_interest(principal, emi, tenure_months) -> float:
    return _round(float(emi) * int(tenure_months) - float(principal))


def generate_emi_schedule(loan) -> List[Dict]:
    monthly_rate = float(get_field(loan, 'interest_rate')) / 12 / 100
    outstanding = float(get_field(loan, 'principal_amount'))
    emi = float(get_field(loan, 'monthly_emi') or 0) or calculate_emi(
        outstanding, get_field(loan, 'interest_rate'), get_field(loan, 'tenure_months')
    )
    start_date = to_date(get_field(loan, 'start_date'))

    schedule = []
    for month in range(1, int(get_field(loan, 'tenure_months')) + 1):
        interest = outstanding * monthly_rate
        principal = emi - interest
        outstanding = max(0.0, outstanding - principal)
        schedule.append({
            "month": month,
            "emiAmount": _round(emi),
            "principalComponent": _round(principal),
            "interestComponent": _round(interest),
            "outstandingBalance": _round(outstanding),
            "paymentDate": add_months(start_date, month - 1).isoformat(),
        })
    return schedule


def split_payment(outstanding, annual_rate, amount) -> Dict:
    outstanding = float(outstanding)
    amount = float(amount)
    interest = _round(outstanding * float(annual_rate) / 12 / 100)
    principal = min(max(0.0, amount - interest), outstanding)
    return {
        "principal_component": _round(principal),
        "interest_component": _round(min(interest, amount)),
        "outstanding_balance": _round(max(0.0, outstanding - principal)),
    }


def current_outstanding(loan, payments: Iterable) -> float:
    """Balance after the latest completed payment, or the principal if none."""
    completed = [p for p in payments if get_field(p, 'status', 'completed') == 'completed']
    if not completed:
        return float(get_field(loan, 'principal_amount'))
    completed.sort(key=lambda p: (to_date(get_field(p, 'payment_date')), str(get_field(p, 'created_at') or '')))
    latest = completed[-1]
    if get_field(latest, 'outstanding_balance') is not None:
        return float(get_field(latest, 'outstanding_balance'))
    repaid = sum(float(get_field(p, 'principal_component') or 0) for p in completed)
    return max(0.0, float(get_field(loan, 'principal_amount')) - repaid)


def loan_progress(loan, payments: Iterable, today: Optional[date] = None) -> Dict:
    today = today or date.today()
    payments = [p for p in payments if get_field(p, 'status', 'completed') == 'completed']
    principal = float(get_field(loan, 'principal_amount'))
    tenure = int(get_field(loan, 'tenure_months'))
    outstanding = current_outstanding(loan, payments)

    start_date = to_date(get_field(loan, 'start_date'))
    elapsed = 0
    if today >= start_date:
        delta = relativedelta(today, start_date)
        elapsed = min(tenure, delta.years * 12 + delta.months + 1)

    last_payment = max((to_date(get_field(p, 'payment_date')) for p in payments), default=None)
    return {
        "totalPaid": _round(sum(float(get_field(p, 'amount_paid')) for p in payments)),
        "paymentsCount": len(payments),
        "lastPaymentDate": last_payment.isoformat() if last_payment else None,
        "outstandingBalance": _round(outstanding),
        "monthsElapsed": elapsed,
        "monthsRemaining": max(0, tenure - len(payments)),
        "percentRepaid": _round((principal - outstanding) / principal * 100) if principal > 0 else 0.0,
        "totalInterest": calculate_total_interest(principal, get_field(loan, 'monthly_emi'), tenure),
    }


def _due_date_in(start_day: int, year: int, month: int) -> date:
    return date(year, month, min(start_day, calendar.monthrange(year, month)[1]))


def get_upcoming_emis(loans: Iterable, transactions: Iterable, date_range: DateRange,
                      today: Optional[date] = None) -> List[Dict]:
    """One entry per active loan: due on the loan's start day within the period.

    A due date before the period start (or before ``today`` when given) rolls
    over to the following month.
    """
    transactions = list(transactions)
    cutoff = max(date_range.start, today) if today else date_range.start
    upcoming = []
    for loan in loans:
        if get_field(loan, 'status') != 'active':
            continue
        start_day = to_date(get_field(loan, 'start_date')).day
        due = _due_date_in(start_day, date_range.start.year, date_range.start.month)
        if due < cutoff:
            nxt = add_months(date_range.start.replace(day=1), 1)
            due = _due_date_in(start_day, nxt.year, nxt.month)

        is_paid = any(
            get_field(t, 'loan_id') == get_field(loan, 'id')
            and get_field(t, 'type') == 'expense'
            and date_range.contains(get_field(t, 'date'))
            for t in transactions
        )
        upcoming.append({
            "loanId": get_field(loan, 'id'),
            "loanName": get_field(loan, 'loan_name'),
            "amount": float(get_field(loan, 'monthly_emi')),
            "dueDate": due.isoformat(),
            "isPaid": is_paid,
        })
    return sorted(upcoming, key=lambda e: e["dueDate"])


def emi_summary(loans: Iterable, transactions: Iterable, today: Optional[date] = None) -> Dict:
    today = today or date.today()
    loans = [loan for loan in loans if get_field(loan, 'status') == 'active']
    transactions = list(transactions)
    this_month = current_month_range(today)

    paid_this_month = sum(
        amount_of(t) for t in transactions
        if get_field(t, 'loan_id') and get_field(t, 'type') == 'expense' and this_month.contains(get_field(t, 'date'))
    )
    upcoming = get_upcoming_emis(loans, transactions, this_month, today=today)

    return {
        "totalMonthlyEMI": _round(sum(float(get_field(loan, 'monthly_emi')) for loan in loans)),
        "totalPaidThisMonth": _round(paid_this_month),
        "totalPendingThisMonth": _round(sum(e["amount"] for e in upcoming if not e["isPaid"])),
        "activeLoansCount": len(loans),
        "upcomingEMIs": upcoming,
    }


# Budgets

def calculate_budget_utilization(budget_limit, spent) -> Dict:
    budget_limit = float(budget_limit)
    spent = float(spent)
    remaining = max(0.0, budget_limit - spent)
    utilization = (spent / budget_limit) * 100 if budget_limit > 0 else 0.0

    status = 'safe'
    if utilization >= BUDGET_EXCEEDED_PERCENT:
        status = 'exceeded'
    elif utilization >= BUDGET_WARNING_PERCENT:
        status = 'warning'

    return {
        "category": '',
        "budgetLimit": _round(budget_limit),
        "spent": _round(spent),
        "remaining": _round(remaining),
        "utilizationPercent": _round(utilization),
        "status": status,
    }


def calculate_all_budget_utilizations(budgets: Iterable, transactions: Iterable,
                                      date_range: DateRange) -> List[Dict]:
    expenses_by_category: Dict[str, float] = {}
    for t in transactions:
        if get_field(t, 'type') == 'expense' and date_range.contains(get_field(t, 'date')):
            category = get_field(t, 'category')
            expenses_by_category[category] = expenses_by_category.get(category, 0.0) + amount_of(t)

    results = []
    for budget in budgets:
        utilization = calculate_budget_utilization(
            get_field(budget, 'monthly_limit'), expenses_by_category.get(get_field(budget, 'category'), 0.0)
        )
        utilization["category"] = get_field(budget, 'category')
        if get_field(budget, 'id'):
            utilization["budgetId"] = get_field(budget, 'id')
        results.append(utilization)
    return results


# Aggregations

def calculate_financial_summary(transactions: Iterable, investment_total=None) -> Dict:
    transactions = list(transactions)
    income = sum(amount_of(t) for t in transactions if get_field(t, 'type') == 'income')
    expenses = sum(amount_of(t) for t in transactions if get_field(t, 'type') == 'expense')
    emi = sum(
        amount_of(t) for t in transactions
        if get_field(t, 'type') == 'emi'
        or (get_field(t, 'type') == 'expense' and 'emi' in (get_field(t, 'category') or '').lower())
    )
    if investment_total is None:
        investment_total = sum(amount_of(t) for t in transactions if get_field(t, 'type') == 'investment')
    investment_total = float(investment_total)

    net_savings = income - expenses - investment_total
    savings_rate = (net_savings / income) * 100 if income > 0 else 0.0

    return {
        "totalIncome": _round(income),
        "totalExpenses": _round(expenses),
        "totalInvestments": _round(investment_total),
        "totalEMI": _round(emi),
        "netSavings": _round(net_savings),
        "savingsRate": _round(savings_rate),
        "transactionCount": len(transactions),
    }


def group_transactions_by_category(transactions: Iterable, type: Optional[str] = None) -> List[Dict]:
    filtered = [t for t in transactions if not type or get_field(t, 'type') == type]
    total = sum(amount_of(t) for t in filtered)

    grouped: Dict[str, Dict] = {}
    for t in filtered:
        entry = grouped.setdefault(get_field(t, 'category'), {"amount": 0.0, "count": 0})
        entry["amount"] += amount_of(t)
        entry["count"] += 1

    result = [
        {
            "category": category,
            "amount": _round(data["amount"]),
            "count": data["count"],
            "percentage": _round(data["amount"] / total * 100) if total > 0 else 0.0,
        }
        for category, data in grouped.items()
    ]
    return sorted(result, key=lambda c: c["amount"], reverse=True)


def calculate_monthly_totals(transactions: Iterable) -> List[Dict]:
    monthly: Dict[str, Dict] = {}
    for t in transactions:
        day = to_date(get_field(t, 'date'))
        key = day.strftime('%Y-%m')
        entry = monthly.setdefault(key, {
            "month": key,
            "label": day.strftime('%b %Y'),
            "income": 0.0,
            "expenses": 0.0,
            "investments": 0.0,
            "savings": 0.0,
        })
        kind = get_field(t, 'type')
        if kind == 'income':
            entry["income"] += amount_of(t)
        elif kind == 'expense':
            entry["expenses"] += amount_of(t)
        elif kind == 'investment':
            entry["investments"] += amount_of(t)

    result = []
    for key in sorted(monthly):
        entry = monthly[key]
        entry["savings"] = entry["income"] - entry["expenses"] - entry["investments"]
        for field in ("income", "expenses", "investments", "savings"):
            entry[field] = _round(entry[field])
        result.append(entry)
    return result


# Lending

def aggregate_lending_by_person(lending: Iterable) -> List[Dict]:
    people: Dict[str, Dict] = {}
    for t in lending:
        person = people.setdefault(get_field(t, 'person_name'), {
            "lent": 0.0, "borrowed": 0.0, "repaid_by_them": 0.0, "repaid_by_me": 0.0, "count": 0
        })
        person["count"] += 1
        kind = get_field(t, 'type')
        if kind in person:
            person[kind] += amount_of(t)

    result = []
    for name, data in people.items():
        total_lent = data["lent"] - data["repaid_by_them"]
        total_borrowed = data["borrowed"] - data["repaid_by_me"]
        if total_lent == 0 and total_borrowed == 0:
            continue
        result.append({
            "name": name,
            "totalLent": _round(total_lent),
            "totalBorrowed": _round(total_borrowed),
            "netBalance": _round(total_lent - total_borrowed),
            "transactions": data["count"],
        })
    return sorted(result, key=lambda p: abs(p["netBalance"]), reverse=True)


def calculate_lending_summary(lending: Iterable) -> Dict:
    totals = {"lent": 0.0, "borrowed": 0.0, "repaid_by_them": 0.0, "repaid_by_me": 0.0}
    for t in lending:
        kind = get_field(t, 'type')
        if kind in totals:
            totals[kind] += amount_of(t)
    return {
        "totalLent": _round(totals["lent"]),
        "totalBorrowed": _round(totals["borrowed"]),
        "pendingRecovery": _round(totals["lent"] - totals["repaid_by_them"]),
        "pendingRepayment": _round(totals["borrowed"] - totals["repaid_by_me"]),
    }


# Investments

def aggregate_investments_by_category(transactions: Iterable) -> Dict:
    summary = {info["key"]: 0.0 for info in INVESTMENT_CATEGORIES.values()}
    for t in transactions:
        info = INVESTMENT_CATEGORIES.get(get_field(t, 'category'))
        if info:
            summary[info["key"]] += amount_of(t)
    summary = {key: _round(value) for key, value in summary.items()}
    summary["totalInvestment"] = _round(sum(summary.values()))
    return summary


def calculate_cagr(beginning_value, ending_value, years) -> float:
    beginning_value, ending_value, years = float(beginning_value), float(ending_value), float(years)
    if beginning_value <= 0 or years <= 0 or ending_value < 0:
        return 0.0
    cagr = (ending_value / beginning_value) ** (1 / years) - 1
    return round(cagr * 100, 2)


def calculate_absolute_returns(invested, current_value) -> float:
    invested = float(invested)
    if invested == 0:
        return 0.0
    return _round((float(current_value) - invested) / invested * 100)


def calculate_unrealized_pl(invested, current_value) -> float:
    return _round(float(current_value) - float(invested))


def get_investment_risk_level(investment_type: str) -> str:
    info = INVESTMENT_CATEGORIES.get(investment_type)
    return info["risk"] if info else "Moderate"


# Insights

def spending_insights(transactions: Iterable, today: Optional[date] = None) -> List[Dict]:
    today = today or date.today()
    transactions = list(transactions)
    this_month = current_month_range(today)
    prev = add_months(this_month.start, -1)
    last_month = month_range(prev.year, prev.month)

    current = filter_by_date_range(transactions, this_month)
    previous = filter_by_date_range(transactions, last_month)
    current_summary = calculate_financial_summary(current)
    previous_summary = calculate_financial_summary(previous)

    insights = []
    cur_exp = current_summary["totalExpenses"]
    prev_exp = previous_summary["totalExpenses"]
    if prev_exp > 0 and cur_exp > 0:
        change = (cur_exp - prev_exp) / prev_exp * 100
        if change >= 10:
            insights.append({"type": "negative",
                             "message": f"Spending is up {change:.0f}% compared to last month"})
        elif change <= -10:
            insights.append({"type": "positive",
                             "message": f"Spending is down {abs(change):.0f}% compared to last month"})
        else:
            insights.append({"type": "neutral", "message": "Spending is steady compared to last month"})

    categories = group_transactions_by_category(current, 'expense')
    if categories and cur_exp > 0:
        top = categories[0]
        kind = "negative" if top["percentage"] >= 40 else "neutral"
        insights.append({"type": kind,
                         "message": f"{top['category']} is your top expense at {top['percentage']:.0f}% of spending"})

    if current_summary["totalIncome"] > 0:
        rate = current_summary["savingsRate"]
        if rate >= 20:
            insights.append({"type": "positive", "message": f"Great job! You are saving {rate:.0f}% of your income"})
        elif rate < 0:
            insights.append({"type": "negative", "message": "You are spending more than you earn this month"})
        else:
            insights.append({"type": "neutral",
                             "message": f"Savings rate is {rate:.0f}%; aim for at least 20%"})

    expenses = [t for t in current if get_field(t, 'type') == 'expense']
    if len(expenses) >= 3:
        average = cur_exp / len(expenses)
        large = [t for t in expenses if amount_of(t) >= average * 3]
        if large:
            biggest = max(large, key=amount_of)
            insights.append({"type": "neutral",
                             "message": f"Large expense: {get_field(biggest, 'description') or get_field(biggest, 'category')}"})
    return insights
