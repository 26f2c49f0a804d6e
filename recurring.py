import logging
import re
import statistics
from datetime import date, timedelta
from typing import Dict, List, Iterable, Optional, Tuple

from dateutil.relativedelta import relativedelta

from finance_calc import get_field, amount_of, to_date

logger = logging.getLogger(__name__)

FREQUENCY_STEPS = {
    'daily': relativedelta(days=1),
    'weekly': relativedelta(weeks=1),
    'biweekly': relativedelta(weeks=2),
    'monthly': relativedelta(months=1),
    'quarterly': relativedelta(months=3),
    'yearly': relativedelta(years=1),
}

# (frequency, min gap days, max gap days)
INTERVAL_WINDOWS = [
    ('weekly', 6, 8),
    ('biweekly', 13, 16),
    ('monthly', 27, 33),
    ('quarterly', 85, 95),
    ('yearly', 355, 375),
]

AMOUNT_TOLERANCE = 0.10


def advance_due_date(current: date, frequency: str) -> date:
    step = FREQUENCY_STEPS.get(frequency)
    if step is None:
        raise ValueError(f"Unknown frequency: {frequency}")
    return current + step


def mark_paid(payment, paid_on: Optional[date] = None) -> Tuple[Dict, date]:
    """Return the expense payload recorded for a paid instalment and the
    payment's next due date (advanced from the current due date)."""
    paid_on = paid_on or date.today()
    transaction = {
        "type": "expense",
        "amount": get_field(payment, 'amount'),
        "category": get_field(payment, 'category'),
        "description": get_field(payment, 'title'),
        "date": paid_on,
        "status": "completed",
        "source": "recurring",
    }
    next_due = advance_due_date(to_date(get_field(payment, 'next_due_date')), get_field(payment, 'frequency'))
    return transaction, next_due


def classify_due(payments: Iterable, today: Optional[date] = None, horizon_days: int = 30) -> Dict[str, List]:
    today = today or date.today()
    buckets = {"overdue": [], "dueToday": [], "upcoming": []}
    for payment in payments:
        if not get_field(payment, 'is_active', True):
            continue
        due = to_date(get_field(payment, 'next_due_date'))
        if due < today:
            buckets["overdue"].append(payment)
        elif due == today:
            buckets["dueToday"].append(payment)
        elif due <= today + timedelta(days=horizon_days):
            buckets["upcoming"].append(payment)
    return buckets


def normalize_description(description: str) -> str:
    text = re.sub(r'[\d\W_]+', ' ', (description or '').lower())
    return ' '.join(text.split())


def _infer_frequency(median_gap: float) -> Optional[str]:
    for frequency, low, high in INTERVAL_WINDOWS:
        if low <= median_gap <= high:
            return frequency
    return None


def _stability(values: List[float]) -> float:
    if len(values) < 2:
        return 1.0
    center = statistics.median(values)
    if center <= 0:
        return 0.0
    return max(0.0, 1 - min(statistics.pstdev(values) / center, 1.0))


def detect_recurring(transactions: Iterable, min_occurrences: int = 3) -> List[Dict]:
    groups: Dict[str, List] = {}
    for t in transactions:
        if get_field(t, 'type') != 'expense':
            continue
        key = normalize_description(get_field(t, 'description') or '')
        if not key:
            continue
        groups.setdefault(key, []).append(t)

    detected = []
    for key, items in groups.items():
        if len(items) < min_occurrences:
            continue
        median_amount = statistics.median(amount_of(t) for t in items)
        similar = [t for t in items if abs(amount_of(t) - median_amount) <= median_amount * AMOUNT_TOLERANCE]
        if len(similar) < min_occurrences:
            continue

        similar.sort(key=lambda t: to_date(get_field(t, 'date')))
        dates = [to_date(get_field(t, 'date')) for t in similar]
        gaps = [(b - a).days for a, b in zip(dates, dates[1:]) if (b - a).days > 0]
        if len(gaps) < min_occurrences - 1:
            continue

        frequency = _infer_frequency(statistics.median(gaps))
        if frequency is None:
            continue

        amounts = [amount_of(t) for t in similar]
        confidence = 0.6 * _stability(gaps) + 0.4 * _stability(amounts)
        latest = similar[-1]
        detected.append({
            "description": get_field(latest, 'description'),
            "category": get_field(latest, 'category'),
            "amount": round(statistics.median(amounts), 2),
            "frequency": frequency,
            "occurrences": len(similar),
            "confidence": round(confidence, 2),
            "lastOccurrence": dates[-1].isoformat(),
            "nextExpected": advance_due_date(dates[-1], frequency).isoformat(),
        })

    logger.info("Detected %d recurring patterns in %d groups", len(detected), len(groups))
    return sorted(detected, key=lambda r: r["confidence"], reverse=True)
