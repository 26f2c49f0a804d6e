from datetime import date

import pytest

from recurring import advance_due_date, mark_paid, classify_due, detect_recurring, normalize_description


@pytest.mark.parametrize("frequency, expected", [
    ("daily", date(2024, 2, 1)),
    ("weekly", date(2024, 2, 7)),
    ("biweekly", date(2024, 2, 14)),
    ("monthly", date(2024, 2, 29)),
    ("quarterly", date(2024, 4, 30)),
    ("yearly", date(2025, 1, 31)),
])
def test_advance_due_date(frequency, expected):
    assert advance_due_date(date(2024, 1, 31), frequency) == expected


def test_unknown_frequency():
    with pytest.raises(ValueError):
        advance_due_date(date(2024, 1, 1), "fortnightly-ish")


def test_mark_paid():
    payment = {"title": "Netflix", "amount": 649, "category": "Entertainment",
               "frequency": "monthly", "next_due_date": date(2024, 3, 15)}
    transaction, next_due = mark_paid(payment, date(2024, 3, 16))

    assert next_due == date(2024, 4, 15)
    assert transaction == {
        "type": "expense", "amount": 649, "category": "Entertainment", "description": "Netflix",
        "date": date(2024, 3, 16), "status": "completed", "source": "recurring",
    }


def test_classify_due():
    today = date(2024, 3, 10)
    payments = [
        {"title": "late", "next_due_date": date(2024, 3, 1), "is_active": True},
        {"title": "today", "next_due_date": today, "is_active": True},
        {"title": "soon", "next_due_date": date(2024, 3, 20), "is_active": True},
        {"title": "far", "next_due_date": date(2024, 6, 1), "is_active": True},
        {"title": "paused", "next_due_date": date(2024, 3, 1), "is_active": False},
    ]
    buckets = classify_due(payments, today=today)
    assert {k: [p["title"] for p in v] for k, v in buckets.items()} == {
        "overdue": ["late"], "dueToday": ["today"], "upcoming": ["soon"]
    }


def test_normalize_description():
    assert normalize_description("NETFLIX.COM 1234") == "netflix com"


def test_detect_monthly_subscription():
    transactions = [
        {"type": "expense", "amount": 649, "category": "Entertainment",
         "description": f"NETFLIX.COM {ref}", "date": day}
        for ref, day in (("1111", date(2024, 1, 5)), ("2222", date(2024, 2, 5)), ("3333", date(2024, 3, 5)))
    ]
    transactions += [
        {"type": "expense", "amount": 300, "category": "Food", "description": "Zomato", "date": date(2024, 1, 9)},
        {"type": "expense", "amount": 900, "category": "Food", "description": "Zomato", "date": date(2024, 1, 20)},
        {"type": "income", "amount": 50000, "category": "Salary", "description": "Salary", "date": date(2024, 1, 1)},
    ]

    [found] = detect_recurring(transactions)
    assert found["frequency"] == "monthly"
    assert found["occurrences"] == 3
    assert found["amount"] == 649
    assert found["confidence"] == 0.98
    assert found["lastOccurrence"] == "2024-03-05"
    assert found["nextExpected"] == "2024-04-05"


def test_irregular_payments_are_not_recurring():
    transactions = [
        {"type": "expense", "amount": 100, "category": "Food", "description": "Cafe", "date": day}
        for day in (date(2024, 1, 1), date(2024, 1, 3), date(2024, 2, 20))
    ]
    assert detect_recurring(transactions) == []
