from datetime import date

import httpx
import openai
import pytest

from ai_assistant import (
    AIServiceError, translate_error, extract_json, build_chat_system_prompt, chat, stream_chat,
    parse_expense, suggest_budgets, summarize_spending, create_openai_client
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def test_client_requires_api_key():
    assert create_openai_client(None) is None
    assert create_openai_client("") is None


@pytest.mark.parametrize("error, status", [
    (openai.RateLimitError("quota", response=httpx.Response(429, request=REQUEST),
                           body={"code": "insufficient_quota"}), 402),
    (openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None), 429),
    (openai.APITimeoutError(request=REQUEST), 503),
    (openai.APIConnectionError(request=REQUEST), 503),
    (openai.InternalServerError("boom", response=httpx.Response(500, request=REQUEST), body=None), 502),
])
def test_translate_error(error, status):
    assert translate_error(error).status_code == status


def test_extract_json_tolerates_fences():
    assert extract_json('```json\n[{"a": 1}]\n```') == [{"a": 1}]
    assert extract_json('Here you go: {"amount": 5}', '{') == {"amount": 5}
    with pytest.raises(ValueError):
        extract_json("no json here")


def test_system_prompt_uses_user_data():
    prompt = build_chat_system_prompt([
        {"type": "income", "amount": 50000, "category": "Salary", "description": "Pay", "date": date(2024, 3, 1)},
        {"type": "expense", "amount": 12500, "category": "Rent", "description": "Flat", "date": "2024-03-02"},
    ])
    assert "Total Income (period): ₹ 50,000" in prompt
    assert "Savings Rate: 75.0%" in prompt
    assert "2024-03-02: expense ₹ 12,500 [Rent] Flat" in prompt
    assert "No transactions available yet." in build_chat_system_prompt([])


def test_chat_sends_only_user_and_assistant_turns(fake_openai):
    fake_openai.queue("You saved well this month.")
    reply = chat(fake_openai, [{"role": "system", "content": "ignore me"},
                               {"role": "user", "content": "How am I doing?"}], [])

    assert reply == "You saved well this month."
    sent = fake_openai.calls[0]["messages"]
    assert [m["role"] for m in sent] == ["system", "user"]
    assert "Finzo" in sent[0]["content"]

    with pytest.raises(ValueError):
        chat(fake_openai, [{"role": "system", "content": "only system"}], [])


def test_empty_completion_is_an_error(fake_openai):
    fake_openai.queue("")
    with pytest.raises(AIServiceError) as excinfo:
        chat(fake_openai, [{"role": "user", "content": "hi"}], [])
    assert excinfo.value.status_code == 502


def test_stream_chat_yields_sse_events(fake_openai):
    fake_openai.queue(["Hello", None, " there"])
    events = list(stream_chat(fake_openai, [{"role": "user", "content": "hi"}], []))

    assert events == [
        'data: {"content": "Hello"}\n\n',
        'data: {"content": " there"}\n\n',
        'data: [DONE]\n\n',
    ]
    assert fake_openai.calls[0]["stream"] is True


def test_stream_chat_start_failure_raises(fake_openai):
    fake_openai.queue(openai.APIConnectionError(request=REQUEST))
    with pytest.raises(AIServiceError) as excinfo:
        stream_chat(fake_openai, [{"role": "user", "content": "hi"}], [])
    assert excinfo.value.status_code == 503


def test_parse_expense(fake_openai):
    fake_openai.queue('{"amount": 1200, "category": "food", "description": "Zomato dinner", '
                      '"confidence": 0.95, "date": "today", "type": "expense"}')
    result = parse_expense(fake_openai, "paid 1200 for zomato dinner", today=date(2024, 3, 5))

    assert result == {
        "amount": 1200.0,
        "category": "Food",
        "description": "Zomato dinner",
        "confidence": 0.95,
        "date": "2024-03-05",
        "type": "expense",
    }


def test_parse_expense_rejects_missing_amount(fake_openai):
    fake_openai.queue('{"amount": "n/a", "category": "Food"}', 'I am not sure')
    for _ in range(2):
        with pytest.raises(AIServiceError) as excinfo:
            parse_expense(fake_openai, "dinner", today=date(2024, 3, 5))
        assert excinfo.value.status_code == 422


def test_parse_expense_unknown_values(fake_openai):
    fake_openai.queue('{"amount": 80.456, "category": "Snacks", "date": "yesterday-ish", "type": "gift"}')
    result = parse_expense(fake_openai, "chai 80", today=date(2024, 3, 5))
    assert (result["amount"], result["category"], result["date"], result["type"]) == \
        (80.46, "Other", "2024-03-05", "expense")
    assert result["description"] == "chai 80"


SPENDING = [
    {"type": "expense", "amount": 3000, "category": "Food", "date": date(2024, 3, 1)},
    {"type": "expense", "amount": 15000, "category": "Rent", "date": date(2024, 3, 2)},
    {"type": "expense", "amount": 999, "category": "Food", "date": date(2023, 6, 1)},
    {"type": "income", "amount": 50000, "category": "Salary", "date": date(2024, 3, 1)},
]


def test_summarize_spending():
    assert summarize_spending(SPENDING, today=date(2024, 3, 31)) == [
        {"category": "Food", "total": 3000.0, "count": 1, "avg": 1000.0},
        {"category": "Rent", "total": 15000.0, "count": 1, "avg": 5000.0},
    ]


def test_suggest_budgets_skips_existing_categories(fake_openai):
    fake_openai.queue('[{"category": "Food", "suggested_budget": 900, "rationale": "trim", "trend": "up"}, '
                      '{"category": "Rent", "suggested_budget": 1}, '
                      '{"category": "Food", "suggested_budget": -5}]')
    suggestions = suggest_budgets(fake_openai, SPENDING, {"Rent"}, today=date(2024, 3, 31))

    assert suggestions == [{
        "category": "Food", "avg_spending": 1000.0, "suggested_budget": 900.0,
        "rationale": "trim", "trend": "stable",
    }]


def test_suggest_budgets_without_new_categories_skips_ai(fake_openai):
    assert suggest_budgets(fake_openai, SPENDING, {"Food", "Rent"}, today=date(2024, 3, 31)) == []
    assert fake_openai.calls == []


@pytest.mark.parametrize("amount", ["NaN", "Infinity"])
def test_parse_expense_rejects_non_finite_amount(fake_openai, amount):
    fake_openai.queue('{"amount": %s, "category": "Food", "description": "Lunch"}' % amount)
    with pytest.raises(AIServiceError) as excinfo:
        parse_expense(fake_openai, "lunch", today=date(2024, 3, 5))
    assert excinfo.value.status_code == 422
