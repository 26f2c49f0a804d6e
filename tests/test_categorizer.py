import httpx
import openai

from categorizer import (
    categorize_by_keywords, categorize_transactions, categorize_with_fallback,
    suggest_category, apply_categories, normalize_category
)


def test_keyword_rules():
    result = categorize_by_keywords("UPI/ZOMATO/ORDER 1234")
    assert (result.category, result.confidence, result.method) == ("Food", 0.6, "keywords")
    assert categorize_by_keywords("NEFT SALARY MARCH", type='income').category == "Salary"
    assert categorize_by_keywords("Uber ride to airport").category == "Travel"
    assert categorize_by_keywords("something unusual").to_dict() == {
        "category": "Other", "confidence": 0.3, "method": "keywords"
    }


def test_income_rows_only_take_income_categories():
    assert categorize_by_keywords("AMAZON REFUND", type='income').category == "Other"
    assert categorize_by_keywords("AMAZON REFUND", type='expense').category == "Shopping"


def test_normalize_category():
    assert normalize_category(" food ") == "Food"
    assert normalize_category("Groceries") == "Other"
    assert normalize_category(None) == "Other"


def test_ai_batch_results_are_normalized(fake_openai):
    fake_openai.queue('```json\n[{"category": "food", "confidence": 0.9}, '
                      '{"category": "Nonsense", "confidence": 1.7}]\n```')
    rows = [
        {"description": "Zomato", "amount": 450, "type": "expense"},
        {"description": "Mystery", "amount": 10, "type": "expense"},
        {"description": "UBER RIDE", "amount": 250, "type": "expense"},
    ]
    results = categorize_transactions(rows, fake_openai)

    assert [r.to_dict() for r in results] == [
        {"category": "Food", "confidence": 0.9, "method": "ai"},
        {"category": "Other", "confidence": 1.0, "method": "ai"},
        {"category": "Travel", "confidence": 0.6, "method": "keywords"},
    ]
    prompt = fake_openai.calls[0]["messages"][1]["content"]
    assert "1. Zomato - Amount: 450 (expense)" in prompt


def test_unparseable_reply_marks_batch_other(fake_openai):
    fake_openai.queue("Sorry, I cannot help with that.")
    results = categorize_transactions([{"description": "Zomato", "amount": 1}] * 2, fake_openai)
    assert [(r.category, r.confidence) for r in results] == [("Other", 0.5), ("Other", 0.5)]


def test_rows_are_sent_in_batches(fake_openai):
    fake_openai.queue('[{"category": "Food", "confidence": 0.8}] ', '[{"category": "Rent", "confidence": 0.8}]')
    rows = [{"description": "a", "amount": 1}, {"description": "b", "amount": 2}]
    results = categorize_transactions(rows, fake_openai, batch_size=1)
    assert [r.category for r in results] == ["Food", "Rent"]
    assert len(fake_openai.calls) == 2


def test_fallback_to_keywords_when_ai_fails(fake_openai):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    fake_openai.queue(openai.APIConnectionError(request=request))
    results = categorize_with_fallback([{"description": "Netflix subscription", "amount": 649}], fake_openai)
    assert results[0].to_dict() == {"category": "Entertainment", "confidence": 0.6, "method": "keywords"}


def test_no_client_uses_keywords():
    assert suggest_category("Apollo Pharmacy", None).category == "Healthcare"
    assert categorize_with_fallback([], None) == []


def test_apply_categories_keeps_existing_category():
    rows = [{"description": "Zomato", "category": None}, {"description": "Rent", "category": "Housing"}]
    results = categorize_with_fallback(rows, None)
    apply_categories(rows, results)
    assert rows[0]["category"] == "Food"
    assert rows[0]["confidence"] == 0.6
    assert rows[1]["category"] == "Housing"
    assert "confidence" not in rows[1]
