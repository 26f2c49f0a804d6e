import io
import json
from datetime import date

import httpx
import openai

BANK_CSV = (
    "Date,Description,Debit,Credit,Balance\n"
    "01/03/2024,ZOMATO ORDER,450.00,,10000\n"
    "02/03/2024,SALARY MARCH,,50000.00,60000\n"
    "bad-date,Something,10,,1\n"
    "06/03/2024,Zero row,0,0,1\n"
).encode()

AI_CATEGORIES_REPLY = '[{"category": "Food", "confidence": 0.9}, {"category": "Salary", "confidence": 0.95}]'


def upload(client, url, data=BANK_CSV, filename='statement.csv', **form):
    form['file'] = (io.BytesIO(data), filename)
    return client.post(url, data=form, content_type='multipart/form-data')


class TestImports:
    def test_preview_categorizes_with_ai(self, auth_client, fake_openai):
        fake_openai.queue(AI_CATEGORIES_REPLY)
        result = upload(auth_client, '/api/imports/preview').get_json()

        assert result["total"] == 2
        assert [(t["description"], t["category"], t["method"]) for t in result["transactions"]] == [
            ("ZOMATO ORDER", "Food", "ai"),
            ("SALARY MARCH", "Salary", "ai"),
        ]
        assert result["errors"] == [{"row": 4, "message": "Invalid date: bad-date"}]
        assert result["skipped"] == 1
        assert result["mapping"]["debit"] == "Debit"
        assert auth_client.get('/api/transactions').get_json() == []

    def test_import_is_idempotent(self, auth_client, fake_openai):
        fake_openai.queue(AI_CATEGORIES_REPLY, AI_CATEGORIES_REPLY)

        first = upload(auth_client, '/api/imports/transactions').get_json()
        assert (first["imported"], first["skipped"], len(first["errors"])) == (2, 1, 1)

        second = upload(auth_client, '/api/imports/transactions').get_json()
        assert (second["imported"], second["skipped"]) == (0, 3)

        stored = auth_client.get('/api/transactions').get_json()
        assert len(stored) == 2
        food = next(t for t in stored if t["category"] == "Food")
        assert food["source"] == "csv"
        assert food["confidence"] == 0.9
        assert food["external_id"] == "demo-user-123_2024-03-01_zomato order_450.00_expense"

    def test_without_categorization(self, auth_client, fake_openai):
        result = upload(auth_client, '/api/imports/preview', categorize='false').get_json()
        assert {t["category"] for t in result["transactions"]} == {"Other"}
        assert fake_openai.calls == []

    def test_keyword_fallback_without_ai(self, no_ai_client):
        result = upload(no_ai_client, '/api/imports/preview').get_json()
        assert [(t["category"], t["method"]) for t in result["transactions"]] == [
            ("Food", "keywords"), ("Salary", "keywords")
        ]

    def test_column_mapping(self, auth_client):
        data = "When,What,How Much\n2024-01-02,Books,-300\n".encode()
        mapping = json.dumps({"date": "When", "description": "What", "amount": "How Much"})
        result = upload(auth_client, '/api/imports/preview', data=data, columnMapping=mapping,
                        categorize='false').get_json()
        assert result["transactions"][0]["type"] == "expense"

        bad = upload(auth_client, '/api/imports/preview', data=data, columnMapping='[1]')
        assert bad.status_code == 400

    def test_rejects_bad_uploads(self, auth_client):
        assert upload(auth_client, '/api/imports/preview', filename='statement.pdf').status_code == 400
        assert upload(auth_client, '/api/imports/preview', data=b'a,b\n1,2\n').status_code == 400
        response = auth_client.post('/api/imports/preview', data={}, content_type='multipart/form-data')
        assert response.get_json() == {"message": "No file uploaded"}

    def test_upload_size_limit(self, make_app):
        client = make_app(MAX_CONTENT_LENGTH=64).test_client()
        client.post('/api/demo-login')
        response = upload(client, '/api/imports/transactions')
        assert response.status_code == 413
        assert "File too large" in response.get_json()["message"]

    def test_confirm_reviewed_rows(self, auth_client):
        response = auth_client.post('/api/imports/confirm', json={"source": "excel", "transactions": [
            {"date": "2024-03-01", "description": "Cash", "amount": 100, "type": "expense", "category": "Food"},
            {"date": "bad", "description": "x", "amount": 1, "type": "expense"},
        ]})
        result = response.get_json()
        assert result["imported"] == 1
        assert [e["row"] for e in result["errors"]] == [2]
        assert auth_client.get('/api/transactions').get_json()[0]["source"] == "excel"

        assert auth_client.post('/api/imports/confirm', json={"transactions": []}).status_code == 400


class TestAI:
    def test_chat(self, auth_client, fake_openai):
        fake_openai.queue("Spend less on food.")
        response = auth_client.post('/api/ai/chat', json={"messages": [{"role": "user", "content": "Tips?"}]})
        assert response.get_json() == {"message": "Spend less on food."}

    def test_chat_stream(self, auth_client, fake_openai):
        fake_openai.queue(["Hi", "!"])
        response = auth_client.post('/api/ai/chat', json={
            "messages": [{"role": "user", "content": "Hello"}], "stream": True
        })
        assert response.mimetype == 'text/event-stream'
        body = response.get_data(as_text=True)
        assert 'data: {"content": "Hi"}' in body
        assert body.endswith('data: [DONE]\n\n')

    def test_chat_errors(self, auth_client, fake_openai, no_ai_client):
        assert auth_client.post('/api/ai/chat', json={"messages": []}).status_code == 400
        assert auth_client.post('/api/ai/chat', json={"messages": [{"role": "system", "content": "x"}]}).status_code == 400

        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        fake_openai.queue(openai.RateLimitError("quota", response=httpx.Response(429, request=request),
                                                body={"code": "insufficient_quota"}))
        quota = auth_client.post('/api/ai/chat', json={"messages": [{"role": "user", "content": "hi"}]})
        assert quota.status_code == 402

        unavailable = no_ai_client.post('/api/ai/chat', json={"messages": [{"role": "user", "content": "hi"}]})
        assert unavailable.status_code == 503

    def test_categorize_single(self, no_ai_client):
        result = no_ai_client.post('/api/ai/categorize', json={"description": "Uber ride"}).get_json()
        assert result == {"category": "Travel", "confidence": 0.6, "method": "keywords"}
        assert no_ai_client.post('/api/ai/categorize', json={}).status_code == 400

    def test_categorize_batch_applies(self, auth_client, fake_openai):
        ids = [
            auth_client.post('/api/transactions', json={"type": "expense", "amount": 100, "category": "Other",
                                                        "description": desc, "date": "2024-03-01"}).get_json()["id"]
            for desc in ("Dominos", "Pizza Hut")
        ]
        fake_openai.queue('[{"category": "Food", "confidence": 0.9}, {"category": "Food", "confidence": 0.8}]')

        result = auth_client.post('/api/ai/categorize/batch', json={"transaction_ids": ids, "apply": True}).get_json()
        assert result["applied"] == 2
        assert {s["suggested_category"] for s in result["suggestions"]} == {"Food"}
        assert {t["category"] for t in auth_client.get('/api/transactions').get_json()} == {"Food"}

        assert auth_client.post('/api/ai/categorize/batch', json={}).status_code == 400

    def test_categorize_rows(self, no_ai_client):
        result = no_ai_client.post('/api/ai/categorize-transactions', json={
            "transactions": [{"description": "Zomato", "amount": 100}, "Jio recharge"]
        }).get_json()
        assert [c["category"] for c in result["categorizations"]] == ["Food", "Bills"]

        too_many = no_ai_client.post('/api/ai/categorize-transactions', json={"transactions": ["x"] * 501})
        assert too_many.status_code == 400

    def test_parse_expense_and_save(self, auth_client, fake_openai, no_ai_client):
        fake_openai.queue('{"amount": 1200, "category": "Food", "description": "Zomato dinner", '
                          '"confidence": 0.95, "date": "2024-03-05", "type": "expense"}')
        response = auth_client.post('/api/ai/parse-expense', json={"text": "paid 1200 for zomato", "save": True})
        assert response.status_code == 201
        saved = response.get_json()["transaction"]
        assert (saved["amount"], saved["source"], saved["date"]) == ("1200.00", "ai", "2024-03-05")

        assert auth_client.post('/api/ai/parse-expense', json={"text": " "}).status_code == 400
        assert no_ai_client.post('/api/ai/parse-expense', json={"text": "tea 20"}).status_code == 503

    def test_budget_suggestions(self, auth_client, fake_openai):
        assert auth_client.post('/api/ai/budget-suggestions').status_code == 400

        auth_client.post('/api/transactions', json={"type": "expense", "amount": 3000, "category": "Food",
                                                    "description": "Groceries", "date": date.today().isoformat()})
        fake_openai.queue('[{"category": "Food", "suggested_budget": 900, "rationale": "trim", "trend": "stable"}]')
        suggestions = auth_client.post('/api/ai/budget-suggestions').get_json()["suggestions"]
        assert [(s["category"], s["suggested_budget"]) for s in suggestions] == [("Food", 900.0)]


class TestReports:
    def test_transactions_csv_and_pdf(self, auth_client):
        auth_client.post('/api/transactions', json={"type": "expense", "amount": 450, "category": "Food",
                                                    "description": "Lunch", "date": "2024-03-05"})
        csv_response = auth_client.get('/api/reports/transactions?format=csv&month=2024-03')
        assert csv_response.headers['Content-Type'] == 'text/csv'
        assert 'transactions.csv' in csv_response.headers['Content-Disposition']
        assert '2024-03-05,Lunch,Food,expense,450.00' in csv_response.get_data(as_text=True)

        pdf_response = auth_client.get('/api/reports/transactions?format=pdf')
        assert pdf_response.headers['Content-Type'] == 'application/pdf'
        assert pdf_response.data.startswith(b'%PDF')

    def test_invalid_format(self, auth_client):
        response = auth_client.get('/api/reports/summary?format=xml')
        assert response.status_code == 400
        assert response.get_json() == {"message": "Invalid format. Use 'csv' or 'pdf'"}

    def test_budget_and_summary_reports(self, auth_client):
        auth_client.post('/api/budgets', json={"category": "Food", "monthly_limit": 5000})
        assert auth_client.get('/api/reports/budgets?format=pdf').data.startswith(b'%PDF')
        assert 'Food,5000.00' in auth_client.get('/api/reports/budgets').get_data(as_text=True)
        assert auth_client.get('/api/reports/summary?format=pdf').data.startswith(b'%PDF')

    def test_loan_schedule(self, auth_client):
        loan = auth_client.post('/api/loans', json={"loan_name": "Bike", "principal_amount": 12000,
                                                    "interest_rate": 0, "tenure_months": 12,
                                                    "start_date": "2024-01-01"}).get_json()
        rows = auth_client.get(f'/api/reports/loans/{loan["id"]}/schedule').get_data(as_text=True).splitlines()
        assert len(rows) == 13
        assert auth_client.get('/api/reports/loans/missing/schedule').status_code == 404
        assert auth_client.get(f'/api/reports/loans/{loan["id"]}/schedule?format=pdf').data.startswith(b'%PDF')
