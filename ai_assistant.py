import json
import math
import logging
import re
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional

import openai
from openai import OpenAI
from dateutil.relativedelta import relativedelta

from currency import format_inr
from finance_calc import get_field, amount_of, to_date

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
CHAT_CONTEXT_LIMIT = 100

EXPENSE_CATEGORIES = [
    "Food", "Transport", "Shopping", "Entertainment", "Health", "Education",
    "Utilities", "EMI", "Rent", "Investment", "Other"
]
BUDGET_TRENDS = {"increasing", "decreasing", "stable"}


class AIServiceError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def create_openai_client(api_key: Optional[str], base_url: Optional[str] = None,
                         timeout: float = 30, max_retries: int = 2) -> Optional[OpenAI]:
    if not api_key:
        logger.warning("OPENAI_API_KEY not set. AI features will be disabled.")
        return None
    # The SDK retries 408/429/5xx and connection errors with exponential backoff
    return OpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout, max_retries=max_retries)


def translate_error(error: Exception) -> AIServiceError:
    if isinstance(error, openai.RateLimitError):
        if getattr(error, 'code', None) == 'insufficient_quota':
            return AIServiceError("AI quota exceeded. Please check your plan and billing.", 402)
        return AIServiceError("Rate limit exceeded. Please try again in a moment.", 429)
    if isinstance(error, openai.APITimeoutError):
        return AIServiceError("The AI service timed out. Please try again.", 503)
    if isinstance(error, openai.APIConnectionError):
        return AIServiceError("Could not reach the AI service. Please try again.", 503)
    if isinstance(error, openai.APIStatusError):
        if error.status_code == 402:
            return AIServiceError("Payment required for the AI service.", 402)
        if error.status_code == 429:
            return AIServiceError("Rate limit exceeded. Please try again in a moment.", 429)
        return AIServiceError(f"AI service error ({error.status_code})", 502)
    return AIServiceError("AI service error", 502)


def complete(client: OpenAI, messages: List[Dict], model: str = DEFAULT_MODEL,
             temperature: float = 0.3, max_tokens: int = 500) -> str:
    try:
        completion = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens
        )
    except openai.OpenAIError as e:
        logger.warning("AI completion failed: %s", e)
        raise translate_error(e) from e

    content = completion.choices[0].message.content if completion.choices else None
    if not content:
        raise AIServiceError("Empty response from the AI service", 502)
    return content


def extract_json(content: str, opener: str = '['):
    """Parse the first JSON array (or object, with ``opener='{'``) in a reply,
    tolerating markdown code fences around it. Raises ValueError."""
    cleaned = re.sub(r'```(?:json)?', '', content or '').strip()
    pattern = r'\[[\s\S]*\]' if opener == '[' else r'\{[\s\S]*\}'
    match = re.search(pattern, cleaned)
    return json.loads(match.group(0) if match else cleaned)


# Chat

def build_chat_system_prompt(transactions: Iterable) -> str:
    recent = list(transactions)[:CHAT_CONTEXT_LIMIT]
    total_income = sum(amount_of(t) for t in recent if get_field(t, 'type') == 'income')
    total_expenses = sum(amount_of(t) for t in recent if get_field(t, 'type') == 'expense')
    savings = total_income - total_expenses
    savings_rate = f"{(savings / total_income) * 100:.1f}" if total_income > 0 else "0"

    tx_summary = "\n".join(
        f"{to_date(get_field(t, 'date')).isoformat()}: {get_field(t, 'type')} "
        f"{format_inr(amount_of(t))} [{get_field(t, 'category')}] {get_field(t, 'description') or ''}".rstrip()
        for t in recent
    )

    return f"""You are Finzo, an intelligent AI personal finance assistant for Indian users.
You are friendly, concise, and speak in a mix of professional and relatable tone.
You have access to the user's recent financial data.

USER FINANCIAL SUMMARY:
- Total Income (period): {format_inr(total_income)}
- Total Expenses (period): {format_inr(total_expenses)}
- Net Savings: {format_inr(savings)}
- Savings Rate: {savings_rate}%

RECENT TRANSACTIONS (max {CHAT_CONTEXT_LIMIT}):
{tx_summary or "No transactions available yet."}

INSTRUCTIONS:
- Answer in 2-4 sentences unless user asks for detail
- Use ₹ for amounts, Indian number format (lakhs, crores)
- Give actionable advice, not generic tips
- If you reference numbers, use the data above
- Be encouraging but honest about financial risks
- Detect category breakdowns from the transaction list when asked
- For questions about affordability, consider savings rate and monthly cashflow"""


def _chat_messages(messages: List[Dict], transactions: Iterable) -> List[Dict]:
    cleaned = [
        {"role": m.get("role"), "content": str(m.get("content", ""))}
        for m in messages
        if isinstance(m, dict) and m.get("role") in ("user", "assistant")
    ]
    if not cleaned:
        raise ValueError("Invalid messages format")
    return [{"role": "system", "content": build_chat_system_prompt(transactions)}] + cleaned


def chat(client: OpenAI, messages: List[Dict], transactions: Iterable, model: str = DEFAULT_MODEL) -> str:
    return complete(client, _chat_messages(messages, transactions), model=model,
                    temperature=0.7, max_tokens=800)


def stream_chat(client: OpenAI, messages: List[Dict], transactions: Iterable,
                model: str = DEFAULT_MODEL) -> Iterator[str]:
    """Open a streaming completion and return a generator of SSE lines.

    The request is made before returning so provider errors surface as
    AIServiceError while a normal JSON error reply is still possible.
    """
    try:
        stream = client.chat.completions.create(
            model=model,
            messages=_chat_messages(messages, transactions),
            temperature=0.7,
            max_tokens=800,
            stream=True
        )
    except openai.OpenAIError as e:
        logger.warning("AI stream failed to start: %s", e)
        raise translate_error(e) from e
    return _sse_events(stream)


def _sse_events(stream) -> Iterator[str]:
    try:
        for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield f"data: {json.dumps({'content': delta})}\n\n"
    except openai.OpenAIError as e:
        logger.exception("AI stream interrupted")
        yield f"data: {json.dumps({'error': translate_error(e).message})}\n\n"
    yield "data: [DONE]\n\n"


# Natural-language expense entry

def parse_expense(client: OpenAI, text: str, model: str = DEFAULT_MODEL,
                  today: Optional[date] = None) -> Dict:
    today = today or date.today()
    system_prompt = f"""You are a smart expense parser for an Indian personal finance app.
Parse the user's natural language input and extract transaction details.
Return ONLY a JSON object with these fields:
- amount: number (in rupees, extract from text)
- category: string (one of: {", ".join(EXPENSE_CATEGORIES)})
- description: string (brief clean description)
- confidence: number (0-1, how confident you are)
- date: string (YYYY-MM-DD, default to today if not mentioned)
- type: "expense" or "income"

Examples:
"paid 1200 for zomato dinner" -> {{"amount":1200,"category":"Food","description":"Zomato dinner","confidence":0.95,"date":"today","type":"expense"}}
"petrol 800 rupees" -> {{"amount":800,"category":"Transport","description":"Petrol","confidence":0.9,"date":"today","type":"expense"}}
"netflix monthly 649" -> {{"amount":649,"category":"Entertainment","description":"Netflix subscription","confidence":0.92,"date":"today","type":"expense"}}

Today's date is: {today.isoformat()}
Return ONLY raw JSON, no markdown."""

    content = complete(client, [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": text}
    ], model=model, temperature=0.2, max_tokens=200)

    try:
        data = extract_json(content, '{')
    except ValueError as e:
        raise AIServiceError("Could not understand the expense. Try rephrasing it.", 422) from e
    if not isinstance(data, dict):
        raise AIServiceError("Could not understand the expense. Try rephrasing it.", 422)

    try:
        amount = round(float(data.get("amount")), 2)
    except (TypeError, ValueError):
        amount = 0
    if not math.isfinite(amount) or amount <= 0:
        raise AIServiceError("No amount found in the text", 422)

    category = next((c for c in EXPENSE_CATEGORIES if c.lower() == str(data.get("category", "")).lower()), "Other")

    parsed_date = today
    raw_date = str(data.get("date") or "today").strip().lower()
    if raw_date != "today":
        try:
            parsed_date = date.fromisoformat(raw_date)
        except ValueError:
            logger.info("AI returned unusable date %r, using today", raw_date)

    try:
        confidence = min(1.0, max(0.0, float(data.get("confidence", 0.5))))
    except (TypeError, ValueError):
        confidence = 0.5

    return {
        "amount": amount,
        "category": category,
        "description": str(data.get("description") or text).strip()[:200],
        "confidence": confidence,
        "date": parsed_date.isoformat(),
        "type": data.get("type") if data.get("type") in ("income", "expense") else "expense",
    }


# Budget suggestions

def summarize_spending(transactions: Iterable, today: Optional[date] = None, months: int = 3) -> List[Dict]:
    today = today or date.today()
    since = today - relativedelta(months=months)
    by_category: Dict[str, List[float]] = {}
    for t in transactions:
        if get_field(t, 'type') != 'expense' or to_date(get_field(t, 'date')) < since:
            continue
        by_category.setdefault(get_field(t, 'category'), []).append(amount_of(t))
    return [
        {
            "category": category,
            "total": round(sum(amounts), 2),
            "count": len(amounts),
            "avg": round(sum(amounts) / months, 2),
        }
        for category, amounts in sorted(by_category.items())
    ]


def suggest_budgets(client: OpenAI, transactions: Iterable, existing_categories: Iterable[str],
                    model: str = DEFAULT_MODEL, today: Optional[date] = None) -> List[Dict]:
    existing = set(existing_categories)
    summary = [s for s in summarize_spending(transactions, today) if s["category"] not in existing]
    if not summary:
        return []

    system_prompt = """You are a budgeting assistant for an Indian personal finance app.
You receive a JSON list of expense categories with the user's total spending, number of
transactions and average monthly spending over the last 3 months.
Suggest a realistic monthly budget for each category, slightly below the average where
there is room to save. Return ONLY a JSON array in this exact format:
[{"category": "Food", "avg_spending": 8000, "suggested_budget": 7000, "rationale": "short reason", "trend": "stable"}]
trend is one of: increasing, decreasing, stable. Use the category names exactly as given."""

    content = complete(client, [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": json.dumps(summary)}
    ], model=model, temperature=0.3, max_tokens=1000)

    try:
        items = extract_json(content, '[')
    except ValueError as e:
        raise AIServiceError("Could not parse budget suggestions", 502) from e

    known = {s["category"]: s for s in summary}
    suggestions = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict) or item.get("category") not in known:
            continue
        try:
            suggested = round(float(item.get("suggested_budget")), 2)
        except (TypeError, ValueError):
            continue
        if suggested <= 0:
            continue
        trend = item.get("trend") if item.get("trend") in BUDGET_TRENDS else "stable"
        suggestions.append({
            "category": item["category"],
            "avg_spending": known[item["category"]]["avg"],
            "suggested_budget": suggested,
            "rationale": str(item.get("rationale") or ""),
            "trend": trend,
        })
    logger.info("Generated %d budget suggestions from %d categories", len(suggestions), len(summary))
    return suggestions
