import logging
import re
from typing import Dict, Iterable, List, Optional

from openai import OpenAI

from ai_assistant import AIServiceError, DEFAULT_MODEL, complete, extract_json
from finance_calc import get_field
from models import AI_CATEGORIES

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
KEYWORD_CONFIDENCE = 0.6
UNMATCHED_CONFIDENCE = 0.3
UNPARSED_CONFIDENCE = 0.5

# Earlier rules win
KEYWORD_RULES = [
    ("Salary", re.compile(r"\bSALARY\b|\bSAL\b|\bPAYROLL\b|\bSTIPEND\b")),
    ("EMI", re.compile(r"\bEMI\b|\bLOAN\b|\bINSTAL+MENT\b|\bNACH\b|\bECS\b")),
    ("Investment", re.compile(r"\bSIP\b|\bMUTUAL\s*FUNDS?\b|\bZERODHA\b|\bGROWW\b|\bSTOCKS?\b|\bPPF\b|\bNPS\b|\bFD\b")),
    ("Rent", re.compile(r"\bRENT\b|\bLANDLORD\b|\bNOBROKER\b")),
    ("Food", re.compile(r"\bZOMATO\b|\bSWIGGY\b|\bRESTAURANT\b|\bCAFE\b|\bDOMINOS\b|\bPIZZA\b|\bGROCER(Y|IES)\b|\bBIGBASKET\b|\bBLINKIT\b|\bZEPTO\b|\bFOODS?\b|\bDINNER\b|\bLUNCH\b")),
    ("Travel", re.compile(r"\bUBER\b|\bOLA\b|\bRAPIDO\b|\bPETROL\b|\bDIESEL\b|\bFUEL\b|\bIRCTC\b|\bMETRO\b|\bFLIGHT\b|\bAIRLINES?\b|\bHOTEL\b|\bMAKEMYTRIP\b|\bFASTAG\b")),
    ("Bills", re.compile(r"\bELECTRICITY\b|\bBESCOM\b|\bWATER\b|\bBROADBAND\b|\bINTERNET\b|\bRECHARGE\b|\bJIO\b|\bAIRTEL\b|\bGAS\b|\bDTH\b|\bBILL\b")),
    ("Entertainment", re.compile(r"\bNETFLIX\b|\bSPOTIFY\b|\bHOTSTAR\b|\bPRIME\s*VIDEO\b|\bBOOKMYSHOW\b|\bPVR\b|\bINOX\b|\bMOVIES?\b|\bGAMING\b|\bSTEAM\b")),
    ("Healthcare", re.compile(r"\bPHARMACY\b|\bPHARMA\b|\bHOSPITAL\b|\bCLINIC\b|\bAPOLLO\b|\bMEDICAL\b|\bDOCTOR\b|\bDIAGNOSTICS?\b|\bNETMEDS\b|\bPHARMEASY\b")),
    ("Education", re.compile(r"\bSCHOOL\b|\bCOLLEGE\b|\bUNIVERSITY\b|\bTUITION\b|\bCOURSE\b|\bUDEMY\b|\bCOURSERA\b|\bBOOKS?\b|\bFEES?\b")),
    ("Shopping", re.compile(r"\bAMAZON\b|\bFLIPKART\b|\bMYNTRA\b|\bAJIO\b|\bMEESHO\b|\bNYKAA\b|\bMALL\b|\bSTORE\b|\bMART\b|\bSHOP(PING)?\b")),
]


class Categorization:
    def __init__(self, category: str, confidence: float, method: str = 'ai'):
        self.category = category
        self.confidence = confidence
        self.method = method

    def to_dict(self):
        return {
            "category": self.category,
            "confidence": self.confidence,
            "method": self.method
        }


def normalize_category(value) -> str:
    text = str(value or '').strip().lower()
    return next((c for c in AI_CATEGORIES if c.lower() == text), "Other")


def categorize_by_keywords(description: str, amount=None, type: Optional[str] = None) -> Categorization:
    text = re.sub(r"\s+", " ", str(description or '')).upper()
    for category, pattern in KEYWORD_RULES:
        if not pattern.search(text):
            continue
        if type == 'income' and category not in ('Salary', 'Investment'):
            continue
        return Categorization(category, KEYWORD_CONFIDENCE, 'keywords')
    return Categorization("Other", UNMATCHED_CONFIDENCE, 'keywords')


def _system_prompt() -> str:
    return """You are a financial transaction categorization expert. Categorize transactions into one of these categories:
- Food (restaurants, groceries, food delivery)
- Travel (fuel, petrol, transport, flights, hotels)
- EMI (loan payments, EMI, installments)
- Rent (house rent, property payments)
- Shopping (retail, online shopping, clothing)
- Salary (income, salary credits)
- Investment (mutual funds, stocks, SIP)
- Entertainment (movies, subscriptions, gaming)
- Bills (electricity, water, phone, internet)
- Healthcare (medical, pharmacy, hospital)
- Education (fees, courses, books)
- Other (anything else)

Return ONLY a JSON array with one item per transaction, in the same order, with this exact format:
[{"category": "Food", "confidence": 0.95}, {"category": "Travel", "confidence": 0.88}]

Be precise and return valid JSON only."""


def _user_prompt(transactions: List) -> str:
    lines = [
        f"{i + 1}. {get_field(t, 'description') or ''} - Amount: {get_field(t, 'amount')}"
        + (f" ({get_field(t, 'type')})" if get_field(t, 'type') else "")
        for i, t in enumerate(transactions)
    ]
    return "Categorize these transactions:\n" + "\n".join(lines)


def _categorize_batch(batch: List, client: OpenAI, model: str) -> List[Categorization]:
    content = complete(client, [
        {"role": "system", "content": _system_prompt()},
        {"role": "user", "content": _user_prompt(batch)}
    ], model=model, temperature=0.2, max_tokens=max(200, 40 * len(batch)))

    try:
        items = extract_json(content, '[')
        if not isinstance(items, list):
            raise ValueError("expected a JSON array")
    except ValueError as e:
        logger.warning("Could not parse categorization response (%s); marking %d rows as Other", e, len(batch))
        return [Categorization("Other", UNPARSED_CONFIDENCE) for _ in batch]

    results = []
    for idx, t in enumerate(batch):
        item = items[idx] if idx < len(items) else None
        if not isinstance(item, dict):
            results.append(categorize_by_keywords(
                get_field(t, 'description'), get_field(t, 'amount'), get_field(t, 'type')
            ))
            continue
        try:
            confidence = float(item.get("confidence", UNPARSED_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = UNPARSED_CONFIDENCE
        results.append(Categorization(
            normalize_category(item.get("category")),
            round(min(1.0, max(0.0, confidence)), 2)
        ))
    return results


def categorize_transactions(transactions: Iterable, client: OpenAI, model: str = DEFAULT_MODEL,
                            batch_size: int = DEFAULT_BATCH_SIZE) -> List[Categorization]:
    transactions = list(transactions)
    batch_size = max(1, batch_size)
    results: List[Categorization] = []
    for start in range(0, len(transactions), batch_size):
        batch = transactions[start:start + batch_size]
        logger.info("Categorizing batch of %d transactions", len(batch))
        results.extend(_categorize_batch(batch, client, model))
    return results


def categorize_with_fallback(transactions: Iterable, client: Optional[OpenAI], model: str = DEFAULT_MODEL,
                             batch_size: int = DEFAULT_BATCH_SIZE) -> List[Categorization]:
    transactions = list(transactions)
    if client is not None and transactions:
        try:
            return categorize_transactions(transactions, client, model, batch_size)
        except AIServiceError as e:
            logger.warning("AI categorization unavailable (%s); using keyword rules", e.message)
    return [
        categorize_by_keywords(get_field(t, 'description'), get_field(t, 'amount'), get_field(t, 'type'))
        for t in transactions
    ]


def suggest_category(description: str, client: Optional[OpenAI], model: str = DEFAULT_MODEL) -> Categorization:
    return categorize_with_fallback([{"description": description, "amount": ""}], client, model)[0]


def apply_categories(rows: List[Dict], categorizations: List[Categorization]) -> List[Dict]:
    """Fill category/confidence on imported rows that did not bring their own category."""
    for row, result in zip(rows, categorizations):
        if not row.get("category"):
            row["category"] = result.category
            row["confidence"] = result.confidence
        row["method"] = result.method
    return rows
