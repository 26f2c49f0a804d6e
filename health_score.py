from typing import Dict, Iterable, Optional

from finance_calc import calculate_financial_summary, calculate_lending_summary


class HealthScoreBreakdown:
    def __init__(self, total_score: int, rating: str, savings_rate: Dict,
                 debt_ratio: Dict, investment_ratio: Dict, budget_discipline: Dict):
        self.total_score = total_score
        self.rating = rating
        self.savings_rate = savings_rate
        self.debt_ratio = debt_ratio
        self.investment_ratio = investment_ratio
        self.budget_discipline = budget_discipline

    def to_dict(self):
        return {
            "totalScore": self.total_score,
            "rating": self.rating,
            "savingsRate": self.savings_rate,
            "debtRatio": self.debt_ratio,
            "investmentRatio": self.investment_ratio,
            "budgetDiscipline": self.budget_discipline
        }


def _component(raw: float, max_score: int, label: str, ratio: float) -> Dict:
    # Components are shown clamped; the total uses the raw sum
    return {
        "score": round(min(max_score, max(0.0, raw)), 1),
        "maxScore": max_score,
        "label": label,
        "ratio": round(ratio, 4),
    }


def calculate_health_score(income: float, expenses: float, investment: float = 0,
                           emi: float = 0, money_borrowed: float = 0) -> HealthScoreBreakdown:
    income, expenses = float(income), float(expenses)
    investment, emi, money_borrowed = float(investment), float(emi), float(money_borrowed)

    if income <= 0:
        return HealthScoreBreakdown(
            total_score=0,
            rating=get_rating(0),
            savings_rate=_component(0, 40, "Savings Rate", 0),
            debt_ratio=_component(0, 25, "Debt Ratio", 0),
            investment_ratio=_component(0, 15, "Investment Ratio", 0),
            budget_discipline=_component(0, 20, "Budget Discipline", 0)
        )

    savings_rate = (income - expenses) / income
    debt_ratio = (emi + money_borrowed) / income
    investment_ratio = investment / income
    discipline = 1.0 if expenses <= income else income / expenses

    savings_score = min(savings_rate, 0.5) * 80
    debt_score = (1 - min(debt_ratio, 1)) * 25
    investment_score = min(investment_ratio, 0.3) * 50
    discipline_score = discipline * 20

    raw_total = savings_score + debt_score + investment_score + discipline_score
    total_score = int(round(max(0.0, min(100.0, raw_total))))

    return HealthScoreBreakdown(
        total_score=total_score,
        rating=get_rating(total_score),
        savings_rate=_component(savings_score, 40, "Savings Rate", savings_rate),
        debt_ratio=_component(debt_score, 25, "Debt Ratio", debt_ratio),
        investment_ratio=_component(investment_score, 15, "Investment Ratio", investment_ratio),
        budget_discipline=_component(discipline_score, 20, "Budget Discipline", discipline)
    )


def health_score_from_data(transactions: Iterable, lending: Optional[Iterable] = None) -> HealthScoreBreakdown:
    summary = calculate_financial_summary(list(transactions))
    borrowed = calculate_lending_summary(lending or [])["pendingRepayment"]
    return calculate_health_score(
        income=summary["totalIncome"],
        expenses=summary["totalExpenses"],
        investment=summary["totalInvestments"],
        emi=summary["totalEMI"],
        money_borrowed=max(0.0, borrowed)
    )


def get_rating(score: int) -> str:
    if score >= 80:
        return "Excellent"
    elif score >= 60:
        return "Good"
    elif score >= 40:
        return "Warning"
    else:
        return "Critical"
