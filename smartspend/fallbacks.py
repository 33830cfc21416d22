"""
Payload models for the AI endpoints and static fallback insights.

Fallback insights are shown when the AI insight call fails, so that the
dashboard always has something to display.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

MAX_FALLBACK_INSIGHTS = 4
HIGH_SPENDING_RATIO = 0.8
BUDGET_ALERT_RATIO = 0.9


class TransactionSummary(BaseModel):
    amount: float
    category: str
    type: Literal["income", "expense"]
    date: str  # ISO date
    description: str = ""


class BudgetSummary(BaseModel):
    category: str
    amount: float
    spent: float = 0.0


class SavingsGoalSummary(BaseModel):
    name: str
    target_amount: float
    current_amount: float
    deadline: str


class BillSummary(BaseModel):
    name: str
    amount: float
    due_date: str
    status: str


class FinancialData(BaseModel):
    """Financial snapshot sent to insight and risk endpoints."""
    transactions: list[TransactionSummary] = Field(default_factory=list)
    budgets: list[BudgetSummary] = Field(default_factory=list)
    savings_goals: list[SavingsGoalSummary] = Field(
        default_factory=list, alias="savingsGoals"
    )
    bills: list[BillSummary] = Field(default_factory=list)
    monthly_income: float = Field(default=0.0, alias="monthlyIncome")
    currency: str = "USD"

    model_config = {"populate_by_name": True}


class AIInsight(BaseModel):
    id: str
    type: Literal["spending", "saving", "investment", "budget", "goal"]
    title: str
    description: str
    impact: Literal["high", "medium", "low"]
    action: str
    priority: int


def fallback_insights(data: FinancialData, today: date | None = None) -> list[AIInsight]:
    """Heuristic insights computed locally from data."""
    insights: list[AIInsight] = []
    current_month = (today or date.today()).isoformat()[:7]

    month_expenses = sum(
        t.amount for t in data.transactions
        if t.type == "expense" and t.date.startswith(current_month)
    )

    if data.monthly_income > 0 and month_expenses > data.monthly_income * HIGH_SPENDING_RATIO:
        share = month_expenses / data.monthly_income * 100
        insights.append(AIInsight(
            id="fallback-1",
            type="spending",
            title="High Spending Alert",
            description=(
                f"You've spent {data.currency} {month_expenses:,.2f} this month, "
                f"which is {share:.1f}% of your monthly income."
            ),
            impact="high",
            action=(
                "Review your expenses and identify areas where you can cut back "
                "to maintain a healthy savings rate."
            ),
            priority=1,
        ))

    for index, budget in enumerate(data.budgets):
        if budget.amount <= 0 or budget.spent <= budget.amount * BUDGET_ALERT_RATIO:
            continue
        insights.append(AIInsight(
            id=f"fallback-budget-{index}",
            type="budget",
            title=f"{budget.category} Budget Alert",
            description=(
                f"You've used {budget.spent / budget.amount * 100:.1f}% "
                f"of your {budget.category} budget."
            ),
            impact="high" if budget.spent > budget.amount else "medium",
            action=f"Monitor your {budget.category} spending closely for the rest of the month.",
            priority=len(insights) + 1,
        ))

    return insights[:MAX_FALLBACK_INSIGHTS]
