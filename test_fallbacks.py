#!/usr/bin/env python3
"""
Tests for locally computed fallback insights.
"""

from datetime import date

from smartspend.fallbacks import FinancialData, fallback_insights

TODAY = date(2024, 5, 20)


def expense(amount, day="2024-05-10", category="Dining"):
    return {"amount": amount, "category": category, "type": "expense", "date": day}


class TestFallbackInsights:
    """Test the spending and budget heuristics."""

    def test_high_spending_alert(self):
        data = FinancialData(
            transactions=[expense(3000), expense(500), expense(9000, day="2024-04-02")],
            monthlyIncome=4000,
        )

        insights = fallback_insights(data, today=TODAY)

        assert len(insights) == 1
        assert insights[0].id == "fallback-1"
        assert insights[0].type == "spending"
        assert insights[0].impact == "high"
        assert "87.5%" in insights[0].description

    def test_no_alert_without_income(self):
        data = FinancialData(transactions=[expense(3000)])
        assert fallback_insights(data, today=TODAY) == []

    def test_income_transactions_ignored(self):
        data = FinancialData(
            transactions=[{**expense(5000), "type": "income"}],
            monthly_income=1000,
        )
        assert fallback_insights(data, today=TODAY) == []

    def test_budget_alerts(self):
        data = FinancialData(budgets=[
            {"category": "Groceries", "amount": 400, "spent": 380},
            {"category": "Dining", "amount": 200, "spent": 250},
            {"category": "Transport", "amount": 100, "spent": 50},
        ])

        insights = fallback_insights(data, today=TODAY)

        assert [i.title for i in insights] == ["Groceries Budget Alert", "Dining Budget Alert"]
        assert [i.impact for i in insights] == ["medium", "high"]
        assert [i.priority for i in insights] == [1, 2]

    def test_at_most_four_insights(self):
        data = FinancialData(
            transactions=[expense(5000)],
            monthlyIncome=1000,
            budgets=[{"category": f"c{i}", "amount": 10, "spent": 20} for i in range(6)],
        )
        assert len(fallback_insights(data, today=TODAY)) == 4

    def test_aliases_and_field_names_both_accepted(self):
        by_alias = FinancialData.model_validate({"savingsGoals": [], "monthlyIncome": 10})
        by_name = FinancialData(savings_goals=[], monthly_income=10)
        assert by_alias == by_name
        assert by_alias.model_dump(by_alias=True)["monthlyIncome"] == 10
