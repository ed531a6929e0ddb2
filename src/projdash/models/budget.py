"""Timeline and budget models plus the budget aggregation."""

from __future__ import annotations

from collections import defaultdict
from enum import StrEnum

from pydantic import BaseModel, Field


class TransactionStatus(StrEnum):
    PAID = "Paid"
    PENDING = "Pending"


class Milestone(BaseModel):
    """Timeline entry."""

    id: str
    title: str
    description: str = ""
    date: str = ""
    status: str = "Upcoming"


class BudgetTransaction(BaseModel):
    """Single budget line on the Budget tab."""

    id: str
    date: str
    description: str = ""
    category: str = "Other"
    amount: float = 0.0
    status: TransactionStatus = TransactionStatus.PENDING


class BudgetSummary(BaseModel):
    """Aggregated budget figures for the charts and stat cards."""

    total_budget: float = 0.0
    spent: float = 0.0
    committed: float = 0.0
    allocation: dict[str, float] = Field(default_factory=dict)
    monthly: dict[str, dict[str, float]] = Field(default_factory=dict)
    transactions: list[BudgetTransaction] = Field(default_factory=list)

    @property
    def remaining(self) -> float:
        return self.total_budget - self.spent - self.committed

    @property
    def utilization(self) -> float:
        """Share of the budget already paid out, 0.0 when no budget is set."""
        if self.total_budget <= 0:
            return 0.0
        return self.spent / self.total_budget


def summarize_budget(
    total_budget: float, transactions: list[BudgetTransaction]
) -> BudgetSummary:
    """Fold transactions into per-category and per-month totals.

    ``monthly`` maps ``YYYY-MM`` to ``{"Paid": x, "Pending": y}`` in
    chronological order.
    """
    allocation: dict[str, float] = defaultdict(float)
    monthly: dict[str, dict[str, float]] = {}
    spent = 0.0
    committed = 0.0
    for tx in sorted(transactions, key=lambda t: t.date):
        allocation[tx.category or "Other"] += tx.amount
        month = tx.date[:7] if len(tx.date) >= 7 else tx.date
        bucket = monthly.setdefault(month, {s.value: 0.0 for s in TransactionStatus})
        bucket[tx.status.value] += tx.amount
        if tx.status is TransactionStatus.PAID:
            spent += tx.amount
        else:
            committed += tx.amount
    return BudgetSummary(
        total_budget=total_budget,
        spent=spent,
        committed=committed,
        allocation=dict(sorted(allocation.items(), key=lambda kv: kv[1], reverse=True)),
        monthly=monthly,
        transactions=sorted(transactions, key=lambda t: t.date, reverse=True),
    )
