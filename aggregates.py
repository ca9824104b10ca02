"""Derived figures computed from the store's collections.

Everything here is a pure function of the records passed in: nothing is
cached, each call walks the transaction list again.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from entities import Account, Budget, Category, Goal, Transaction
from models import BudgetPeriod, TransactionType
from periods import last_n_months, month_end, month_key, period_start
from schemas import FilterOptions

ZERO = Decimal("0")


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    category: Optional[Category]
    spent: Decimal
    percentage: int
    remaining: Decimal
    is_over_budget: bool
    is_near_limit: bool

    @property
    def display_percentage(self) -> int:
        return max(0, min(self.percentage, 100))


@dataclass(frozen=True)
class BudgetSummary:
    total_budgeted: Decimal
    total_spent: Decimal
    over_budget_count: int


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: str
    name: str
    income: Decimal
    expenses: Decimal
    net: Decimal
    count: int


@dataclass(frozen=True)
class ChartPoint:
    name: str
    value: Decimal
    color: Optional[str] = None


@dataclass(frozen=True)
class MonthlyTotals:
    month: str
    income: Decimal
    expenses: Decimal
    net: Decimal
    label: str = ""


@dataclass(frozen=True)
class GoalProgress:
    goal: Goal
    percentage: int
    remaining: Decimal
    days_left: int
    is_overdue: bool


@dataclass(frozen=True)
class GoalsSummary:
    total: int
    active: int
    completed: int
    total_target: Decimal
    total_current: Decimal
    percentage: int


@dataclass(frozen=True)
class Report:
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal
    category_breakdown: list[CategoryBreakdown]
    monthly: list[MonthlyTotals]
    transaction_count: int


def calculate_percentage(value: Decimal, total: Decimal) -> int:
    if not total:
        return 0
    ratio = Decimal(value) / Decimal(total) * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def filter_transactions(
    transactions: Sequence[Transaction], filters: FilterOptions
) -> list[Transaction]:
    date_from = filters.date_from.isoformat() if filters.date_from else None
    date_to = filters.date_to.isoformat() if filters.date_to else None
    search = filters.search.lower() if filters.search else None

    def matches(txn: Transaction) -> bool:
        day = txn.date.isoformat()
        if date_from and day < date_from:
            return False
        if date_to and day > date_to:
            return False
        if filters.type and filters.type != "all" and txn.type.value != filters.type:
            return False
        if filters.categories and txn.category not in filters.categories:
            return False
        if filters.accounts and txn.account not in filters.accounts:
            return False
        if filters.amount_min is not None and txn.amount < filters.amount_min:
            return False
        if filters.amount_max is not None and txn.amount > filters.amount_max:
            return False
        if search and search not in txn.description.lower():
            return False
        return True

    return [txn for txn in transactions if matches(txn)]


def sum_amounts(
    transactions: Iterable[Transaction],
    txn_type: TransactionType,
    *,
    since: Optional[date] = None,
    until: Optional[date] = None,
) -> Decimal:
    total = ZERO
    for txn in transactions:
        if txn.type != txn_type:
            continue
        if since and txn.date < since:
            continue
        if until and txn.date > until:
            continue
        total += txn.amount
    return total


def total_balance(accounts: Iterable[Account]) -> Decimal:
    return sum((a.balance for a in accounts if a.is_active), ZERO)


def total_for_period(
    transactions: Iterable[Transaction],
    txn_type: TransactionType,
    period: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> Decimal:
    return sum_amounts(transactions, txn_type, since=period_start(period, today=today))


def category_spending(
    transactions: Iterable[Transaction],
    category_id: str,
    period: Optional[str] = None,
    *,
    today: Optional[date] = None,
    subcategory_id: Optional[str] = None,
) -> Decimal:
    since = period_start(period, today=today)
    scoped = (
        txn
        for txn in transactions
        if txn.category == category_id
        and (subcategory_id is None or txn.subcategory == subcategory_id)
    )
    return sum_amounts(scoped, TransactionType.expense, since=since)


def budget_progress(
    budget: Budget,
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    *,
    today: Optional[date] = None,
) -> BudgetProgress:
    scope = "year" if budget.period == BudgetPeriod.yearly else "month"
    spent = category_spending(
        transactions,
        budget.category_id,
        scope,
        today=today,
        subcategory_id=budget.subcategory_id,
    )
    percentage = calculate_percentage(spent, budget.limit)
    category = next((c for c in categories if c.id == budget.category_id), None)
    return BudgetProgress(
        budget=budget,
        category=category,
        spent=spent,
        percentage=percentage,
        remaining=budget.limit - spent,
        is_over_budget=spent > budget.limit,
        is_near_limit=percentage >= budget.alert_threshold,
    )


def budget_summary(budgets: Sequence[Budget], progress: Sequence[BudgetProgress]) -> BudgetSummary:
    return BudgetSummary(
        total_budgeted=sum((b.limit for b in budgets), ZERO),
        total_spent=sum((p.spent for p in progress), ZERO),
        over_budget_count=sum(1 for p in progress if p.is_over_budget),
    )


def category_breakdown(
    transactions: Sequence[Transaction], categories: Sequence[Category]
) -> list[CategoryBreakdown]:
    rows: list[CategoryBreakdown] = []
    for category in categories:
        scoped = [t for t in transactions if t.category == category.id]
        if not scoped:
            continue
        income = sum_amounts(scoped, TransactionType.income)
        expenses = sum_amounts(scoped, TransactionType.expense)
        rows.append(
            CategoryBreakdown(
                category_id=category.id,
                name=category.name,
                income=income,
                expenses=expenses,
                net=income - expenses,
                count=len(scoped),
            )
        )
    return rows


def category_spending_chart(
    transactions: Sequence[Transaction], categories: Sequence[Category]
) -> list[ChartPoint]:
    points = []
    for category in categories:
        value = category_spending(transactions, category.id)
        if value > 0:
            points.append(ChartPoint(name=category.name, value=value, color=category.color))
    return points


def monthly_breakdown(transactions: Iterable[Transaction]) -> list[MonthlyTotals]:
    buckets: dict[str, tuple[Decimal, Decimal]] = {}
    for txn in transactions:
        key = month_key(txn.date)
        income, expenses = buckets.get(key, (ZERO, ZERO))
        if txn.type == TransactionType.income:
            income += txn.amount
        else:
            expenses += txn.amount
        buckets[key] = (income, expenses)
    return [
        MonthlyTotals(month=key, income=inc, expenses=exp, net=inc - exp)
        for key, (inc, exp) in sorted(buckets.items())
    ]


def monthly_trend(
    transactions: Sequence[Transaction],
    months: int = 6,
    *,
    today: Optional[date] = None,
) -> list[MonthlyTotals]:
    series: list[MonthlyTotals] = []
    for first in last_n_months(months, today=today):
        last = month_end(first)
        income = sum_amounts(transactions, TransactionType.income, since=first, until=last)
        expenses = sum_amounts(transactions, TransactionType.expense, since=first, until=last)
        series.append(
            MonthlyTotals(
                month=month_key(first),
                income=income,
                expenses=expenses,
                net=income - expenses,
                label=first.strftime("%b"),
            )
        )
    return series


def recent_transactions(transactions: Sequence[Transaction], limit: int = 5) -> list[Transaction]:
    return sorted(transactions, key=lambda t: t.date, reverse=True)[:limit]


def goal_progress(goal: Goal, *, today: Optional[date] = None) -> GoalProgress:
    today = today or date.today()
    days_left = (goal.target_date - today).days
    return GoalProgress(
        goal=goal,
        percentage=calculate_percentage(goal.current_amount, goal.target_amount),
        remaining=max(goal.target_amount - goal.current_amount, ZERO),
        days_left=days_left,
        is_overdue=days_left < 0 and not goal.is_completed,
    )


def goals_summary(goals: Sequence[Goal]) -> GoalsSummary:
    active = [g for g in goals if not g.is_completed]
    total_target = sum((g.target_amount for g in active), ZERO)
    total_current = sum((g.current_amount for g in active), ZERO)
    return GoalsSummary(
        total=len(goals),
        active=len(active),
        completed=len(goals) - len(active),
        total_target=total_target,
        total_current=total_current,
        percentage=calculate_percentage(total_current, total_target),
    )


def build_report(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    filters: Optional[FilterOptions] = None,
) -> Report:
    scoped = filter_transactions(transactions, filters) if filters else list(transactions)
    income = sum_amounts(scoped, TransactionType.income)
    expenses = sum_amounts(scoped, TransactionType.expense)
    return Report(
        total_income=income,
        total_expenses=expenses,
        net_income=income - expenses,
        category_breakdown=category_breakdown(scoped, categories),
        monthly=monthly_breakdown(scoped),
        transaction_count=len(scoped),
    )
