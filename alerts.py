"""
Alert generation.

Looks at budgets, goals and recurring transactions and raises the matching
alerts. An alert is not raised again while an unread alert with the same
``data["key"]`` exists.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from aggregates import budget_progress, goal_progress
from entities import Alert
from models import AlertType, TransactionType
from periods import month_key
from recurrence import local_today, upcoming
from schemas import AlertIn
from store import Store

logger = logging.getLogger(__name__)


class AlertGenerator:
    """Derive pending alerts from the current store state."""

    def __init__(
        self,
        store: Store,
        *,
        today: Optional[date] = None,
        goal_reminder_days: int = 7,
        bill_due_days: int = 3,
    ) -> None:
        self.store = store
        self.today = today or local_today()
        self.goal_reminder_days = goal_reminder_days
        self.bill_due_days = bill_due_days

    def budget_alerts(self) -> list[AlertIn]:
        """Budgets that are over their limit or past their alert threshold."""
        alerts = []
        for budget in self.store.budgets:
            progress = budget_progress(
                budget, self.store.transactions, self.store.categories, today=self.today
            )
            if not (progress.is_over_budget or progress.is_near_limit):
                continue
            name = progress.category.name if progress.category else budget.category_id
            if progress.is_over_budget:
                title = f"Budget exceeded: {name}"
                message = (
                    f"You have spent {progress.spent:.2f} of your {budget.limit:.2f} "
                    f"{name} budget, {progress.spent - budget.limit:.2f} over the limit."
                )
            else:
                title = f"Budget warning: {name}"
                message = (
                    f"You have used {progress.percentage}% of your {name} budget. "
                    f"Remaining: {progress.remaining:.2f}."
                )
            alerts.append(
                AlertIn(
                    type=AlertType.budget_exceeded,
                    title=title,
                    message=message,
                    data={
                        "key": f"budget:{budget.id}:{month_key(self.today)}:"
                        f"{'over' if progress.is_over_budget else 'near'}",
                        "budget_id": budget.id,
                        "category_id": budget.category_id,
                        "spent": str(progress.spent),
                        "limit": str(budget.limit),
                        "percentage": progress.percentage,
                    },
                )
            )
        return alerts

    def goal_alerts(self) -> list[AlertIn]:
        """Incomplete goals whose target date is close or already past."""
        alerts = []
        horizon = self.today + timedelta(days=self.goal_reminder_days)
        for goal in self.store.goals:
            if goal.is_completed or goal.target_date > horizon:
                continue
            progress = goal_progress(goal, today=self.today)
            if progress.is_overdue:
                message = (
                    f"The target date for '{goal.name}' passed {-progress.days_left} "
                    f"day(s) ago at {progress.percentage}% progress."
                )
            else:
                message = (
                    f"'{goal.name}' is due in {progress.days_left} day(s); "
                    f"{progress.remaining:.2f} still to go."
                )
            alerts.append(
                AlertIn(
                    type=AlertType.goal_reminder,
                    title=f"Goal reminder: {goal.name}",
                    message=message,
                    data={
                        "key": f"goal:{goal.id}:{goal.target_date.isoformat()}",
                        "goal_id": goal.id,
                        "days_left": progress.days_left,
                    },
                )
            )
        return alerts

    def recurring_alerts(self) -> list[AlertIn]:
        """Recurring transactions that are due now or, for expenses, due soon."""
        alerts = []
        bill_horizon = self.today + timedelta(days=self.bill_due_days)
        for txn, due in upcoming(self.store.transactions):
            payload = {
                "transaction_id": txn.id,
                "due_date": due.isoformat(),
                "amount": str(txn.amount),
            }
            if due <= self.today:
                alerts.append(
                    AlertIn(
                        type=AlertType.recurring_transaction,
                        title=f"Recurring transaction due: {txn.description}",
                        message=(
                            f"'{txn.description}' ({txn.amount:.2f}) was due on "
                            f"{due.isoformat()}."
                        ),
                        data={"key": f"recurring:{txn.id}:{due.isoformat()}", **payload},
                    )
                )
            elif txn.type == TransactionType.expense and due <= bill_horizon:
                alerts.append(
                    AlertIn(
                        type=AlertType.bill_due,
                        title=f"Bill due: {txn.description}",
                        message=(
                            f"'{txn.description}' ({txn.amount:.2f}) is due on "
                            f"{due.isoformat()}."
                        ),
                        data={"key": f"bill:{txn.id}:{due.isoformat()}", **payload},
                    )
                )
        return alerts

    def pending(self) -> list[AlertIn]:
        open_keys = {
            alert.data.get("key")
            for alert in self.store.alerts
            if not alert.is_read and alert.data
        }
        candidates = self.budget_alerts() + self.goal_alerts() + self.recurring_alerts()
        result = []
        for candidate in candidates:
            key = candidate.data.get("key") if candidate.data else None
            if key in open_keys:
                continue
            open_keys.add(key)
            result.append(candidate)
        return result

    def run(self) -> list[Alert]:
        created = [self.store.add_alert(alert) for alert in self.pending()]
        logger.info(f"alerts_generated: count={len(created)} today={self.today}")
        return created
