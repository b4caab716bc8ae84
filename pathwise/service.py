"""
Planner service: the ownership boundary around the engine.

Every operation takes the resolved owner id, loads that user's data from the
store, runs the pure engine functions and persists the outcome. Writes that
change a user's total monthly commitment run under the per-user ledger lock.
"""

from __future__ import annotations

import dataclasses
import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .analytics import summarize_spending
from .anomaly_detector import AnomalyDetector, active, dismiss
from .categorizer import Classifier, KeywordClassifier
from .config import Settings
from .conversation import Reply, advance
from .errors import (
    AnomalyNotFound,
    GoalNotFound,
    PathwiseError,
    ProfileNotFound,
    UnauthorizedAccess,
    ValidationError,
)
from .ledger import CommitmentLedger
from .models import (
    Anomaly,
    ExpenseCategory,
    FinancialSnapshot,
    Goal,
    GoalCategory,
    GoalPriority,
    MonthlyExpense,
    Simulation,
    SimulationResult,
    Transaction,
    TransactionKind,
    UserFinancials,
    WarningLevel,
)
from .money import ZERO, add_months, month_start, optional_money, to_money
from .projector import GoalProjector, affordability_note, apply_projection
from .simulator import GoalSimulator
from .snapshot import compute_snapshot, counted_target, total_commitment
from .status import progress_percentage, rate_is_set, resolve_status

logger = logging.getLogger(__name__)

GOAL_FIELDS = (
    "name", "category", "priority", "target_amount", "saved_amount",
    "monthly_savings_target", "deadline", "currency",
)


def _enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def _records(items, field: str) -> List[Mapping[str, Any]]:
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise ValidationError(f"{field} must be a list of objects")
    for item in items:
        if not isinstance(item, Mapping):
            raise ValidationError(f"each entry in {field} must be an object")
    return list(items)


def _date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


class PlannerService:
    """Goal, expense, projection, simulation and anomaly operations for one owner at a time"""

    def __init__(self, store, settings: Optional[Settings] = None,
                 ledger: Optional[CommitmentLedger] = None,
                 classifier: Optional[Classifier] = None) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.ledger = ledger or CommitmentLedger()
        self.classifier = classifier or KeywordClassifier()
        sym = self.settings.currency_symbol
        self.projector = GoalProjector(chart_cap=self.settings.chart_cap)
        self.simulator = GoalSimulator(self.projector, currency_symbol=sym)
        self.detector = AnomalyDetector(
            window_months=self.settings.anomaly_window_months,
            low=self.settings.anomaly_low,
            medium=self.settings.anomaly_medium,
            high=self.settings.anomaly_high,
            classifier=self.classifier,
            currency_symbol=sym,
        )

    # Helpers

    @contextmanager
    def _locked(self, owner_id: str) -> Iterator[None]:
        with self.ledger.locked(owner_id), self.store.user_lock(owner_id):
            yield

    def _profile(self, owner_id: str) -> UserFinancials:
        profile = self.store.get_profile(owner_id)
        if profile is None:
            raise ProfileNotFound(f"No financial profile for user {owner_id}")
        return profile

    def _owned_goal(self, owner_id: str, goal_id: str) -> Goal:
        goal = self.store.get_goal(goal_id)
        if goal is None:
            raise GoalNotFound(f"Goal not found: {goal_id}")
        if goal.user_id != owner_id:
            logger.warning("User %s attempted to access goal %s", owner_id, goal_id)
            raise UnauthorizedAccess("You do not have access to this goal.")
        return goal

    def _snapshot(self, owner_id: str, goals: Optional[List[Goal]] = None) -> FinancialSnapshot:
        profile = self._profile(owner_id)
        if goals is None:
            goals = self.store.list_goals(owner_id)
        return compute_snapshot(profile.salary, self.store.list_expenses(owner_id), goals,
                                currency_symbol=self.settings.currency_symbol)

    def _check_commitment(self, owner_id: str, previous: Optional[Goal], updated: Goal) -> None:
        """Gate a goal write whose commitment grows; must run under the user's lock"""
        old = counted_target(previous) if previous is not None else ZERO
        new = counted_target(updated)
        if new <= old:
            return
        goals = self.store.list_goals(owner_id)
        snap = self._snapshot(owner_id, goals)
        self.ledger.check(
            snap.disposable_income,
            total_commitment(goals),
            old if previous is not None else None,
            new,
            user_id=owner_id,
            currency_symbol=self.settings.currency_symbol,
        )

    # Profile and expenses

    def save_profile(self, owner_id: str, salary, preferred_currency: Optional[str] = None) -> UserFinancials:
        amount = to_money(salary, "salary")
        if amount <= 0:
            raise ValidationError("salary must be positive")
        with self._locked(owner_id):
            profile = UserFinancials(owner_id, amount, preferred_currency or self.settings.currency)
            self.store.save_profile(profile)
        logger.info("Saved financial profile for user %s", owner_id)
        return profile

    def replace_expenses(self, owner_id: str, items: Iterable[Mapping[str, Any]]) -> List[MonthlyExpense]:
        """Replace all of the user's fixed expenses; zero amounts are dropped"""
        expenses = []
        for item in _records(items, "expenses"):
            amount = to_money(item.get("amount"), "expense amount")
            if amount < 0:
                raise ValidationError("expense amounts cannot be negative")
            if amount == 0:
                continue
            label = item.get("label")
            expenses.append(MonthlyExpense(
                user_id=owner_id,
                category=_enum(ExpenseCategory, item.get("category", "OTHER"), "category"),
                amount=amount,
                label=label.strip() if isinstance(label, str) else None,
            ))

        with self._locked(owner_id):
            self._profile(owner_id)
            self.store.replace_expenses(owner_id, expenses)
            snap = self._snapshot(owner_id)
        if snap.warning_level == WarningLevel.RED:
            logger.warning("Expenses for user %s leave a RED snapshot: %s", owner_id, snap.warning_message)
        return expenses

    def get_snapshot(self, owner_id: str) -> FinancialSnapshot:
        return self._snapshot(owner_id)

    # Goals

    def goal_view(self, goal: Goal) -> Dict[str, Any]:
        view = goal.to_dict()
        view["progress_percentage"] = str(progress_percentage(goal))
        view["rate_set"] = rate_is_set(goal)
        return view

    def list_goals(self, owner_id: str) -> List[Goal]:
        return self.store.list_goals(owner_id)

    def get_goal(self, owner_id: str, goal_id: str) -> Goal:
        return self._owned_goal(owner_id, goal_id)

    def create_goal(self, owner_id: str, name: str, target_amount, deadline,
                    category=GoalCategory.OTHER, priority=GoalPriority.MEDIUM,
                    saved_amount=None, monthly_savings_target=None,
                    currency: Optional[str] = None, today: Optional[date] = None) -> Goal:
        today = today or date.today()
        if not name or not str(name).strip():
            raise ValidationError("goal name is required")
        target = to_money(target_amount, "target amount")
        if target <= 0:
            raise ValidationError("target amount must be positive")
        saved = optional_money(saved_amount, "saved amount") or ZERO
        if saved < 0:
            raise ValidationError("saved amount cannot be negative")
        rate = optional_money(monthly_savings_target, "monthly savings target")
        if rate is not None and rate <= 0:
            raise ValidationError("monthly savings target must be positive when set")
        due = _date(deadline, "deadline")
        if due <= today:
            raise ValidationError("deadline must be in the future")

        goal = Goal(
            user_id=owner_id,
            name=str(name).strip(),
            target_amount=target,
            deadline=due,
            category=_enum(GoalCategory, category, "category"),
            priority=_enum(GoalPriority, priority, "priority"),
            saved_amount=saved,
            monthly_savings_target=rate,
            currency=currency or self.settings.currency,
        )
        goal.status = resolve_status(goal, today)

        with self._locked(owner_id):
            self._check_commitment(owner_id, None, goal)
            self.store.save_goal(goal)
        logger.info("Created goal %s for user %s (status %s)", goal.id, owner_id, goal.status.value)
        return goal

    def update_goal(self, owner_id: str, goal_id: str, changes: Mapping[str, Any],
                    today: Optional[date] = None) -> Goal:
        today = today or date.today()
        unknown = set(changes) - set(GOAL_FIELDS)
        if unknown:
            raise ValidationError(f"unknown goal fields: {', '.join(sorted(unknown))}")

        with self._locked(owner_id):
            current = self._owned_goal(owner_id, goal_id)
            values: Dict[str, Any] = {}
            if "name" in changes:
                if not changes["name"] or not str(changes["name"]).strip():
                    raise ValidationError("goal name is required")
                values["name"] = str(changes["name"]).strip()
            if "category" in changes:
                values["category"] = _enum(GoalCategory, changes["category"], "category")
            if "priority" in changes:
                values["priority"] = _enum(GoalPriority, changes["priority"], "priority")
            if "target_amount" in changes:
                values["target_amount"] = to_money(changes["target_amount"], "target amount")
                if values["target_amount"] <= 0:
                    raise ValidationError("target amount must be positive")
            if changes.get("saved_amount") is not None:
                values["saved_amount"] = to_money(changes["saved_amount"], "saved amount")
                if values["saved_amount"] < 0:
                    raise ValidationError("saved amount cannot be negative")
            if changes.get("monthly_savings_target") is not None:
                values["monthly_savings_target"] = to_money(changes["monthly_savings_target"],
                                                            "monthly savings target")
                if values["monthly_savings_target"] <= 0:
                    raise ValidationError("monthly savings target must be positive when set")
            if "deadline" in changes:
                due = _date(changes["deadline"], "deadline")
                if due != current.deadline and due <= today:
                    raise ValidationError("deadline must be in the future")
                values["deadline"] = due
            if changes.get("currency"):
                values["currency"] = str(changes["currency"])

            updated = dataclasses.replace(current, updated_at=datetime.now(), **values)
            updated.status = resolve_status(updated, today)
            self._check_commitment(owner_id, current, updated)
            self.store.save_goal(updated)

        logger.info("Updated goal %s for user %s (status %s)", goal_id, owner_id, updated.status.value)
        return updated

    def delete_goal(self, owner_id: str, goal_id: str) -> None:
        with self._locked(owner_id):
            self._owned_goal(owner_id, goal_id)
            self.store.delete_goal(goal_id)
        logger.info("Deleted goal %s for user %s", goal_id, owner_id)

    # Projection

    def project_goal(self, owner_id: str, goal_id: str, monthly_rate, persist: bool = True,
                     today: Optional[date] = None) -> Dict[str, Any]:
        """
        Project a goal at ``monthly_rate``

        With ``persist`` the rate is first checked against the ledger, then
        written to the goal together with its recomputed status. Without it
        this is a read-only preview.
        """
        today = today or date.today()
        with self._locked(owner_id):
            goal = self._owned_goal(owner_id, goal_id)
            result = self.projector.project(goal, monthly_rate, today)
            if persist:
                updated = apply_projection(goal, result, today)
                self._check_commitment(owner_id, goal, updated)
                self.store.save_goal(updated)
                goal = updated
                logger.info("Persisted projected rate %s on goal %s", result.monthly_rate, goal_id)
            snap = self._snapshot(owner_id)

        return {
            "goal": self.goal_view(goal),
            "projection": result.to_dict(),
            "snapshot": snap.to_dict(),
            "remaining_after_this_saving": str(snap.disposable_income - result.monthly_rate),
            "affordability_note": affordability_note(result.monthly_rate, snap, self.settings.currency_symbol),
        }

    # Simulation

    def simulate_goal(self, owner_id: str, goal_id: str, current_rate, adjustments: Mapping[str, Any],
                      name: Optional[str] = None,
                      today: Optional[date] = None) -> Tuple[SimulationResult, Simulation]:
        goal = self._owned_goal(owner_id, goal_id)
        snap = self._snapshot(owner_id)
        result = self.simulator.simulate(goal, current_rate, adjustments, snapshot=snap, today=today)
        record = self.simulator.to_record(result, owner_id, name)
        self.store.add_simulation(record)
        logger.info("Recorded simulation %s for goal %s (months saved %s)",
                    record.id, goal_id, result.months_saved)
        return result, record

    def list_simulations(self, owner_id: str, goal_id: str) -> List[Simulation]:
        self._owned_goal(owner_id, goal_id)
        return self.store.list_simulations(owner_id, goal_id)

    # Transactions and anomalies

    def import_transactions(self, owner_id: str, items: Iterable[Mapping[str, Any]]) -> int:
        """Store importer-supplied transactions under the owner; blank categories are classified"""
        transactions = []
        for item in _records(items, "transactions"):
            amount = to_money(item.get("amount"), "transaction amount")
            if amount < 0:
                raise ValidationError("transaction amounts must be non-negative; use kind for direction")
            merchant = item.get("merchant") or ""
            category = item.get("category") or self.classifier.categorize(
                {"merchant": merchant, "description": item.get("description")})
            kwargs = {"id": str(item["id"])} if item.get("id") else {}
            transactions.append(Transaction(
                user_id=owner_id,
                amount=amount,
                date=_date(item.get("date"), "transaction date"),
                merchant=merchant,
                category=str(category).upper(),
                kind=_enum(TransactionKind, item.get("kind", "DEBIT"), "kind"),
                **kwargs,
            ))
        inserted = self.store.add_transactions(transactions)
        logger.info("Imported %d of %d transactions for user %s", inserted, len(transactions), owner_id)
        return inserted

    def detect_anomalies(self, owner_id: str, today: Optional[date] = None) -> List[Anomaly]:
        """Run detection over the trailing window, persist new anomalies, return the active list"""
        today = today or date.today()
        start = add_months(month_start(today), -(self.detector.window_months - 1))
        with self._locked(owner_id):
            transactions = self.store.list_transactions(owner_id, start, today)
            existing = self.store.list_anomalies(owner_id)
            for anomaly in self.detector.detect(owner_id, transactions, existing, today):
                self.store.save_anomaly(anomaly)
        return self.list_anomalies(owner_id)

    def list_anomalies(self, owner_id: str) -> List[Anomaly]:
        return active(self.store.list_anomalies(owner_id))

    def dismiss_anomaly(self, owner_id: str, anomaly_id: str) -> Anomaly:
        anomaly = self.store.get_anomaly(anomaly_id)
        if anomaly is None:
            raise AnomalyNotFound(f"Anomaly not found: {anomaly_id}")
        if anomaly.user_id != owner_id:
            raise UnauthorizedAccess("You do not have access to this anomaly.")
        dismissed = dismiss(anomaly)
        self.store.save_anomaly(dismissed)
        return dismissed

    def spending_summary(self, owner_id: str, months: Optional[int] = None,
                         today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        if months is None:
            months = self.settings.analytics_months
        if months < 1:
            raise ValidationError("months must be at least 1")
        transactions = self.store.list_transactions(owner_id, add_months(today, -months), today)
        return summarize_spending(transactions, today, months)

    # Goal-creation dialogue

    def chat(self, owner_id: str, message: str, today: Optional[date] = None) -> Reply:
        """
        One turn of the goal-creation dialogue

        Replies with ``delegate`` set are meant for the external
        text-generation collaborator.
        """
        state = self.store.get_conversation(owner_id)
        state, reply = advance(state, message, today=today, classifier=self.classifier)
        self.store.save_conversation(owner_id, state)
        if reply.draft is None:
            return reply

        draft = reply.draft
        try:
            goal = self.create_goal(owner_id, draft.name, draft.target_amount, draft.deadline,
                                    category=draft.category, priority=draft.priority, today=today)
        except PathwiseError as exc:
            logger.error("Failed to create goal from conversation for user %s: %s", owner_id, exc)
            return Reply(f"Something went wrong: {exc} Please try creating the goal from your dashboard.")
        return Reply(f"{reply.text} Would you like tips on how to reach it faster?", draft=draft,
                     goal_id=goal.id)


