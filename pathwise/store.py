"""
Persistence for profiles, expenses, goals, simulations, transactions,
anomalies and conversation state.

``InMemoryStore`` backs tests and single-process use; ``PostgresStore``
keeps the same interface on top of psycopg2.
"""

import copy
import json
import logging
import threading
import zlib
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional

import psycopg2
import psycopg2.extras

from .conversation import ConversationState
from .models import (
    Anomaly,
    ExpenseCategory,
    Goal,
    GoalCategory,
    GoalPriority,
    GoalStatus,
    MonthlyExpense,
    Severity,
    Simulation,
    Transaction,
    TransactionKind,
    UserFinancials,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed store; returns copies so callers never share mutable rows"""

    def __init__(self):
        self._lock = threading.Lock()
        self.profiles: Dict[str, UserFinancials] = {}
        self.expenses: Dict[str, List[MonthlyExpense]] = {}
        self.goals: Dict[str, Goal] = {}
        self.simulations: List[Simulation] = []
        self.transactions: Dict[str, Transaction] = {}
        self.anomalies: Dict[str, Anomaly] = {}
        self.conversations: Dict[str, ConversationState] = {}

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        # Per-user serialisation comes from CommitmentLedger in one process.
        yield

    def get_profile(self, user_id: str) -> Optional[UserFinancials]:
        with self._lock:
            return copy.copy(self.profiles.get(user_id))

    def save_profile(self, profile: UserFinancials) -> None:
        with self._lock:
            self.profiles[profile.user_id] = copy.copy(profile)

    def list_expenses(self, user_id: str) -> List[MonthlyExpense]:
        with self._lock:
            return [copy.copy(e) for e in self.expenses.get(user_id, [])]

    def replace_expenses(self, user_id: str, expenses: Iterable[MonthlyExpense]) -> None:
        with self._lock:
            self.expenses[user_id] = [copy.copy(e) for e in expenses]

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        with self._lock:
            return copy.copy(self.goals.get(goal_id))

    def list_goals(self, user_id: str) -> List[Goal]:
        with self._lock:
            goals = [copy.copy(g) for g in self.goals.values() if g.user_id == user_id]
        return sorted(goals, key=lambda g: g.created_at)

    def save_goal(self, goal: Goal) -> None:
        with self._lock:
            self.goals[goal.id] = copy.copy(goal)

    def delete_goal(self, goal_id: str) -> None:
        with self._lock:
            self.goals.pop(goal_id, None)

    def add_simulation(self, simulation: Simulation) -> None:
        with self._lock:
            self.simulations.append(simulation)

    def list_simulations(self, user_id: str, goal_id: str) -> List[Simulation]:
        with self._lock:
            return [s for s in self.simulations if s.user_id == user_id and s.goal_id == goal_id]

    def add_transactions(self, transactions: Iterable[Transaction]) -> int:
        """Insert transactions, skipping ids already stored. Returns the number inserted."""
        inserted = 0
        with self._lock:
            for tx in transactions:
                if tx.id in self.transactions:
                    continue
                self.transactions[tx.id] = tx
                inserted += 1
        return inserted

    def list_transactions(self, user_id: str, start: date, end: date) -> List[Transaction]:
        with self._lock:
            return sorted(
                (t for t in self.transactions.values() if t.user_id == user_id and start <= t.date <= end),
                key=lambda t: t.date,
            )

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        with self._lock:
            return copy.copy(self.anomalies.get(anomaly_id))

    def list_anomalies(self, user_id: str) -> List[Anomaly]:
        with self._lock:
            return [copy.copy(a) for a in self.anomalies.values() if a.user_id == user_id]

    def save_anomaly(self, anomaly: Anomaly) -> None:
        with self._lock:
            self.anomalies[anomaly.id] = copy.copy(anomaly)

    def get_conversation(self, user_id: str) -> ConversationState:
        with self._lock:
            return self.conversations.get(user_id, ConversationState())

    def save_conversation(self, user_id: str, state: ConversationState) -> None:
        with self._lock:
            self.conversations[user_id] = state


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS user_financials (
        user_id VARCHAR(64) PRIMARY KEY,
        salary NUMERIC(14,3) NOT NULL,
        preferred_currency VARCHAR(3) NOT NULL DEFAULT 'BHD'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS monthly_expenses (
        id SERIAL PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        category VARCHAR(32) NOT NULL,
        amount NUMERIC(14,3) NOT NULL,
        label VARCHAR(255)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS goals (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        name VARCHAR(255) NOT NULL,
        category VARCHAR(32) NOT NULL,
        priority VARCHAR(16) NOT NULL,
        target_amount NUMERIC(14,3) NOT NULL,
        saved_amount NUMERIC(14,3) NOT NULL DEFAULT 0,
        monthly_savings_target NUMERIC(14,3),
        currency VARCHAR(3) NOT NULL,
        deadline DATE NOT NULL,
        status VARCHAR(16) NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS simulations (
        id VARCHAR(64) PRIMARY KEY,
        goal_id VARCHAR(64) NOT NULL,
        user_id VARCHAR(64) NOT NULL,
        name VARCHAR(255) NOT NULL,
        adjustments JSONB NOT NULL,
        simulated_monthly_rate NUMERIC(14,3) NOT NULL,
        projected_completion_date DATE,
        baseline_completion_date DATE,
        months_saved INTEGER,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        merchant VARCHAR(255),
        amount NUMERIC(14,3) NOT NULL,
        transaction_date DATE NOT NULL,
        category VARCHAR(64),
        kind VARCHAR(8) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS anomalies (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        category VARCHAR(64) NOT NULL,
        severity VARCHAR(8) NOT NULL,
        actual_amount NUMERIC(14,3) NOT NULL,
        baseline_amount NUMERIC(14,3) NOT NULL,
        ratio NUMERIC(10,2) NOT NULL,
        message TEXT NOT NULL,
        is_dismissed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_states (
        user_id VARCHAR(64) PRIMARY KEY,
        state JSONB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_goals_user ON goals(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, transaction_date)",
]


class PostgresStore:
    """psycopg2-backed store with a per-user advisory lock for ledger writes"""

    def __init__(self, db_params: Dict[str, Any], ensure_schema: bool = True):
        self.db_params = db_params
        if ensure_schema:
            self._ensure_schema()

    def _get_connection(self):
        return psycopg2.connect(**self.db_params)

    def _ensure_schema(self) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    for statement in SCHEMA:
                        cursor.execute(statement)
                    conn.commit()
                    logger.info("Database schema ensured")
        except psycopg2.Error as e:
            logger.error(f"Database initialization error: {e}")
            raise

    def _execute(self, sql: str, params: tuple = ()) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                conn.commit()

    def _fetch(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(sql, params)
                return list(cursor.fetchall())

    @staticmethod
    def lock_key(user_id: str) -> int:
        """Stable signed 32-bit key for pg_advisory_lock"""
        return zlib.crc32(user_id.encode()) - 2 ** 31

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """Session advisory lock held across a read-check-write sequence"""
        conn = self._get_connection()
        key = self.lock_key(user_id)
        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT pg_advisory_lock(%s)", (key,))
            yield
        finally:
            try:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT pg_advisory_unlock(%s)", (key,))
            finally:
                conn.close()

    # Profiles and expenses

    def get_profile(self, user_id: str) -> Optional[UserFinancials]:
        rows = self._fetch("SELECT * FROM user_financials WHERE user_id = %s", (user_id,))
        if not rows:
            return None
        row = rows[0]
        return UserFinancials(row['user_id'], Decimal(row['salary']), row['preferred_currency'])

    def save_profile(self, profile: UserFinancials) -> None:
        self._execute("""
            INSERT INTO user_financials (user_id, salary, preferred_currency)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id)
            DO UPDATE SET salary = EXCLUDED.salary, preferred_currency = EXCLUDED.preferred_currency
        """, (profile.user_id, profile.salary, profile.preferred_currency))

    def list_expenses(self, user_id: str) -> List[MonthlyExpense]:
        rows = self._fetch("SELECT * FROM monthly_expenses WHERE user_id = %s ORDER BY id", (user_id,))
        return [
            MonthlyExpense(row['user_id'], ExpenseCategory(row['category']), Decimal(row['amount']), row['label'])
            for row in rows
        ]

    def replace_expenses(self, user_id: str, expenses: Iterable[MonthlyExpense]) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute("DELETE FROM monthly_expenses WHERE user_id = %s", (user_id,))
                for expense in expenses:
                    cursor.execute("""
                        INSERT INTO monthly_expenses (user_id, category, amount, label)
                        VALUES (%s, %s, %s, %s)
                    """, (user_id, expense.category.value, expense.amount, expense.label))
                conn.commit()

    # Goals

    @staticmethod
    def _goal_from_row(row: Dict[str, Any]) -> Goal:
        target = row['monthly_savings_target']
        return Goal(
            id=row['id'],
            user_id=row['user_id'],
            name=row['name'],
            category=GoalCategory(row['category']),
            priority=GoalPriority(row['priority']),
            target_amount=Decimal(row['target_amount']),
            saved_amount=Decimal(row['saved_amount']),
            monthly_savings_target=Decimal(target) if target is not None else None,
            currency=row['currency'],
            deadline=row['deadline'],
            status=GoalStatus(row['status']),
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        rows = self._fetch("SELECT * FROM goals WHERE id = %s", (goal_id,))
        return self._goal_from_row(rows[0]) if rows else None

    def list_goals(self, user_id: str) -> List[Goal]:
        rows = self._fetch("SELECT * FROM goals WHERE user_id = %s ORDER BY created_at", (user_id,))
        return [self._goal_from_row(row) for row in rows]

    def save_goal(self, goal: Goal) -> None:
        self._execute("""
            INSERT INTO goals (id, user_id, name, category, priority, target_amount, saved_amount,
                               monthly_savings_target, currency, deadline, status, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                category = EXCLUDED.category,
                priority = EXCLUDED.priority,
                target_amount = EXCLUDED.target_amount,
                saved_amount = EXCLUDED.saved_amount,
                monthly_savings_target = EXCLUDED.monthly_savings_target,
                currency = EXCLUDED.currency,
                deadline = EXCLUDED.deadline,
                status = EXCLUDED.status,
                updated_at = EXCLUDED.updated_at
        """, (
            goal.id, goal.user_id, goal.name, goal.category.value, goal.priority.value,
            goal.target_amount, goal.saved_amount, goal.monthly_savings_target, goal.currency,
            goal.deadline, goal.status.value, goal.created_at, goal.updated_at,
        ))

    def delete_goal(self, goal_id: str) -> None:
        self._execute("DELETE FROM goals WHERE id = %s", (goal_id,))

    # Simulations

    def add_simulation(self, simulation: Simulation) -> None:
        adjustments = {k: str(v) for k, v in simulation.adjustments.items()}
        self._execute("""
            INSERT INTO simulations (id, goal_id, user_id, name, adjustments, simulated_monthly_rate,
                                     projected_completion_date, baseline_completion_date, months_saved, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, (
            simulation.id, simulation.goal_id, simulation.user_id, simulation.name,
            psycopg2.extras.Json(adjustments), simulation.simulated_monthly_rate,
            simulation.projected_completion_date, simulation.baseline_completion_date,
            simulation.months_saved, simulation.created_at,
        ))

    def list_simulations(self, user_id: str, goal_id: str) -> List[Simulation]:
        rows = self._fetch("""
            SELECT * FROM simulations WHERE user_id = %s AND goal_id = %s ORDER BY created_at
        """, (user_id, goal_id))
        return [
            Simulation(
                id=row['id'],
                goal_id=row['goal_id'],
                user_id=row['user_id'],
                name=row['name'],
                adjustments={k: Decimal(v) for k, v in row['adjustments'].items()},
                simulated_monthly_rate=Decimal(row['simulated_monthly_rate']),
                projected_completion_date=row['projected_completion_date'],
                baseline_completion_date=row['baseline_completion_date'],
                months_saved=row['months_saved'],
                created_at=row['created_at'],
            )
            for row in rows
        ]

    # Transactions

    def add_transactions(self, transactions: Iterable[Transaction]) -> int:
        """Idempotent insert keyed on transaction id. Returns the number inserted."""
        inserted = 0
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                for tx in transactions:
                    cursor.execute("""
                        INSERT INTO transactions (id, user_id, merchant, amount, transaction_date, category, kind)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (id) DO NOTHING
                    """, (tx.id, tx.user_id, tx.merchant, tx.amount, tx.date, tx.category, tx.kind.value))
                    inserted += cursor.rowcount
                conn.commit()
        return inserted

    def list_transactions(self, user_id: str, start: date, end: date) -> List[Transaction]:
        rows = self._fetch("""
            SELECT * FROM transactions
            WHERE user_id = %s AND transaction_date BETWEEN %s AND %s
            ORDER BY transaction_date
        """, (user_id, start, end))
        return [
            Transaction(
                id=row['id'],
                user_id=row['user_id'],
                merchant=row['merchant'] or "",
                amount=Decimal(row['amount']),
                date=row['transaction_date'],
                category=row['category'],
                kind=TransactionKind(row['kind']),
            )
            for row in rows
        ]

    # Anomalies

    @staticmethod
    def _anomaly_from_row(row: Dict[str, Any]) -> Anomaly:
        return Anomaly(
            id=row['id'],
            user_id=row['user_id'],
            category=row['category'],
            severity=Severity(row['severity']),
            actual_amount=Decimal(row['actual_amount']),
            baseline_amount=Decimal(row['baseline_amount']),
            ratio=Decimal(row['ratio']),
            message=row['message'],
            is_dismissed=row['is_dismissed'],
            created_at=row['created_at'],
        )

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        rows = self._fetch("SELECT * FROM anomalies WHERE id = %s", (anomaly_id,))
        return self._anomaly_from_row(rows[0]) if rows else None

    def list_anomalies(self, user_id: str) -> List[Anomaly]:
        rows = self._fetch("SELECT * FROM anomalies WHERE user_id = %s ORDER BY created_at DESC", (user_id,))
        return [self._anomaly_from_row(row) for row in rows]

    def save_anomaly(self, anomaly: Anomaly) -> None:
        self._execute("""
            INSERT INTO anomalies (id, user_id, category, severity, actual_amount, baseline_amount,
                                   ratio, message, is_dismissed, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET is_dismissed = EXCLUDED.is_dismissed
        """, (
            anomaly.id, anomaly.user_id, anomaly.category, anomaly.severity.value,
            anomaly.actual_amount, anomaly.baseline_amount, anomaly.ratio, anomaly.message,
            anomaly.is_dismissed, anomaly.created_at,
        ))

    # Conversation state

    def get_conversation(self, user_id: str) -> ConversationState:
        rows = self._fetch("SELECT state FROM conversation_states WHERE user_id = %s", (user_id,))
        if not rows:
            return ConversationState()
        state = rows[0]['state']
        if isinstance(state, str):
            state = json.loads(state)
        return ConversationState.from_dict(state)

    def save_conversation(self, user_id: str, state: ConversationState) -> None:
        self._execute("""
            INSERT INTO conversation_states (user_id, state) VALUES (%s, %s)
            ON CONFLICT (user_id) DO UPDATE SET state = EXCLUDED.state
        """, (user_id, psycopg2.extras.Json(state.to_dict())))
