#!/usr/bin/env python3
"""
Unit tests for the persistence layer.
Tests both the in-memory store and the psycopg2-backed store with a mocked connection.
"""

import unittest
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch, MagicMock

import psycopg2

from pathwise.conversation import ConversationState, Step
from pathwise.models import (
    Anomaly,
    ExpenseCategory,
    Goal,
    GoalStatus,
    MonthlyExpense,
    Severity,
    Transaction,
    TransactionKind,
    UserFinancials,
)
from pathwise.store import InMemoryStore, PostgresStore

DB_PARAMS = {'host': 'db', 'port': 5432, 'database': 'pathwise', 'user': 'pathwise', 'password': 'x'}


def mock_database(mock_connect):
    """Wire a connection whose cursor context manager yields one shared cursor"""
    mock_conn = MagicMock()
    mock_cursor = MagicMock()
    mock_connect.return_value = mock_conn
    mock_conn.__enter__ = MagicMock(return_value=mock_conn)
    mock_conn.__exit__ = MagicMock(return_value=None)
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=None)
    return mock_conn, mock_cursor


def executed(mock_cursor, fragment):
    return [c for c in mock_cursor.execute.call_args_list if fragment in str(c)]


class TestInMemoryStore(unittest.TestCase):
    """Test the dict-backed store"""

    def setUp(self):
        self.store = InMemoryStore()

    def test_goals_are_copied(self):
        goal = Goal('user-1', 'Car', Decimal('8000'), date(2027, 6, 1))
        self.store.save_goal(goal)

        loaded = self.store.get_goal(goal.id)
        loaded.name = 'Changed'

        self.assertEqual(self.store.get_goal(goal.id).name, 'Car')

    def test_goals_listed_per_user(self):
        self.store.save_goal(Goal('user-1', 'Car', Decimal('8000'), date(2027, 6, 1)))
        self.store.save_goal(Goal('user-2', 'House', Decimal('20000'), date(2030, 1, 1)))

        self.assertEqual([g.name for g in self.store.list_goals('user-1')], ['Car'])
        self.assertIsNone(self.store.get_goal('missing'))

    def test_add_transactions_skips_known_ids(self):
        tx = Transaction('user-1', Decimal('5'), date(2026, 1, 10), id='t1')
        self.assertEqual(self.store.add_transactions([tx]), 1)
        self.assertEqual(self.store.add_transactions([tx]), 0)

    def test_list_transactions_filters_by_user_and_range(self):
        self.store.add_transactions([
            Transaction('user-1', Decimal('5'), date(2026, 1, 10)),
            Transaction('user-1', Decimal('6'), date(2026, 3, 10)),
            Transaction('user-2', Decimal('7'), date(2026, 1, 11)),
        ])
        found = self.store.list_transactions('user-1', date(2026, 1, 1), date(2026, 2, 28))
        self.assertEqual([t.amount for t in found], [Decimal('5')])

    def test_conversation_defaults_to_idle(self):
        self.assertEqual(self.store.get_conversation('user-1').step, Step.IDLE)
        self.store.save_conversation('user-1', ConversationState(step=Step.COLLECTING_NAME))
        self.assertEqual(self.store.get_conversation('user-1').step, Step.COLLECTING_NAME)


class TestPostgresStore(unittest.TestCase):
    """Test the psycopg2-backed store"""

    @patch('psycopg2.connect')
    def test_schema_creation(self, mock_connect):
        """Test that the tables are created on init"""
        mock_conn, mock_cursor = mock_database(mock_connect)

        PostgresStore(DB_PARAMS)

        for table in ('user_financials', 'monthly_expenses', 'goals', 'simulations',
                      'transactions', 'anomalies', 'conversation_states'):
            self.assertTrue(executed(mock_cursor, f'CREATE TABLE IF NOT EXISTS {table}'),
                            f"{table} should be created on init")
        mock_connect.assert_called_with(**DB_PARAMS)
        mock_conn.commit.assert_called()

    @patch('psycopg2.connect')
    def test_schema_errors_propagate(self, mock_connect):
        mock_connect.side_effect = psycopg2.OperationalError("Database connection failed")

        with self.assertRaises(psycopg2.OperationalError):
            PostgresStore(DB_PARAMS)

    @patch('psycopg2.connect')
    def test_save_goal_upserts(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)
        goal = Goal('user-1', 'Car', Decimal('8000.000'), date(2027, 6, 1),
                    monthly_savings_target=Decimal('400.000'))

        store.save_goal(goal)

        calls = executed(mock_cursor, 'INSERT INTO goals')
        self.assertEqual(len(calls), 1)
        self.assertIn('ON CONFLICT (id) DO UPDATE', str(calls[0]))
        params = calls[0].args[1]
        self.assertEqual(params[0], goal.id)
        self.assertEqual(params[7], Decimal('400.000'))
        self.assertEqual(params[10], 'ON_TRACK')

    @patch('psycopg2.connect')
    def test_get_goal_maps_row(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        mock_cursor.fetchall.return_value = [{
            'id': 'g1',
            'user_id': 'user-1',
            'name': 'Car',
            'category': 'VEHICLE',
            'priority': 'HIGH',
            'target_amount': Decimal('8000.000'),
            'saved_amount': Decimal('8000.000'),
            'monthly_savings_target': None,
            'currency': 'BHD',
            'deadline': date(2027, 6, 1),
            'status': 'COMPLETED',
            'created_at': datetime(2026, 1, 1, 9, 0),
            'updated_at': datetime(2026, 1, 2, 9, 0),
        }]
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        goal = store.get_goal('g1')

        self.assertEqual(goal.id, 'g1')
        self.assertEqual(goal.status, GoalStatus.COMPLETED)
        self.assertIsNone(goal.monthly_savings_target)
        self.assertEqual(goal.deadline, date(2027, 6, 1))

    @patch('psycopg2.connect')
    def test_missing_rows_return_none(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        mock_cursor.fetchall.return_value = []
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        self.assertIsNone(store.get_goal('missing'))
        self.assertIsNone(store.get_profile('user-1'))
        self.assertIsNone(store.get_anomaly('missing'))
        self.assertEqual(store.get_conversation('user-1'), ConversationState())

    @patch('psycopg2.connect')
    def test_replace_expenses_deletes_then_inserts(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        store.replace_expenses('user-1', [
            MonthlyExpense('user-1', ExpenseCategory.HOUSING, Decimal('300')),
            MonthlyExpense('user-1', ExpenseCategory.FOOD, Decimal('100'), 'Groceries'),
        ])

        statements = [str(c) for c in mock_cursor.execute.call_args_list]
        self.assertIn('DELETE FROM monthly_expenses', statements[0])
        self.assertEqual(len(executed(mock_cursor, 'INSERT INTO monthly_expenses')), 2)
        mock_conn.commit.assert_called_once()

    @patch('psycopg2.connect')
    def test_add_transactions_counts_inserted_rows(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        mock_cursor.rowcount = 1
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        inserted = store.add_transactions([
            Transaction('user-1', Decimal('5'), date(2026, 1, 10), kind=TransactionKind.DEBIT),
            Transaction('user-1', Decimal('9'), date(2026, 1, 11), kind=TransactionKind.CREDIT),
        ])

        self.assertEqual(inserted, 2)
        calls = executed(mock_cursor, 'INSERT INTO transactions')
        self.assertTrue(all('ON CONFLICT (id) DO NOTHING' in str(c) for c in calls))

    @patch('psycopg2.connect')
    def test_save_anomaly_only_updates_dismissal(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)
        anomaly = Anomaly('user-1', 'FOOD', Severity.HIGH, Decimal('350'), Decimal('100'),
                          Decimal('3.50'), 'message', is_dismissed=True)

        store.save_anomaly(anomaly)

        calls = executed(mock_cursor, 'INSERT INTO anomalies')
        self.assertIn('DO UPDATE SET is_dismissed = EXCLUDED.is_dismissed', str(calls[0]))

    @patch('psycopg2.connect')
    def test_conversation_state_round_trip_through_json(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        state = ConversationState(step=Step.COLLECTING_AMOUNT, goal_name='Car')
        mock_cursor.fetchall.return_value = [{'state': state.to_dict()}]
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        self.assertEqual(store.get_conversation('user-1'), state)

    def test_lock_key_is_stable_signed_int32(self):
        key = PostgresStore.lock_key('user-1')
        self.assertEqual(key, PostgresStore.lock_key('user-1'))
        self.assertNotEqual(key, PostgresStore.lock_key('user-2'))
        self.assertTrue(-2 ** 31 <= key < 2 ** 31)

    @patch('psycopg2.connect')
    def test_user_lock_acquires_and_releases(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)
        key = PostgresStore.lock_key('user-1')

        with store.user_lock('user-1'):
            self.assertTrue(executed(mock_cursor, 'pg_advisory_lock'))
            self.assertFalse(executed(mock_cursor, 'pg_advisory_unlock'))

        unlock = executed(mock_cursor, 'pg_advisory_unlock')
        self.assertEqual(unlock[0].args[1], (key,))
        mock_conn.close.assert_called_once()

    @patch('psycopg2.connect')
    def test_user_lock_released_on_error(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        with self.assertRaises(RuntimeError):
            with store.user_lock('user-1'):
                raise RuntimeError("boom")

        self.assertTrue(executed(mock_cursor, 'pg_advisory_unlock'))
        mock_conn.close.assert_called_once()

    @patch('psycopg2.connect')
    def test_save_profile(self, mock_connect):
        mock_conn, mock_cursor = mock_database(mock_connect)
        store = PostgresStore(DB_PARAMS, ensure_schema=False)

        store.save_profile(UserFinancials('user-1', Decimal('1000.000')))

        calls = executed(mock_cursor, 'INSERT INTO user_financials')
        self.assertEqual(calls[0].args[1], ('user-1', Decimal('1000.000'), 'BHD'))


if __name__ == '__main__':
    unittest.main()
