"""
BudgetBuddy - Personal Finance Engine

This module contains the FinanceEngine class: a stateless service over the
SQLite store that backs every HTTP handler.

Functional groups:
- Users: registration and bcrypt-verified login
- Accounts: creation with an opening balance, listing, reconciliation
- Transactions: delegated to the LedgerManager (ledger.py), which keeps
  account balances consistent
- Categories, budgets, bills, financial goals, future plans
- Reports: income/expense summaries against the overall budget

Every method that touches data takes the owner's user id and scopes all
queries to it. Records owned by someone else are reported exactly like
missing ones.
"""

import calendar
import datetime
import logging
import sqlite3
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path

import bcrypt

import config
from errors import (
    AuthenticationFailure,
    BudgetBuddyError,
    ConflictFailure,
    NotFoundOrUnauthorized,
    PersistenceFailure,
    ValidationFailure,
)
from ledger import LedgerManager

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
# Balances are adjusted in SQLite REAL arithmetic, which is exact to the cent below ~9e13.
MAX_AMOUNT = Decimal('999999999999.99')
CATEGORY_TYPES = ('income', 'expense')
BILL_STATUSES = ('unpaid', 'paid')
REPORT_PERIODS = ('weekly', 'monthly', 'yearly')


class FinanceEngine:
    """
    Stateless personal finance engine for BudgetBuddy.

    No state is kept between calls; each method opens its own SQLite
    connection and closes it before returning.

    Example:
        engine = FinanceEngine()
        user = engine.register_user("Ada", "ada@example.com", "password123")
        account = engine.create_account(user['id'], "checking", "250.00")
        engine.ledger.create_transaction(user['id'], "40", "Groceries", "expense", None, "", account['id'])
    """

    def __init__(self, db_path=None):
        self.db_path = Path(db_path or config.DATABASE_PATH)
        self.ledger = LedgerManager(self)

    # =============================================================================
    # SQLITE HELPER METHODS
    # =============================================================================

    @staticmethod
    def _to_money_str(value):
        """Convert Decimal, int or float to a two-decimal string for SQLite storage"""
        if value is None:
            return None
        return str(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))

    @staticmethod
    def _from_money_str(value):
        """Convert string from SQLite to Decimal for calculations"""
        if value is None or value == '':
            return Decimal('0.00')
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def _parse_amount(value, allow_zero=False, allow_negative=False):
        """Validate user input as a monetary amount rounded to cents."""
        try:
            amount = Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationFailure(f"Invalid amount: {value!r}")
        if not amount.is_finite():
            raise ValidationFailure(f"Invalid amount: {value!r}")
        if amount < 0 and not allow_negative:
            raise ValidationFailure("Amount must not be negative.")
        if amount == 0 and not allow_zero:
            raise ValidationFailure("Amount must be positive.")
        if abs(amount) > MAX_AMOUNT:
            raise ValidationFailure(f"Amount must not exceed {MAX_AMOUNT}.")
        return amount

    @staticmethod
    def _parse_date(value):
        """Normalise an ISO date or datetime string to YYYY-MM-DD (None passes through)."""
        if value is None or value == '':
            return None
        if isinstance(value, datetime.datetime):
            return value.date().isoformat()
        if isinstance(value, datetime.date):
            return value.isoformat()
        try:
            return datetime.date.fromisoformat(str(value)[:10]).isoformat()
        except ValueError:
            raise ValidationFailure(f"Invalid date: {value!r}. Expected YYYY-MM-DD.")

    @staticmethod
    def _row_to_dict(row):
        """Convert sqlite3.Row to dictionary for JSON serialization"""
        if row is None:
            return None
        return dict(row)

    @staticmethod
    def _rows_to_dicts(rows):
        """Convert list of sqlite3.Row objects to list of dicts"""
        return [dict(row) for row in rows]

    def _get_db_connection(self):
        """
        Establish a new database connection.

        Returns:
            tuple: (connection, cursor) - SQLite connection and cursor

        Note:
            Callers are responsible for closing the connection and cursor.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        return conn, conn.cursor()

    def _write(self, operation):
        """Run operation(cursor) and commit, rolling back and wrapping store errors."""
        conn, cursor = self._get_db_connection()
        try:
            result = operation(cursor)
            conn.commit()
            return result
        except BudgetBuddyError:
            conn.rollback()
            raise
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if 'UNIQUE' in str(e):
                raise ConflictFailure("Resource already exists") from e
            raise PersistenceFailure(f"A database error occurred: {e}") from e
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception("Database write failed")
            raise PersistenceFailure(f"A database error occurred: {e}") from e
        finally:
            cursor.close()
            conn.close()

    def _read(self, query, params=(), one=False):
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(query, params)
            if one:
                return self._row_to_dict(cursor.fetchone())
            return self._rows_to_dicts(cursor.fetchall())
        except sqlite3.Error as e:
            logger.exception("Database read failed")
            raise PersistenceFailure(f"A database error occurred: {e}") from e
        finally:
            cursor.close()
            conn.close()

    def _money_fields(self, row, *fields):
        if row:
            for field in fields:
                row[field] = self._from_money_str(row[field])
        return row

    # =============================================================================
    # USER AUTHENTICATION METHODS
    # =============================================================================

    def register_user(self, name, email, password):
        """
        Register a new user with a bcrypt password hash.

        Returns:
            dict: {id, name, email}

        Raises:
            ValidationFailure: missing name/email or password too short
            ConflictFailure: the email is already registered
        """
        if not name or not email or not password:
            raise ValidationFailure("Name, email and password are required.")
        if len(password) < config.MIN_PASSWORD_LENGTH:
            raise ValidationFailure(
                f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long."
            )
        email = email.strip().lower()

        def operation(cursor):
            cursor.execute("SELECT id FROM users WHERE email = ?", (email,))
            if cursor.fetchone():
                raise ConflictFailure("A user with this email already exists.")

            password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())
            cursor.execute(
                "INSERT INTO users (name, email, password_hash) VALUES (?, ?, ?)",
                (name, email, password_hash.decode('utf-8'))
            )
            return {"id": cursor.lastrowid, "name": name, "email": email}

        user = self._write(operation)
        logger.info("Registered user %s", user['id'])
        return user

    def login_user(self, email, password):
        """
        Verify an email/password pair.

        Returns:
            dict: {id, name, email} of the authenticated user

        Raises:
            NotFoundOrUnauthorized: no user with this email
            AuthenticationFailure: the password does not match
        """
        if not email or not password:
            raise ValidationFailure("Email and password are required.")
        user = self._read(
            "SELECT id, name, email, password_hash FROM users WHERE email = ?",
            (email.strip().lower(),), one=True
        )
        if not user:
            raise NotFoundOrUnauthorized("User not found")
        if not bcrypt.checkpw(password.encode('utf-8'), user['password_hash'].encode('utf-8')):
            raise AuthenticationFailure("Invalid credentials")
        return {"id": user['id'], "name": user['name'], "email": user['email']}

    def get_user(self, user_id):
        return self._read("SELECT id, name, email, created_at FROM users WHERE id = ?", (user_id,), one=True)

    # =============================================================================
    # ACCOUNTS
    # =============================================================================

    def create_account(self, user_id, account_type, opening_balance=0):
        """
        Create an account for user_id.

        The account starts at 0.00. A non-zero opening balance is booked as an
        "Opening Balance" transaction through the ledger, inside the same
        database transaction, so the balance always equals the sum of the
        account's transactions.
        """
        if not account_type or not str(account_type).strip():
            raise ValidationFailure("Account type is required.")
        opening = self._parse_amount(opening_balance or 0, allow_zero=True, allow_negative=True)

        def operation(cursor):
            cursor.execute("BEGIN IMMEDIATE")
            cursor.execute(
                "INSERT INTO accounts (user_id, account_type, balance) VALUES (?, ?, '0.00')",
                (user_id, str(account_type).strip())
            )
            account_id = cursor.lastrowid
            if opening != 0:
                self.ledger.create_transaction(
                    user_id, abs(opening), 'Opening Balance',
                    'income' if opening > 0 else 'expense',
                    None, 'Opening Balance', account_id, cursor=cursor
                )
            cursor.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            return self._money_fields(self._row_to_dict(cursor.fetchone()), 'balance')

        account = self._write(operation)
        logger.info("Created account %s for user %s", account['id'], user_id)
        return account

    def list_accounts(self, user_id):
        accounts = self._read(
            "SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
        )
        return [self._money_fields(account, 'balance') for account in accounts]

    def get_account(self, user_id, account_id):
        account = self._read("SELECT * FROM accounts WHERE id = ? AND user_id = ?", (account_id, user_id), one=True)
        if not account:
            raise NotFoundOrUnauthorized("Account not found or unauthorized")
        return self._money_fields(account, 'balance')

    # =============================================================================
    # CATEGORIES
    # =============================================================================

    @staticmethod
    def _check_category_fields(name, cat_type):
        if not name or not isinstance(name, str) or not name.strip():
            raise ValidationFailure("Category name must be a non-empty string.")
        if cat_type not in CATEGORY_TYPES:
            raise ValidationFailure('Type must be "income" or "expense".')
        return name.strip()

    def create_category(self, user_id, name, cat_type):
        name = self._check_category_fields(name, cat_type)

        def operation(cursor):
            cursor.execute(
                "SELECT 1 FROM categories WHERE name = ? AND (user_id = ? OR user_id IS NULL)",
                (name, user_id)
            )
            if cursor.fetchone():
                raise ConflictFailure(f"Category '{name}' already exists.")
            cursor.execute(
                "INSERT INTO categories (user_id, name, type) VALUES (?, ?, ?)",
                (user_id, name, cat_type)
            )
            return {"id": cursor.lastrowid, "user_id": user_id, "name": name, "type": cat_type}

        return self._write(operation)

    def list_categories(self, user_id):
        """Owner's categories followed by the shared defaults, each sorted by name."""
        categories = self._read(
            "SELECT id, user_id, name, type FROM categories WHERE user_id = ? OR user_id IS NULL "
            "ORDER BY user_id IS NULL, name",
            (user_id,)
        )
        for category in categories:
            category['is_default'] = category['user_id'] is None
        return categories

    def update_category(self, user_id, category_id, name, cat_type):
        name = self._check_category_fields(name, cat_type)

        def operation(cursor):
            cursor.execute(
                "UPDATE categories SET name = ?, type = ? WHERE id = ? AND user_id = ?",
                (name, cat_type, category_id, user_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Category not found or unauthorized")
            return {"id": category_id, "user_id": user_id, "name": name, "type": cat_type}

        return self._write(operation)

    def delete_category(self, user_id, category_id):
        def operation(cursor):
            cursor.execute("DELETE FROM categories WHERE id = ? AND user_id = ?", (category_id, user_id))
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Category not found or unauthorized")
            return {"message": "Category deleted"}

        return self._write(operation)

    # =============================================================================
    # BUDGETS
    # =============================================================================

    def set_overall_budget(self, user_id, amount, start_date, end_date):
        """Create or replace the user's single overall budget."""
        amount = self._parse_amount(amount)
        start_date = self._parse_date(start_date)
        end_date = self._parse_date(end_date)
        if not start_date or not end_date:
            raise ValidationFailure("start_date and end_date are required.")
        if end_date < start_date:
            raise ValidationFailure("end_date must not be before start_date.")

        def operation(cursor):
            cursor.execute("""
                INSERT INTO budgets (user_id, amount, start_date, end_date, status)
                VALUES (?, ?, ?, ?, 'active')
                ON CONFLICT (user_id)
                DO UPDATE SET amount = excluded.amount, start_date = excluded.start_date,
                              end_date = excluded.end_date, status = 'active'
            """, (user_id, self._to_money_str(amount), start_date, end_date))
            cursor.execute("SELECT * FROM budgets WHERE user_id = ?", (user_id,))
            return self._money_fields(self._row_to_dict(cursor.fetchone()), 'amount')

        return self._write(operation)

    def get_overall_budget(self, user_id):
        budget = self._read("SELECT * FROM budgets WHERE user_id = ?", (user_id,), one=True)
        return self._money_fields(budget, 'amount') or {}

    def delete_overall_budget(self, user_id):
        def operation(cursor):
            cursor.execute("DELETE FROM budgets WHERE user_id = ?", (user_id,))
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Budget not found")
            return {"message": "Budget deleted"}

        return self._write(operation)

    def _total_spent(self, user_id, start_date, end_date):
        rows = self._read(
            "SELECT amount FROM transactions WHERE user_id = ? AND type = 'expense' AND date BETWEEN ? AND ?",
            (user_id, start_date, end_date)
        )
        return sum((self._from_money_str(row['amount']) for row in rows), Decimal('0.00'))

    def get_spending(self, user_id, start_date, end_date):
        """
        Total expense spending in [start_date, end_date] measured against the
        overall budget. Status is 'ok' below 80%, 'warning' below 100% and
        'exceeded' from 100% on.
        """
        start_date = self._parse_date(start_date)
        end_date = self._parse_date(end_date)
        if not start_date or not end_date:
            raise ValidationFailure("Missing required parameters: start_date, end_date")

        total_spent = self._total_spent(user_id, start_date, end_date)
        budget = self.get_overall_budget(user_id)
        result = {
            "start_date": start_date,
            "end_date": end_date,
            "total_spent": total_spent,
            "budget_amount": None,
            "remaining": None,
            "percentage": None,
            "status": None,
        }
        if budget:
            limit = budget['amount']
            percentage = float(total_spent / limit * 100) if limit > 0 else 0.0
            result.update({
                "budget_amount": limit,
                "remaining": limit - total_spent,
                "percentage": round(percentage, 2),
                "status": 'exceeded' if percentage >= 100 else 'warning' if percentage >= 80 else 'ok',
            })
        return result

    # =============================================================================
    # BILLS
    # =============================================================================

    def add_bill(self, user_id, bill_name, due_date, amount):
        if not bill_name:
            raise ValidationFailure("bill_name is required.")
        due_date = self._parse_date(due_date)
        if not due_date:
            raise ValidationFailure("due_date is required.")
        amount = self._parse_amount(amount)

        def operation(cursor):
            cursor.execute(
                "INSERT INTO bills (user_id, bill_name, due_date, amount, status, reminder_sent) "
                "VALUES (?, ?, ?, ?, 'unpaid', 0)",
                (user_id, bill_name, due_date, self._to_money_str(amount))
            )
            return self._fetch_bill(cursor, cursor.lastrowid, user_id)

        return self._write(operation)

    def _fetch_bill(self, cursor, bill_id, user_id):
        cursor.execute("SELECT * FROM bills WHERE id = ? AND user_id = ?", (bill_id, user_id))
        bill = self._money_fields(self._row_to_dict(cursor.fetchone()), 'amount')
        if bill:
            bill['reminder_sent'] = bool(bill['reminder_sent'])
        return bill

    def list_bills(self, user_id):
        bills = self._read("SELECT * FROM bills WHERE user_id = ? ORDER BY due_date ASC, id ASC", (user_id,))
        for bill in bills:
            self._money_fields(bill, 'amount')
            bill['reminder_sent'] = bool(bill['reminder_sent'])
        return bills

    def update_bill(self, user_id, bill_id, bill_name=None, due_date=None, amount=None, status=None):
        updates = []
        params = []
        if bill_name is not None:
            updates.append("bill_name = ?")
            params.append(bill_name)
        if due_date is not None:
            updates.append("due_date = ?")
            due_date = self._parse_date(due_date)
            if not due_date:
                raise ValidationFailure("due_date must not be empty.")
            params.append(due_date)
        if amount is not None:
            updates.append("amount = ?")
            params.append(self._to_money_str(self._parse_amount(amount)))
        if status is not None:
            if status not in BILL_STATUSES:
                raise ValidationFailure('Status must be "unpaid" or "paid".')
            updates.append("status = ?")
            params.append(status)
        if not updates:
            raise ValidationFailure("No updates provided")

        def operation(cursor):
            cursor.execute(
                f"UPDATE bills SET {', '.join(updates)} WHERE id = ? AND user_id = ?",
                params + [bill_id, user_id]
            )
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Bill not found or unauthorized")
            return self._fetch_bill(cursor, bill_id, user_id)

        return self._write(operation)

    def delete_bill(self, user_id, bill_id):
        def operation(cursor):
            cursor.execute("DELETE FROM bills WHERE id = ? AND user_id = ?", (bill_id, user_id))
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Bill not found or unauthorized")
            return {"message": "Bill deleted"}

        return self._write(operation)

    # =============================================================================
    # FINANCIAL GOALS
    # =============================================================================

    def _decorate_goal(self, goal):
        self._money_fields(goal, 'target_amount', 'current_savings')
        target = goal['target_amount']
        current = goal['current_savings']
        goal['percentage'] = round(float(current / target * 100), 2) if target > 0 else 0.0
        goal['remaining'] = max(target - current, Decimal('0.00'))
        return goal

    def add_goal(self, user_id, goal_name, target_amount, current_savings=0, target_date=None):
        if not goal_name:
            raise ValidationFailure("goal_name is required.")
        target = self._parse_amount(target_amount)
        current = self._parse_amount(current_savings or 0, allow_zero=True)
        target_date = self._parse_date(target_date)

        def operation(cursor):
            cursor.execute(
                "INSERT INTO financial_goals (user_id, goal_name, target_amount, current_savings, target_date, completed_at) "
                "VALUES (?, ?, ?, ?, ?, CASE WHEN ? THEN CURRENT_TIMESTAMP END)",
                (user_id, goal_name, self._to_money_str(target), self._to_money_str(current),
                 target_date, current >= target)
            )
            return self._fetch_goal(cursor, cursor.lastrowid, user_id)

        return self._write(operation)

    def _fetch_goal(self, cursor, goal_id, user_id):
        cursor.execute("SELECT * FROM financial_goals WHERE id = ? AND user_id = ?", (goal_id, user_id))
        goal = self._row_to_dict(cursor.fetchone())
        if not goal:
            raise NotFoundOrUnauthorized("Goal not found or unauthorized")
        return self._decorate_goal(goal)

    def list_goals(self, user_id):
        goals = self._read(
            "SELECT * FROM financial_goals WHERE user_id = ? ORDER BY target_date IS NULL, target_date ASC, id ASC",
            (user_id,)
        )
        return [self._decorate_goal(goal) for goal in goals]

    def update_goal(self, user_id, goal_id, goal_name=None, target_amount=None, current_savings=None, target_date=None):
        updates = []
        params = []
        if goal_name is not None:
            updates.append("goal_name = ?")
            params.append(goal_name)
        if target_amount is not None:
            updates.append("target_amount = ?")
            params.append(self._to_money_str(self._parse_amount(target_amount)))
        if current_savings is not None:
            updates.append("current_savings = ?")
            params.append(self._to_money_str(self._parse_amount(current_savings, allow_zero=True)))
        if target_date is not None:
            updates.append("target_date = ?")
            params.append(self._parse_date(target_date))
        if not updates:
            raise ValidationFailure("No updates provided")

        def operation(cursor):
            cursor.execute(
                f"UPDATE financial_goals SET {', '.join(updates)} WHERE id = ? AND user_id = ?",
                params + [goal_id, user_id]
            )
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Goal not found or unauthorized")
            self._refresh_goal_completion(cursor, goal_id)
            return self._fetch_goal(cursor, goal_id, user_id)

        return self._write(operation)

    @staticmethod
    def _refresh_goal_completion(cursor, goal_id):
        cursor.execute("""
            UPDATE financial_goals
            SET completed_at = CASE
                WHEN CAST(current_savings AS REAL) >= CAST(target_amount AS REAL)
                THEN COALESCE(completed_at, CURRENT_TIMESTAMP)
            END
            WHERE id = ?
        """, (goal_id,))

    def contribute_to_goal(self, user_id, goal_id, amount):
        """Add (positive) or withdraw (negative) savings; the result may not go below zero."""
        amount = self._parse_amount(amount, allow_negative=True)

        def operation(cursor):
            cursor.execute(
                "SELECT current_savings FROM financial_goals WHERE id = ? AND user_id = ?",
                (goal_id, user_id)
            )
            row = cursor.fetchone()
            if not row:
                raise NotFoundOrUnauthorized("Goal not found or unauthorized")
            new_amount = self._from_money_str(row['current_savings']) + amount
            if new_amount < 0:
                raise ValidationFailure("Cannot withdraw more than current savings")
            cursor.execute(
                "UPDATE financial_goals SET current_savings = ? WHERE id = ?",
                (self._to_money_str(new_amount), goal_id)
            )
            self._refresh_goal_completion(cursor, goal_id)
            return self._fetch_goal(cursor, goal_id, user_id)

        return self._write(operation)

    def delete_goal(self, user_id, goal_id):
        def operation(cursor):
            cursor.execute("DELETE FROM financial_goals WHERE id = ? AND user_id = ?", (goal_id, user_id))
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Goal not found or unauthorized")
            return {"message": "Goal deleted"}

        return self._write(operation)

    # =============================================================================
    # FUTURE PLANS
    # =============================================================================

    @staticmethod
    def months_between(start, end):
        """Whole months from start to end, counting a partial final month as none."""
        months = (end.year - start.year) * 12 + (end.month - start.month)
        if end.day < start.day:
            months -= 1
        return months

    def plan_monthly_savings(self, target_amount, current_savings, target_date, today=None):
        """
        Monthly amount needed to close the gap by target_date.

        Returns:
            dict: {monthly_savings, months, feasible, message}
        """
        today = today or datetime.date.today()
        target_day = datetime.date.fromisoformat(target_date)
        remaining = max(target_amount - current_savings, Decimal('0.00'))
        months = max(self.months_between(today, target_day), 1)
        monthly = (remaining / months).quantize(CENT, rounding=ROUND_HALF_UP)
        feasible = target_day > today

        if remaining == 0:
            message = "Goal already reached."
        elif not feasible:
            message = f"Target date has passed; saving {monthly} next month would close the gap."
        else:
            message = f"Save {monthly} per month for {months} month(s) to reach your goal."
        return {"monthly_savings": monthly, "months": months, "feasible": feasible, "message": message}

    def add_future_plan(self, user_id, goal_name, target_amount, current_savings, target_date, today=None):
        if not goal_name:
            raise ValidationFailure("goal_name is required.")
        target = self._parse_amount(target_amount)
        current = self._parse_amount(current_savings or 0, allow_zero=True)
        target_date = self._parse_date(target_date)
        if not target_date:
            raise ValidationFailure("target_date is required.")
        plan_info = self.plan_monthly_savings(target, current, target_date, today=today)

        def operation(cursor):
            cursor.execute(
                "INSERT INTO future_plans (user_id, goal_name, target_amount, current_savings, target_date, monthly_savings) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, goal_name, self._to_money_str(target), self._to_money_str(current),
                 target_date, self._to_money_str(plan_info['monthly_savings']))
            )
            cursor.execute("SELECT * FROM future_plans WHERE id = ?", (cursor.lastrowid,))
            return self._money_fields(self._row_to_dict(cursor.fetchone()),
                                      'target_amount', 'current_savings', 'monthly_savings')

        plan = self._write(operation)
        return {"message": plan_info['message'], "plan": plan, "feasible": plan_info['feasible']}

    def list_future_plans(self, user_id):
        plans = self._read("SELECT * FROM future_plans WHERE user_id = ? ORDER BY target_date ASC, id ASC", (user_id,))
        return [self._money_fields(plan, 'target_amount', 'current_savings', 'monthly_savings') for plan in plans]

    def delete_future_plan(self, user_id, plan_id):
        def operation(cursor):
            cursor.execute("DELETE FROM future_plans WHERE id = ? AND user_id = ?", (plan_id, user_id))
            if cursor.rowcount == 0:
                raise NotFoundOrUnauthorized("Plan not found or unauthorized")
            return {"message": "Plan deleted successfully"}

        return self._write(operation)

    # =============================================================================
    # REPORTS
    # =============================================================================

    @staticmethod
    def period_range(period, today=None):
        """(start, end) ISO dates of the week (Sunday-Saturday), month or year containing today."""
        today = today or datetime.date.today()
        if period == 'weekly':
            start = today - datetime.timedelta(days=(today.weekday() + 1) % 7)
            end = start + datetime.timedelta(days=6)
        elif period == 'yearly':
            start = today.replace(month=1, day=1)
            end = today.replace(month=12, day=31)
        else:
            start = today.replace(day=1)
            end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
        return start.isoformat(), end.isoformat()

    def get_financial_report(self, user_id, start_date=None, end_date=None, period=None, today=None):
        """
        Income and expenses grouped by category for a date range.

        When neither date is supplied, period ('weekly', 'monthly' or
        'yearly') picks the range around today; supplying only one of the
        two dates is an error.
        """
        start_date = self._parse_date(start_date)
        end_date = self._parse_date(end_date)
        if not start_date and not end_date:
            period = (period or 'monthly').lower()
            if period not in REPORT_PERIODS:
                raise ValidationFailure("period must be one of: weekly, monthly, yearly")
            start_date, end_date = self.period_range(period, today)
        elif not start_date or not end_date:
            raise ValidationFailure("Start and end dates are required")

        rows = self._read(
            "SELECT type, category, amount FROM transactions WHERE user_id = ? AND date BETWEEN ? AND ?",
            (user_id, start_date, end_date)
        )
        groups = defaultdict(lambda: {"total_amount": Decimal('0.00'), "transaction_count": 0})
        for row in rows:
            group = groups[(row['type'], row['category'])]
            group['total_amount'] += self._from_money_str(row['amount'])
            group['transaction_count'] += 1

        summary = {'income': [], 'expense': []}
        for (txn_type, category), totals in sorted(groups.items()):
            summary[txn_type].append({"category": category, **totals})

        total_income = sum((g['total_amount'] for g in summary['income']), Decimal('0.00'))
        total_expenses = sum((g['total_amount'] for g in summary['expense']), Decimal('0.00'))
        budget = self.get_overall_budget(user_id)

        return {
            "period": {"start_date": start_date, "end_date": end_date},
            "income": summary['income'],
            "expenses": summary['expense'],
            "total_income": total_income,
            "total_expenses": total_expenses,
            "net": total_income - total_expenses,
            "budget": budget or {"amount": Decimal('0.00'), "start_date": None, "end_date": None},
            "current_spending": total_expenses,
        }
