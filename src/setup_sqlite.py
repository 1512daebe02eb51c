"""
BudgetBuddy - SQLite Database Setup & Initialization

Creates the BudgetBuddy schema with foreign keys and indexes.

Usage:
    python setup_sqlite.py           # create missing tables
    python setup_sqlite.py --reset   # delete the database and start fresh

Database Schema Overview:
------------------------
- users: Registered people and their bcrypt password hashes
- accounts: Owned accounts whose balance mirrors their transactions
- transactions: Income/expense rows, optionally linked to one account
- categories: Per-user labels plus shared defaults (user_id NULL)
- budgets: One overall spending budget per user
- bills: Upcoming bills with paid/unpaid status
- financial_goals: Savings goals with current progress
- future_plans: Goals with a computed monthly savings requirement

Monetary values are stored as TEXT with two decimals so they round-trip
exactly through Decimal.
"""

import logging
import sqlite3
import sys
from pathlib import Path

import config

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ('Salary', 'income'),
    ('Freelance', 'income'),
    ('Investments', 'income'),
    ('Other Income', 'income'),
    ('Housing', 'expense'),
    ('Utilities', 'expense'),
    ('Groceries', 'expense'),
    ('Dining', 'expense'),
    ('Transportation', 'expense'),
    ('Entertainment', 'expense'),
    ('Healthcare', 'expense'),
    ('Shopping', 'expense'),
    ('Uncategorized', 'expense'),
]

SCHEMA = [
    ("users", """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """, []),
    ("accounts", """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            account_type TEXT NOT NULL,
            balance TEXT NOT NULL DEFAULT '0.00',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """, ["CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);"]),
    ("transactions", """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            account_id INTEGER DEFAULT NULL,
            amount TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'Uncategorized',
            type TEXT CHECK(type IN ('income', 'expense')) NOT NULL,
            date TEXT NOT NULL,
            note TEXT DEFAULT '',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE SET NULL
        )
    """, [
        "CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date DESC);",
        "CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id);",
    ]),
    ("categories", """
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER DEFAULT NULL,
            name TEXT NOT NULL,
            type TEXT CHECK(type IN ('income', 'expense')) NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            UNIQUE(user_id, name)
        )
    """, ["CREATE INDEX IF NOT EXISTS idx_categories_user_id ON categories(user_id);"]),
    ("budgets", """
        CREATE TABLE IF NOT EXISTS budgets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE,
            amount TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """, []),
    ("bills", """
        CREATE TABLE IF NOT EXISTS bills (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            bill_name TEXT NOT NULL,
            due_date TEXT NOT NULL,
            amount TEXT NOT NULL,
            status TEXT CHECK(status IN ('unpaid', 'paid')) NOT NULL DEFAULT 'unpaid',
            reminder_sent INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """, ["CREATE INDEX IF NOT EXISTS idx_bills_user_due ON bills(user_id, due_date);"]),
    ("financial_goals", """
        CREATE TABLE IF NOT EXISTS financial_goals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            goal_name TEXT NOT NULL,
            target_amount TEXT NOT NULL,
            current_savings TEXT NOT NULL DEFAULT '0.00',
            target_date TEXT DEFAULT NULL,
            completed_at TEXT DEFAULT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """, ["CREATE INDEX IF NOT EXISTS idx_goals_user_id ON financial_goals(user_id);"]),
    ("future_plans", """
        CREATE TABLE IF NOT EXISTS future_plans (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            goal_name TEXT NOT NULL,
            target_amount TEXT NOT NULL,
            current_savings TEXT NOT NULL DEFAULT '0.00',
            target_date TEXT NOT NULL,
            monthly_savings TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """, ["CREATE INDEX IF NOT EXISTS idx_future_plans_user_id ON future_plans(user_id);"]),
]


def get_db_path():
    """Return the path to the SQLite database file"""
    return config.DATABASE_PATH


def create_database(db_path=None):
    """
    Create the BudgetBuddy schema if it does not exist yet.

    Existing tables and data are left alone; use reset_database() to
    start fresh.

    Returns:
        bool: True if the schema is in place, False on a database error
    """
    db_path = Path(db_path or get_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")

    logger.info("Creating BudgetBuddy database at %s", db_path)
    try:
        for table, ddl, indexes in SCHEMA:
            cursor.execute(ddl)
            for index in indexes:
                cursor.execute(index)
            logger.debug("Table '%s' ready", table)

        # Shared defaults have no owner; the NULL user_id makes them visible to everyone.
        for name, cat_type in DEFAULT_CATEGORIES:
            cursor.execute("SELECT 1 FROM categories WHERE user_id IS NULL AND name = ?", (name,))
            if not cursor.fetchone():
                cursor.execute(
                    "INSERT INTO categories (user_id, name, type) VALUES (NULL, ?, ?)",
                    (name, cat_type)
                )

        conn.commit()
        return True

    except sqlite3.Error as err:
        logger.error("Error creating database: %s", err)
        conn.rollback()
        return False

    finally:
        conn.close()


def reset_database(db_path=None):
    """
    Delete the existing database and create a fresh one.
    All data will be permanently lost!
    """
    db_path = Path(db_path or get_db_path())

    if db_path.exists():
        logger.warning("Deleting existing database at %s", db_path)
        db_path.unlink()

    return create_database(db_path)


def verify_schema(db_path=None):
    """Check that every expected table exists."""
    db_path = Path(db_path or get_db_path())

    if not db_path.exists():
        logger.error("Database does not exist at %s", db_path)
        return False

    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.cursor()
        for table, _, _ in SCHEMA:
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
            if not cursor.fetchone():
                logger.error("Table '%s' MISSING", table)
                return False
        return True
    finally:
        conn.close()


if __name__ == "__main__":
    config.configure_logging()
    setup = reset_database if "--reset" in sys.argv[1:] else create_database
    if setup() and verify_schema():
        print(f"[OK] Database ready at {get_db_path()}")
    else:
        print("[ERROR] Database setup failed.")
