"""
BudgetBuddy - Ledger Consistency Manager

Keeps every account's stored balance equal to the signed sum of the
transactions linked to it:

    balance == sum(+amount for income, -amount for expense)

Transactions may be unlinked (account_id NULL); those are balance-neutral.

Every mutation runs inside a single BEGIN IMMEDIATE transaction. The write
lock is taken before the prior row is read, so the "read old, write new,
adjust balance" sequence cannot interleave with another writer, and a
failure at any step rolls back the row change together with every balance
adjustment already issued. Balances are only ever changed through an
additive UPDATE (balance = balance + delta), never by writing back a value
read earlier.
"""

import datetime
import logging
import sqlite3
from decimal import Decimal

from errors import BudgetBuddyError, NotFoundOrUnauthorized, PersistenceFailure, ValidationFailure

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ('income', 'expense')
DEFAULT_CATEGORY = 'Uncategorized'


def signed_amount(txn_type, amount):
    """+amount for income, -amount for expense."""
    return amount if txn_type == 'income' else -amount


class LedgerManager:
    """
    Transaction CRUD coupled to account balance maintenance.

    The manager is stateless; it borrows connections and value helpers
    from the FinanceEngine it is attached to.

    Example:
        ledger = engine.ledger
        txn = ledger.create_transaction(1, "100.00", "Salary", "income", "2025-01-31", "", 5)
        ledger.update_transaction(txn['id'], 1, "150.00", "Salary", "income", "2025-01-31", "", 5)
        ledger.delete_transaction(txn['id'], 1)
    """

    def __init__(self, engine):
        self.engine = engine

    # =============================================================================
    # VALIDATION
    # =============================================================================

    @staticmethod
    def _parse_type(txn_type):
        if txn_type not in TRANSACTION_TYPES:
            raise ValidationFailure('Type must be "income" or "expense".')
        return txn_type

    @staticmethod
    def _parse_account_id(account_id):
        if account_id is None or account_id == '':
            return None
        try:
            return int(account_id)
        except (TypeError, ValueError):
            raise ValidationFailure("Account ID must be an integer.")

    def _clean_fields(self, amount, category, txn_type, date, note, account_id):
        return {
            'amount': self.engine._parse_amount(amount),
            'category': (category or '').strip() or DEFAULT_CATEGORY,
            'type': self._parse_type(txn_type),
            'date': self.engine._parse_date(date) or datetime.date.today().isoformat(),
            'note': note or '',
            'account_id': self._parse_account_id(account_id),
        }

    # =============================================================================
    # BALANCE ADJUSTMENT
    # =============================================================================

    def _apply_delta(self, cursor, owner, account_id, delta):
        """
        Add delta to one account's balance in a single statement.

        The account must belong to owner; otherwise nothing is changed and
        NotFoundOrUnauthorized is raised so the caller rolls back.
        """
        cursor.execute(
            "UPDATE accounts SET balance = printf('%.2f', balance + ?), updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ? AND user_id = ?",
            (float(delta), account_id, owner)
        )
        if cursor.rowcount == 0:
            raise NotFoundOrUnauthorized("Account not found or unauthorized")
        logger.info("Account %s adjusted by %s", account_id, delta)

    def _fetch_transaction(self, cursor, transaction_id, owner):
        cursor.execute(
            "SELECT id, user_id, account_id, amount, category, type, date, note "
            "FROM transactions WHERE id = ? AND user_id = ?",
            (transaction_id, owner)
        )
        row = self.engine._row_to_dict(cursor.fetchone())
        if row:
            row['amount'] = self.engine._from_money_str(row['amount'])
        return row

    def _run(self, operation, cursor=None):
        """
        Execute operation(cursor) as one all-or-nothing unit of work.

        When the caller passes its own cursor the work joins the caller's
        transaction and committing is left to the caller.
        """
        if cursor is not None:
            return operation(cursor)

        conn, cursor = self.engine._get_db_connection()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            result = operation(cursor)
            conn.commit()
            return result
        except BudgetBuddyError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception("Ledger operation failed")
            raise PersistenceFailure(f"A database error occurred: {e}") from e
        finally:
            cursor.close()
            conn.close()

    # =============================================================================
    # MUTATIONS
    # =============================================================================

    def create_transaction(self, owner, amount, category, txn_type, date, note, account_id, cursor=None):
        """
        Record a transaction and credit/debit its account.

        Args:
            owner (int): Authenticated user id
            amount: Positive amount (str, int, float or Decimal)
            category (str): Label, defaults to 'Uncategorized'
            txn_type (str): 'income' or 'expense'
            date (str): YYYY-MM-DD, defaults to today
            note (str): Free text
            account_id (int): Required; the account must belong to owner
            cursor: Optional cursor of an enclosing transaction

        Returns:
            dict: The stored transaction including its generated id

        Raises:
            ValidationFailure: bad amount/type/date or missing account_id
            NotFoundOrUnauthorized: account_id is not one of owner's accounts
            PersistenceFailure: the store failed; nothing was written
        """
        fields = self._clean_fields(amount, category, txn_type, date, note, account_id)
        if fields['account_id'] is None:
            raise ValidationFailure("Account ID is required")

        def operation(cursor):
            cursor.execute(
                "INSERT INTO transactions (user_id, account_id, amount, category, type, date, note) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (owner, fields['account_id'], self.engine._to_money_str(fields['amount']),
                 fields['category'], fields['type'], fields['date'], fields['note'])
            )
            transaction_id = cursor.lastrowid
            self._apply_delta(cursor, owner, fields['account_id'], signed_amount(fields['type'], fields['amount']))
            return self._fetch_transaction(cursor, transaction_id, owner)

        return self._run(operation, cursor)

    def update_transaction(self, transaction_id, owner, amount, category, txn_type, date, note, account_id):
        """
        Replace every field of a transaction and move its balance effect.

        Four account cases, comparing the stored account with the new one:
          1. both set and different: old account loses the old effect,
             new account gains the new effect
          2. same account: only the net difference is applied
          3. previously unlinked, now linked: new account gains the new effect
          4. previously linked, now unlinked: old account loses the old effect

        Raises:
            NotFoundOrUnauthorized: no transaction with this id for owner, or
                the new account_id is not owned by owner
        """
        fields = self._clean_fields(amount, category, txn_type, date, note, account_id)

        def operation(cursor):
            cursor.execute(
                "SELECT amount, account_id, type FROM transactions WHERE id = ? AND user_id = ?",
                (transaction_id, owner)
            )
            original = self.engine._row_to_dict(cursor.fetchone())
            if not original:
                raise NotFoundOrUnauthorized("Transaction not found or unauthorized")

            old_delta = signed_amount(original['type'], self.engine._from_money_str(original['amount']))
            new_delta = signed_amount(fields['type'], fields['amount'])
            old_account_id = original['account_id']
            new_account_id = fields['account_id']

            cursor.execute(
                "UPDATE transactions SET amount = ?, category = ?, type = ?, date = ?, note = ?, account_id = ? "
                "WHERE id = ? AND user_id = ?",
                (self.engine._to_money_str(fields['amount']), fields['category'], fields['type'],
                 fields['date'], fields['note'], new_account_id, transaction_id, owner)
            )

            if old_account_id is not None and old_account_id != new_account_id:
                self._apply_delta(cursor, owner, old_account_id, -old_delta)
                if new_account_id is not None:
                    self._apply_delta(cursor, owner, new_account_id, new_delta)
            elif old_account_id is not None:
                if new_delta != old_delta:
                    self._apply_delta(cursor, owner, new_account_id, new_delta - old_delta)
            elif new_account_id is not None:
                self._apply_delta(cursor, owner, new_account_id, new_delta)

            return self._fetch_transaction(cursor, transaction_id, owner)

        return self._run(operation)

    def delete_transaction(self, transaction_id, owner):
        """Delete a transaction and reverse its effect on the linked account."""
        def operation(cursor):
            cursor.execute(
                "SELECT amount, account_id, type FROM transactions WHERE id = ? AND user_id = ?",
                (transaction_id, owner)
            )
            original = self.engine._row_to_dict(cursor.fetchone())
            if not original:
                raise NotFoundOrUnauthorized("Transaction not found or unauthorized")

            reversal = -signed_amount(original['type'], self.engine._from_money_str(original['amount']))
            cursor.execute("DELETE FROM transactions WHERE id = ? AND user_id = ?", (transaction_id, owner))
            if original['account_id'] is not None:
                self._apply_delta(cursor, owner, original['account_id'], reversal)
            return {"message": "Transaction deleted", "id": transaction_id}

        return self._run(operation)

    # =============================================================================
    # READS
    # =============================================================================

    def get_transaction(self, transaction_id, owner):
        conn, cursor = self.engine._get_db_connection()
        try:
            transaction = self._fetch_transaction(cursor, transaction_id, owner)
            if not transaction:
                raise NotFoundOrUnauthorized("Transaction not found or unauthorized")
            return transaction
        finally:
            cursor.close()
            conn.close()

    def list_transactions(self, owner, account_id=None, start_date=None, end_date=None, limit=None):
        """
        List an owner's transactions, newest first.

        Ordering is fully determined (date, then id), so two calls with no
        mutation in between return identical results.
        """
        query = ("SELECT id, user_id, account_id, amount, category, type, date, note "
                 "FROM transactions WHERE user_id = ?")
        params = [owner]
        if account_id is not None:
            query += " AND account_id = ?"
            params.append(self._parse_account_id(account_id))
        if start_date:
            query += " AND date >= ?"
            params.append(self.engine._parse_date(start_date))
        if end_date:
            query += " AND date <= ?"
            params.append(self.engine._parse_date(end_date))
        query += " ORDER BY date DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))

        conn, cursor = self.engine._get_db_connection()
        try:
            cursor.execute(query, params)
            transactions = self.engine._rows_to_dicts(cursor.fetchall())
            for txn in transactions:
                txn['amount'] = self.engine._from_money_str(txn['amount'])
            return transactions
        finally:
            cursor.close()
            conn.close()

    # =============================================================================
    # RECONCILIATION
    # =============================================================================

    def reconcile_account_balances(self, owner):
        """
        Recalculate every account balance of owner from its transactions.

        Returns:
            dict: {"updated": [{account_id, stored, expected}], "count": n}
                  listing only the accounts that had drifted (now repaired)
        """
        def operation(cursor):
            cursor.execute("SELECT id, balance FROM accounts WHERE user_id = ?", (owner,))
            accounts = self.engine._rows_to_dicts(cursor.fetchall())

            updated = []
            for account in accounts:
                cursor.execute(
                    "SELECT amount, type FROM transactions WHERE user_id = ? AND account_id = ?",
                    (owner, account['id'])
                )
                expected = sum(
                    (signed_amount(row['type'], self.engine._from_money_str(row['amount']))
                     for row in cursor.fetchall()),
                    Decimal('0.00')
                )
                stored = self.engine._from_money_str(account['balance'])
                if stored != expected:
                    cursor.execute(
                        "UPDATE accounts SET balance = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                        (self.engine._to_money_str(expected), account['id'])
                    )
                    logger.warning("Account %s drifted: stored %s, expected %s", account['id'], stored, expected)
                    updated.append({"account_id": account['id'], "stored": stored, "expected": expected})
            return {"updated": updated, "count": len(updated)}

        return self._run(operation)
