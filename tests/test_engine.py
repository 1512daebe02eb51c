"""Tests for users, accounts and the planning features of FinanceEngine."""

import datetime
from decimal import Decimal

import pytest

from conftest import PASSWORD
from errors import (
    AuthenticationFailure,
    ConflictFailure,
    NotFoundOrUnauthorized,
    ValidationFailure,
)
from setup_sqlite import DEFAULT_CATEGORIES, reset_database, verify_schema

TODAY = datetime.date(2025, 1, 15)


def test_schema_is_complete(db_path):
    assert verify_schema(db_path)


def test_reset_wipes_data_and_reseeds(engine, user, db_path):
    engine.create_account(user['id'], 'checking', 50)

    assert reset_database(db_path)

    assert verify_schema(db_path)
    assert engine.get_user(user['id']) is None
    assert len(engine.list_categories(user['id'])) == len(DEFAULT_CATEGORIES)


class TestUsers:

    def test_register_and_login(self, engine):
        user = engine.register_user("Ada Lovelace", "Ada@Example.com", PASSWORD)

        assert user['email'] == 'ada@example.com'
        assert engine.login_user('ada@example.com', PASSWORD) == user

    def test_duplicate_email(self, engine, user):
        with pytest.raises(ConflictFailure):
            engine.register_user("Someone Else", user['email'], PASSWORD)

    def test_short_password(self, engine):
        with pytest.raises(ValidationFailure):
            engine.register_user("Short", "short@example.com", "1234567")

    def test_unknown_email(self, engine):
        with pytest.raises(NotFoundOrUnauthorized):
            engine.login_user("nobody@example.com", PASSWORD)

    def test_wrong_password(self, engine, user):
        with pytest.raises(AuthenticationFailure):
            engine.login_user(user['email'], "not-the-password")

    def test_password_is_hashed(self, engine, user):
        conn, cursor = engine._get_db_connection()
        cursor.execute("SELECT password_hash FROM users WHERE id = ?", (user['id'],))
        stored = cursor.fetchone()['password_hash']
        conn.close()

        assert stored != PASSWORD
        assert stored.startswith('$2')


class TestAccounts:

    def test_opening_balance_is_a_transaction(self, engine, ledger, user):
        account = engine.create_account(user['id'], 'checking', '250.00')

        assert account['balance'] == Decimal('250.00')
        [opening] = ledger.list_transactions(user['id'], account_id=account['id'])
        assert opening['category'] == 'Opening Balance'
        assert opening['type'] == 'income'
        assert opening['amount'] == Decimal('250.00')

    def test_negative_opening_balance(self, engine, ledger, user):
        account = engine.create_account(user['id'], 'credit', '-80')

        assert account['balance'] == Decimal('-80.00')
        assert ledger.list_transactions(user['id'])[0]['type'] == 'expense'

    def test_zero_opening_balance_adds_nothing(self, engine, ledger, user, account):
        assert account['balance'] == Decimal('0.00')
        assert ledger.list_transactions(user['id']) == []

    def test_listing_is_newest_first_and_scoped(self, engine, user, other_user):
        first = engine.create_account(user['id'], 'checking')
        second = engine.create_account(user['id'], 'savings')
        engine.create_account(other_user['id'], 'checking')

        assert [a['id'] for a in engine.list_accounts(user['id'])] == [second['id'], first['id']]

    def test_foreign_account_is_hidden(self, engine, other_user, account):
        with pytest.raises(NotFoundOrUnauthorized):
            engine.get_account(other_user['id'], account['id'])

    def test_account_type_required(self, engine, user):
        with pytest.raises(ValidationFailure):
            engine.create_account(user['id'], '  ')


class TestCategories:

    def test_defaults_are_shared(self, engine, user):
        categories = engine.list_categories(user['id'])

        assert len(categories) == len(DEFAULT_CATEGORIES)
        assert all(c['is_default'] for c in categories)

    def test_own_categories_come_first(self, engine, user, other_user):
        engine.create_category(user['id'], 'Pets', 'expense')

        mine = engine.list_categories(user['id'])
        assert mine[0]['name'] == 'Pets'
        assert not mine[0]['is_default']
        assert 'Pets' not in [c['name'] for c in engine.list_categories(other_user['id'])]

    def test_duplicate_name(self, engine, user):
        engine.create_category(user['id'], 'Pets', 'expense')

        with pytest.raises(ConflictFailure):
            engine.create_category(user['id'], 'Pets', 'expense')
        with pytest.raises(ConflictFailure):
            engine.create_category(user['id'], 'Groceries', 'expense')

    def test_update_and_delete(self, engine, user):
        category = engine.create_category(user['id'], 'Pets', 'expense')

        assert engine.update_category(user['id'], category['id'], 'Pet Care', 'expense')['name'] == 'Pet Care'
        engine.delete_category(user['id'], category['id'])
        assert len(engine.list_categories(user['id'])) == len(DEFAULT_CATEGORIES)

    def test_shared_defaults_are_read_only(self, engine, user):
        shared = engine.list_categories(user['id'])[0]

        with pytest.raises(NotFoundOrUnauthorized):
            engine.update_category(user['id'], shared['id'], 'Mine Now', 'expense')
        with pytest.raises(NotFoundOrUnauthorized):
            engine.delete_category(user['id'], shared['id'])

    def test_bad_type(self, engine, user):
        with pytest.raises(ValidationFailure):
            engine.create_category(user['id'], 'Pets', 'transfer')


class TestBudgets:

    def test_no_budget(self, engine, user):
        assert engine.get_overall_budget(user['id']) == {}

    def test_set_is_an_upsert(self, engine, user):
        engine.set_overall_budget(user['id'], 500, '2025-01-01', '2025-01-31')
        budget = engine.set_overall_budget(user['id'], 750, '2025-02-01', '2025-02-28')

        assert budget['amount'] == Decimal('750.00')
        assert budget['status'] == 'active'
        assert engine.get_overall_budget(user['id'])['start_date'] == '2025-02-01'

    def test_delete(self, engine, user):
        engine.set_overall_budget(user['id'], 500, '2025-01-01', '2025-01-31')
        engine.delete_overall_budget(user['id'])

        assert engine.get_overall_budget(user['id']) == {}
        with pytest.raises(NotFoundOrUnauthorized):
            engine.delete_overall_budget(user['id'])

    def test_end_before_start(self, engine, user):
        with pytest.raises(ValidationFailure):
            engine.set_overall_budget(user['id'], 500, '2025-02-01', '2025-01-01')

    @pytest.mark.parametrize("spent, status", [
        ('79.99', 'ok'),
        ('80.00', 'warning'),
        ('99.99', 'warning'),
        ('100.00', 'exceeded'),
        ('130.00', 'exceeded'),
    ])
    def test_spending_status(self, engine, ledger, user, account, spent, status):
        engine.set_overall_budget(user['id'], 100, '2025-01-01', '2025-01-31')
        ledger.create_transaction(user['id'], spent, 'Dining', 'expense', '2025-01-20', '', account['id'])

        spending = engine.get_spending(user['id'], '2025-01-01', '2025-01-31')

        assert spending['total_spent'] == Decimal(spent)
        assert spending['remaining'] == Decimal('100.00') - Decimal(spent)
        assert spending['status'] == status

    def test_spending_ignores_income_and_other_dates(self, engine, ledger, user, account):
        ledger.create_transaction(user['id'], 500, 'Salary', 'income', '2025-01-05', '', account['id'])
        ledger.create_transaction(user['id'], 20, 'Dining', 'expense', '2025-01-31', '', account['id'])
        ledger.create_transaction(user['id'], 30, 'Dining', 'expense', '2025-02-01', '', account['id'])

        spending = engine.get_spending(user['id'], '2025-01-01', '2025-01-31')

        assert spending['total_spent'] == Decimal('20.00')
        assert spending['status'] is None


class TestBills:

    def test_bill_lifecycle(self, engine, user):
        later = engine.add_bill(user['id'], 'Rent', '2025-02-01', 1200)
        sooner = engine.add_bill(user['id'], 'Internet', '2025-01-20', '49.99')

        assert later['status'] == 'unpaid'
        assert later['reminder_sent'] is False
        assert [b['bill_name'] for b in engine.list_bills(user['id'])] == ['Internet', 'Rent']

        paid = engine.update_bill(user['id'], sooner['id'], status='paid')
        assert paid['status'] == 'paid'
        assert paid['amount'] == Decimal('49.99')

        engine.delete_bill(user['id'], later['id'])
        assert len(engine.list_bills(user['id'])) == 1

    def test_invalid_status(self, engine, user):
        bill = engine.add_bill(user['id'], 'Rent', '2025-02-01', 1200)

        with pytest.raises(ValidationFailure):
            engine.update_bill(user['id'], bill['id'], status='overdue')

    def test_due_date_cannot_be_cleared(self, engine, user):
        bill = engine.add_bill(user['id'], 'Rent', '2025-02-01', 1200)

        with pytest.raises(ValidationFailure, match="due_date"):
            engine.update_bill(user['id'], bill['id'], due_date='')
        assert engine.list_bills(user['id'])[0]['due_date'] == '2025-02-01'

    def test_foreign_bill(self, engine, user, other_user):
        bill = engine.add_bill(user['id'], 'Rent', '2025-02-01', 1200)

        with pytest.raises(NotFoundOrUnauthorized):
            engine.update_bill(other_user['id'], bill['id'], amount=1)
        with pytest.raises(NotFoundOrUnauthorized):
            engine.delete_bill(other_user['id'], bill['id'])


class TestGoals:

    def test_progress_fields(self, engine, user):
        goal = engine.add_goal(user['id'], 'Emergency fund', 1000, 250, '2025-12-31')

        assert goal['percentage'] == 25.0
        assert goal['remaining'] == Decimal('750.00')
        assert goal['completed_at'] is None

    def test_contribute_and_withdraw(self, engine, user):
        goal = engine.add_goal(user['id'], 'Laptop', 1000, 0)

        goal = engine.contribute_to_goal(user['id'], goal['id'], 1000)
        assert goal['current_savings'] == Decimal('1000.00')
        assert goal['completed_at'] is not None

        goal = engine.contribute_to_goal(user['id'], goal['id'], -400)
        assert goal['current_savings'] == Decimal('600.00')
        assert goal['completed_at'] is None

    def test_cannot_withdraw_below_zero(self, engine, user):
        goal = engine.add_goal(user['id'], 'Laptop', 1000, 100)

        with pytest.raises(ValidationFailure):
            engine.contribute_to_goal(user['id'], goal['id'], -100.01)
        assert engine.list_goals(user['id'])[0]['current_savings'] == Decimal('100.00')

    def test_update_and_order(self, engine, user):
        late = engine.add_goal(user['id'], 'House', 50000, 0, '2030-01-01')
        engine.add_goal(user['id'], 'Trip', 2000, 0, '2025-06-01')

        engine.update_goal(user['id'], late['id'], goal_name='Bigger house', target_amount=80000)

        goals = engine.list_goals(user['id'])
        assert [g['goal_name'] for g in goals] == ['Trip', 'Bigger house']
        assert goals[1]['target_amount'] == Decimal('80000.00')

    def test_empty_update(self, engine, user):
        goal = engine.add_goal(user['id'], 'Trip', 2000)

        with pytest.raises(ValidationFailure):
            engine.update_goal(user['id'], goal['id'])

    def test_delete_foreign_goal(self, engine, user, other_user):
        goal = engine.add_goal(user['id'], 'Trip', 2000)

        with pytest.raises(NotFoundOrUnauthorized):
            engine.delete_goal(other_user['id'], goal['id'])


class TestFuturePlans:

    def test_monthly_savings(self, engine, user):
        result = engine.add_future_plan(user['id'], 'Car', 7000, 1000, '2025-07-15', today=TODAY)

        assert result['feasible'] is True
        assert result['plan']['monthly_savings'] == Decimal('1000.00')
        assert '6 month' in result['message']

    def test_partial_month_is_not_counted(self, engine):
        assert engine.months_between(datetime.date(2025, 1, 15), datetime.date(2025, 3, 14)) == 1

    def test_past_date_uses_one_month(self, engine, user):
        result = engine.add_future_plan(user['id'], 'Late', 600, 0, '2024-12-01', today=TODAY)

        assert result['feasible'] is False
        assert result['plan']['monthly_savings'] == Decimal('600.00')

    def test_list_and_delete(self, engine, user, other_user):
        plan = engine.add_future_plan(user['id'], 'Car', 7000, 0, '2026-01-01', today=TODAY)['plan']

        assert len(engine.list_future_plans(user['id'])) == 1
        with pytest.raises(NotFoundOrUnauthorized):
            engine.delete_future_plan(other_user['id'], plan['id'])
        engine.delete_future_plan(user['id'], plan['id'])
        assert engine.list_future_plans(user['id']) == []


class TestReports:

    @pytest.mark.parametrize("period, expected", [
        ('weekly', ('2025-01-12', '2025-01-18')),
        ('monthly', ('2025-01-01', '2025-01-31')),
        ('yearly', ('2025-01-01', '2025-12-31')),
    ])
    def test_period_range(self, engine, period, expected):
        assert engine.period_range(period, TODAY) == expected

    def test_grouped_totals(self, engine, ledger, user, account):
        for amount, category, txn_type in [
            (3000, 'Salary', 'income'),
            (45, 'Dining', 'expense'),
            ('15.50', 'Dining', 'expense'),
            (120, 'Groceries', 'expense'),
        ]:
            ledger.create_transaction(user['id'], amount, category, txn_type, '2025-01-10', '', account['id'])
        ledger.create_transaction(user['id'], 999, 'Dining', 'expense', '2025-02-10', '', account['id'])
        engine.set_overall_budget(user['id'], 400, '2025-01-01', '2025-01-31')

        report = engine.get_financial_report(user['id'], period='monthly', today=TODAY)

        assert report['period'] == {"start_date": '2025-01-01', "end_date": '2025-01-31'}
        assert report['income'] == [
            {"category": 'Salary', "total_amount": Decimal('3000.00'), "transaction_count": 1}
        ]
        dining = next(g for g in report['expenses'] if g['category'] == 'Dining')
        assert dining == {"category": 'Dining', "total_amount": Decimal('60.50'), "transaction_count": 2}
        assert report['total_expenses'] == Decimal('180.50')
        assert report['net'] == Decimal('2819.50')
        assert report['budget']['amount'] == Decimal('400.00')
        assert report['current_spending'] == Decimal('180.50')

    def test_explicit_range(self, engine, user):
        report = engine.get_financial_report(user['id'], '2025-01-01', '2025-01-31')

        assert report['total_income'] == Decimal('0.00')
        assert report['budget']['amount'] == Decimal('0.00')

    def test_half_range_is_rejected(self, engine, user):
        with pytest.raises(ValidationFailure):
            engine.get_financial_report(user['id'], start_date='2025-01-01')

    def test_unknown_period(self, engine, user):
        with pytest.raises(ValidationFailure):
            engine.get_financial_report(user['id'], period='daily')
