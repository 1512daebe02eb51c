"""
BudgetBuddy - Flask REST API

RESTful backend for the BudgetBuddy personal finance application. The
application factory wires Flask, Flask-CORS and Flask-Login (bearer JWT)
around a stateless FinanceEngine and serves:

Authentication:
- User registration and login (JWT issued at login)
- Profile of the authenticated user

Ledger:
- Accounts with opening balances and balance reconciliation
- Transactions (create/read/update/delete) that keep account balances
  equal to the signed sum of their transactions

Planning:
- Categories, overall budget and spending status
- Bills, financial goals and future savings plans
- Income/expense reports

ML proxy:
- Forwards prediction and insight requests to the external ML service

Security:
- Every data route requires a bearer token; handlers pass
  current_user.id to the engine, which scopes all queries to it
- CORS enabled for the web front end
"""

import datetime
import logging
from decimal import Decimal

from flask import Blueprint, Flask, current_app, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from flask_login import current_user, login_required
from werkzeug.exceptions import HTTPException

import config
from auth import create_token, login_manager
from engine import FinanceEngine
from errors import BudgetBuddyError, ValidationFailure
from ml_client import MLServiceClient, transform_transactions_for_ml
from setup_sqlite import create_database

logger = logging.getLogger(__name__)

FRONTEND_ORIGINS = ["http://localhost:3000", "http://localhost:3001"]


class CustomJSONProvider(DefaultJSONProvider):
    """Serialise Decimal as float and dates/datetimes as ISO-8601."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        return super().default(obj)


api = Blueprint('api', __name__, url_prefix='/api')


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(overrides=None):
    """
    Build the Flask application.

    Args:
        overrides (dict): Optional config values applied over the
            environment-derived settings (tests pass DATABASE_PATH and
            ML_TRANSPORT here)
    """
    app = Flask(__name__)
    app.config.update(config.as_flask_config())
    if overrides:
        app.config.update(overrides)
    app.json = CustomJSONProvider(app)

    CORS(
        app,
        origins=FRONTEND_ORIGINS + [app.config['CORS_ORIGIN']],
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    if not create_database(app.config['DATABASE_PATH']):
        logger.error("Database setup failed for %s", app.config['DATABASE_PATH'])
    app.extensions['engine'] = FinanceEngine(app.config['DATABASE_PATH'])
    app.extensions['ml_client'] = MLServiceClient(
        app.config['ML_SERVICE_URL'],
        app.config['ML_SERVICE_TIMEOUT'],
        transport=app.config.get('ML_TRANSPORT'),
    )

    login_manager.init_app(app)
    app.register_blueprint(api)

    @app.before_request
    def log_request():
        logger.info("%s %s", request.method, request.path)

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            "success": True,
            "message": "BudgetBuddy API is running",
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "environment": app.config['APP_ENV'],
        })

    @app.errorhandler(BudgetBuddyError)
    def handle_budgetbuddy_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(success=False, error=e.message), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(success=False, error="Endpoint not found", path=request.path), 404

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify(success=False, error=e.description), e.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify(success=False, error="Internal server error"), 500

    return app


def _engine():
    return current_app.extensions['engine']


def _ml():
    return current_app.extensions['ml_client']


def _json_body():
    return request.get_json(silent=True) or {}


def _require(data, *fields):
    missing = [field for field in fields if data.get(field) in (None, '')]
    if missing:
        raise ValidationFailure(f"Missing required fields: {', '.join(missing)}")


# =============================================================================
# USERS
# =============================================================================

@api.route('/users/register', methods=['POST'])
def register_user_api():
    data = _json_body()
    user = _engine().register_user(data.get('name'), data.get('email'), data.get('password'))
    return jsonify(user), 201


@api.route('/users/login', methods=['POST'])
def login_user_api():
    data = _json_body()
    user = _engine().login_user(data.get('email'), data.get('password'))
    token = create_token(
        user,
        current_app.config['JWT_SECRET'],
        current_app.config['JWT_ALGORITHM'],
        current_app.config['JWT_EXPIRES_HOURS'],
    )
    return jsonify({"message": "Login successful", "token": token, "user": user})


@api.route('/users/me', methods=['GET'])
@login_required
def get_profile_api():
    user = _engine().get_user(current_user.id)
    if not user:
        return jsonify(success=False, error="User not found"), 404
    return jsonify(user)


# =============================================================================
# ACCOUNTS
# =============================================================================

@api.route('/accounts', methods=['GET'])
@login_required
def get_accounts_api():
    return jsonify(_engine().list_accounts(current_user.id))


@api.route('/accounts', methods=['POST'])
@login_required
def create_account_api():
    data = _json_body()
    _require(data, 'account_type')
    account = _engine().create_account(current_user.id, data['account_type'], data.get('balance', 0))
    return jsonify(account), 201


@api.route('/accounts/<int:account_id>', methods=['GET'])
@login_required
def get_account_api(account_id):
    return jsonify(_engine().get_account(current_user.id, account_id))


@api.route('/accounts/reconcile', methods=['POST'])
@login_required
def reconcile_accounts_api():
    return jsonify(_engine().ledger.reconcile_account_balances(current_user.id))


# =============================================================================
# TRANSACTIONS
# =============================================================================

@api.route('/transactions', methods=['POST'])
@login_required
def create_transaction_api():
    data = _json_body()
    _require(data, 'account_id', 'amount', 'type')
    txn = _engine().ledger.create_transaction(
        current_user.id, data['amount'], data.get('category'), data['type'],
        data.get('date'), data.get('note'), data['account_id']
    )
    return jsonify(txn), 201


@api.route('/transactions', methods=['GET'])
@login_required
def get_transactions_api():
    args = request.args
    return jsonify(_engine().ledger.list_transactions(
        current_user.id,
        account_id=args.get('account_id'),
        start_date=args.get('start_date'),
        end_date=args.get('end_date'),
    ))


@api.route('/transactions/<int:transaction_id>', methods=['GET'])
@login_required
def get_transaction_api(transaction_id):
    return jsonify(_engine().ledger.get_transaction(transaction_id, current_user.id))


@api.route('/transactions/<int:transaction_id>', methods=['PUT'])
@login_required
def update_transaction_api(transaction_id):
    data = _json_body()
    _require(data, 'amount', 'type')
    txn = _engine().ledger.update_transaction(
        transaction_id, current_user.id, data['amount'], data.get('category'), data['type'],
        data.get('date'), data.get('note'), data.get('account_id')
    )
    return jsonify(txn)


@api.route('/transactions/<int:transaction_id>', methods=['DELETE'])
@login_required
def delete_transaction_api(transaction_id):
    return jsonify(_engine().ledger.delete_transaction(transaction_id, current_user.id))


# =============================================================================
# CATEGORIES
# =============================================================================

@api.route('/categories', methods=['GET'])
@login_required
def get_categories_api():
    return jsonify(_engine().list_categories(current_user.id))


@api.route('/categories', methods=['POST'])
@login_required
def create_category_api():
    data = _json_body()
    category = _engine().create_category(current_user.id, data.get('name'), data.get('type'))
    return jsonify(category), 201


@api.route('/categories/<int:category_id>', methods=['PUT', 'DELETE'])
@login_required
def manage_category_api(category_id):
    if request.method == 'PUT':
        data = _json_body()
        return jsonify(_engine().update_category(current_user.id, category_id, data.get('name'), data.get('type')))
    return jsonify(_engine().delete_category(current_user.id, category_id))


# =============================================================================
# BUDGETS
# =============================================================================

@api.route('/budgets/overall', methods=['GET'])
@login_required
def get_overall_budget_api():
    return jsonify(_engine().get_overall_budget(current_user.id))


@api.route('/budgets/overall', methods=['POST'])
@login_required
def set_overall_budget_api():
    data = _json_body()
    _require(data, 'amount', 'start_date', 'end_date')
    budget = _engine().set_overall_budget(current_user.id, data['amount'], data['start_date'], data['end_date'])
    return jsonify(budget), 201


@api.route('/budgets/overall', methods=['DELETE'])
@login_required
def delete_overall_budget_api():
    return jsonify(_engine().delete_overall_budget(current_user.id))


@api.route('/budgets/spending', methods=['GET'])
@login_required
def get_spending_api():
    return jsonify(_engine().get_spending(
        current_user.id, request.args.get('start_date'), request.args.get('end_date')
    ))


# =============================================================================
# BILLS
# =============================================================================

@api.route('/bills', methods=['GET'])
@login_required
def get_bills_api():
    return jsonify(_engine().list_bills(current_user.id))


@api.route('/bills', methods=['POST'])
@login_required
def add_bill_api():
    data = _json_body()
    _require(data, 'bill_name', 'due_date', 'amount')
    bill = _engine().add_bill(current_user.id, data['bill_name'], data['due_date'], data['amount'])
    return jsonify(bill), 201


@api.route('/bills/<int:bill_id>', methods=['PUT', 'DELETE'])
@login_required
def manage_bill_api(bill_id):
    if request.method == 'PUT':
        data = _json_body()
        return jsonify(_engine().update_bill(
            current_user.id, bill_id,
            bill_name=data.get('bill_name'),
            due_date=data.get('due_date'),
            amount=data.get('amount'),
            status=data.get('status'),
        ))
    return jsonify(_engine().delete_bill(current_user.id, bill_id))


# =============================================================================
# FINANCIAL GOALS
# =============================================================================

@api.route('/goals', methods=['GET'])
@login_required
def get_goals_api():
    return jsonify(_engine().list_goals(current_user.id))


@api.route('/goals', methods=['POST'])
@login_required
def add_goal_api():
    data = _json_body()
    _require(data, 'goal_name', 'target_amount')
    goal = _engine().add_goal(
        current_user.id, data['goal_name'], data['target_amount'],
        data.get('current_savings', 0), data.get('target_date')
    )
    return jsonify(goal), 201


@api.route('/goals/<int:goal_id>', methods=['PUT', 'DELETE'])
@login_required
def manage_goal_api(goal_id):
    if request.method == 'PUT':
        data = _json_body()
        return jsonify(_engine().update_goal(
            current_user.id, goal_id,
            goal_name=data.get('goal_name'),
            target_amount=data.get('target_amount'),
            current_savings=data.get('current_savings'),
            target_date=data.get('target_date'),
        ))
    return jsonify(_engine().delete_goal(current_user.id, goal_id))


@api.route('/goals/<int:goal_id>/contribute', methods=['POST'])
@login_required
def contribute_to_goal_api(goal_id):
    data = _json_body()
    _require(data, 'amount')
    return jsonify(_engine().contribute_to_goal(current_user.id, goal_id, data['amount']))


# =============================================================================
# FUTURE PLANS
# =============================================================================

@api.route('/future-plans', methods=['GET'])
@login_required
def get_future_plans_api():
    return jsonify(_engine().list_future_plans(current_user.id))


@api.route('/future-plans', methods=['POST'])
@login_required
def add_future_plan_api():
    data = _json_body()
    _require(data, 'goal_name', 'target_amount', 'target_date')
    result = _engine().add_future_plan(
        current_user.id, data['goal_name'], data['target_amount'],
        data.get('current_savings', 0), data['target_date']
    )
    return jsonify(result), 201


@api.route('/future-plans/<int:plan_id>', methods=['DELETE'])
@login_required
def delete_future_plan_api(plan_id):
    return jsonify(_engine().delete_future_plan(current_user.id, plan_id))


# =============================================================================
# REPORTS
# =============================================================================

@api.route('/reports', methods=['GET'])
@login_required
def get_report_api():
    args = request.args
    return jsonify(_engine().get_financial_report(
        current_user.id,
        start_date=args.get('start_date'),
        end_date=args.get('end_date'),
        period=args.get('period'),
    ))


# =============================================================================
# ML PROXY
# =============================================================================

NO_DATA_MESSAGE = "No transaction data available yet. Start adding transactions to {}!"


def _ml_response(result):
    return jsonify(result), 200 if result['success'] else 502


def _ml_transactions():
    return transform_transactions_for_ml(
        _engine().ledger.list_transactions(current_user.id, limit=config.ML_TRANSACTION_LIMIT)
    )


def _ml_amount(data, field, allow_zero=False):
    return float(_engine()._parse_amount(data[field], allow_zero=allow_zero))


def _no_data(purpose, **empty):
    return jsonify({
        "success": True,
        "data": {"has_data": False, "message": NO_DATA_MESSAGE.format(purpose), **empty},
    })


@api.route('/ml/health', methods=['GET'])
@login_required
def ml_health_api():
    result = _ml().health_check()
    return jsonify(result), 200 if result['success'] else 503


@api.route('/ml/train', methods=['POST'])
@login_required
def ml_train_api():
    transactions = _ml_transactions()
    if not transactions:
        return _no_data("train the model", transactions=[])
    logger.info("Training model with %d transactions for user %s", len(transactions), current_user.id)
    return _ml_response(_ml().train_model(current_user.id, transactions))


@api.route('/ml/predictions', methods=['GET'])
@login_required
def ml_predictions_api():
    months = request.args.get('months', 6, type=int)
    return _ml_response(_ml().get_predictions(current_user.id, months))


@api.route('/ml/predictions/auto', methods=['GET'])
@login_required
def ml_predictions_auto_api():
    months = request.args.get('months', 6, type=int)
    transactions = _ml_transactions()
    if not transactions:
        return _no_data("get predictions", predictions=[])
    return _ml_response(_ml().get_or_train_predictions(current_user.id, transactions, months))


@api.route('/ml/goals/timeline', methods=['POST'])
@login_required
def ml_goal_timeline_api():
    data = _json_body()
    _require(data, 'target_amount', 'current_savings', 'monthly_savings')
    return _ml_response(_ml().calculate_goal_timeline(
        current_user.id,
        _ml_amount(data, 'target_amount'),
        _ml_amount(data, 'current_savings', allow_zero=True),
        _ml_amount(data, 'monthly_savings'),
    ))


@api.route('/ml/goals/reverse-plan', methods=['POST'])
@login_required
def ml_reverse_plan_api():
    data = _json_body()
    _require(data, 'target_amount', 'current_savings', 'target_date')
    return _ml_response(_ml().reverse_plan_goal(
        current_user.id,
        _ml_amount(data, 'target_amount'),
        _ml_amount(data, 'current_savings', allow_zero=True),
        _engine()._parse_date(data['target_date']),
    ))


@api.route('/ml/insights', methods=['GET'])
@login_required
def ml_insights_api():
    transactions = _ml_transactions()
    if not transactions:
        return _no_data("get AI insights", predictions=[], insights=[])
    return _ml_response(_ml().get_user_insights(current_user.id, transactions))


@api.route('/ml/insights/summary', methods=['GET'])
@login_required
def ml_insights_summary_api():
    return _ml_response(_ml().get_insights_summary(current_user.id))


# --- RUN THE APP ---
if __name__ == '__main__':
    config.configure_logging()
    create_app().run(host=config.HOST, port=config.PORT, debug=config.APP_ENV == 'development')
