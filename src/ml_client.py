"""
BudgetBuddy - ML Service Client

Thin HTTP proxy to the external prediction/insights service. Every call
returns a result envelope instead of raising:

    {"success": True, "data": ..., "message": ...}
    {"success": False, "error": ..., "message": ...}
"""

import logging

import httpx

import config

logger = logging.getLogger(__name__)

NOT_AVAILABLE_MESSAGE = (
    "ML service is not available. Please ensure the Python ML backend is running on port 8000."
)


def transform_transactions_for_ml(transactions, limit=config.ML_TRANSACTION_LIMIT):
    """Shape ledger rows into the records the ML service expects."""
    return [
        {
            "id": txn['id'],
            "amount": float(txn['amount']),
            "category": txn.get('category') or 'Uncategorized',
            "type": txn['type'],
            "date": txn['date'],
            "note": txn.get('note') or '',
        }
        for txn in transactions[:limit]
    ]


class MLServiceClient:
    """
    Synchronous client for the ML service.

    Args:
        base_url (str): Service root, e.g. http://localhost:8000
        timeout (float): Per-request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, base_url=None, timeout=None, transport=None):
        self.base_url = (base_url or config.ML_SERVICE_URL).rstrip('/')
        self.timeout = timeout or config.ML_SERVICE_TIMEOUT
        self.transport = transport

    def _client(self):
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
            transport=self.transport,
        )

    @staticmethod
    def _error_detail(response):
        try:
            return response.json()
        except ValueError:
            return response.text

    def _handle_error(self, error, operation):
        logger.error("ML %s error: %s", operation, error)
        if isinstance(error, httpx.ConnectError):
            return {"success": False, "message": NOT_AVAILABLE_MESSAGE, "error": "Connection refused"}
        if isinstance(error, httpx.HTTPStatusError):
            detail = self._error_detail(error.response)
        else:
            detail = str(error)
        return {"success": False, "message": f"Failed to {operation}", "error": detail}

    def _call(self, method, path, operation, success_message, **kwargs):
        try:
            with self._client() as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
                return {"success": True, "data": response.json(), "message": success_message}
        except (httpx.HTTPError, ValueError) as e:
            return self._handle_error(e, operation)

    def health_check(self):
        try:
            with self._client() as client:
                response = client.get('/health')
                response.raise_for_status()
                return {
                    "success": True,
                    "available": True,
                    "status": response.json(),
                    "message": "ML service is healthy",
                }
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("ML health check failed: %s", e)
            message = (
                "ML service not running. Please start Python backend on port 8000."
                if isinstance(e, httpx.ConnectError) else "ML service is unavailable"
            )
            return {"success": False, "available": False, "message": message, "error": str(e)}

    def train_model(self, user_id, transactions):
        return self._call(
            'POST', '/train', 'train model', 'Model trained successfully',
            json={"user_id": user_id, "transactions": transactions},
        )

    def get_predictions(self, user_id, months=6):
        return self._call(
            'GET', f'/predict/{user_id}', 'get predictions', 'Predictions retrieved successfully',
            params={"months": months},
        )

    def get_or_train_predictions(self, user_id, transactions, months=6):
        """Predict; on failure train once on transactions and predict again."""
        result = self.get_predictions(user_id, months)
        if result['success']:
            return result

        logger.info("Training model for user %s before prediction", user_id)
        train_result = self.train_model(user_id, transactions)
        if not train_result['success']:
            return train_result
        return self.get_predictions(user_id, months)

    def calculate_goal_timeline(self, user_id, target_amount, current_savings, monthly_savings):
        return self._call(
            'POST', '/goals/timeline', 'calculate goal timeline', 'Goal timeline calculated successfully',
            json={
                "user_id": user_id,
                "target_amount": target_amount,
                "current_savings": current_savings,
                "monthly_savings": monthly_savings,
            },
        )

    def reverse_plan_goal(self, user_id, target_amount, current_savings, target_date):
        return self._call(
            'POST', '/goals/reverse-plan', 'calculate reverse goal plan',
            'Reverse goal plan calculated successfully',
            json={
                "user_id": user_id,
                "target_amount": target_amount,
                "current_savings": current_savings,
                "target_date": target_date,
            },
        )

    def get_user_insights(self, user_id, transactions):
        return self._call(
            'POST', '/insights', 'generate insights', 'Insights generated successfully',
            json={"user_id": user_id, "transactions": transactions},
        )

    def get_insights_summary(self, user_id):
        return self._call(
            'GET', f'/insights/summary/{user_id}', 'get insights summary',
            'Insights summary retrieved successfully',
        )
