"""ML proxy tests. The service is an httpx.MockTransport; nothing touches the network."""

from decimal import Decimal

import httpx
import pytest

from ml_client import NOT_AVAILABLE_MESSAGE, MLServiceClient, transform_transactions_for_ml


def client_for(service):
    return MLServiceClient("http://ml.test", timeout=5, transport=service.transport)


class TestTransform:

    def test_shapes_rows(self):
        rows = [{
            "id": 1, "user_id": 9, "account_id": 2, "amount": Decimal('12.50'),
            "category": None, "type": "expense", "date": "2025-01-01", "note": None,
        }]

        assert transform_transactions_for_ml(rows) == [{
            "id": 1, "amount": 12.5, "category": "Uncategorized",
            "type": "expense", "date": "2025-01-01", "note": "",
        }]

    def test_caps_batch_size(self):
        rows = [
            {"id": i, "amount": Decimal('1.00'), "category": "Dining", "type": "expense", "date": "2025-01-01"}
            for i in range(1200)
        ]

        assert len(transform_transactions_for_ml(rows)) == 1000


class TestClient:

    def test_health(self, ml_service):
        ml_service.add('GET', '/health', (200, {"status": "ok"}))

        result = client_for(ml_service).health_check()

        assert result['success'] is True
        assert result['status'] == {"status": "ok"}

    def test_connection_refused(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = MLServiceClient("http://ml.test", transport=httpx.MockTransport(refuse))

        result = client.get_predictions(1)
        assert result == {"success": False, "message": NOT_AVAILABLE_MESSAGE, "error": "Connection refused"}
        assert client.health_check()['available'] is False

    def test_upstream_error_detail(self, ml_service):
        ml_service.add('POST', '/insights', (422, {"detail": "bad payload"}))

        result = client_for(ml_service).get_user_insights(1, [])

        assert result['success'] is False
        assert result['error'] == {"detail": "bad payload"}
        assert result['message'] == "Failed to generate insights"

    def test_predictions_pass_months(self, ml_service):
        ml_service.add('GET', '/predict/4', (200, {"predictions": [1, 2, 3]}))

        result = client_for(ml_service).get_predictions(4, months=3)

        assert result['data'] == {"predictions": [1, 2, 3]}
        assert ml_service.requests[0].url.params['months'] == '3'

    def test_trains_once_when_predictions_fail(self, ml_service):
        ml_service.add('GET', '/predict/4', (404, {"detail": "no model"}), (200, {"predictions": [5]}))
        ml_service.add('POST', '/train', (200, {"trained": True}))

        result = client_for(ml_service).get_or_train_predictions(4, [{"id": 1}])

        assert result['success'] is True
        assert result['data'] == {"predictions": [5]}
        assert ml_service.paths() == ['/predict/4', '/train', '/predict/4']

    def test_training_failure_is_returned(self, ml_service):
        ml_service.add('POST', '/train', (500, {"detail": "boom"}))

        result = client_for(ml_service).get_or_train_predictions(4, [])

        assert result['success'] is False
        assert result['message'] == "Failed to train model"
        assert ml_service.paths() == ['/predict/4', '/train']


class TestRoutes:

    def test_no_data_skips_the_service(self, client, auth_headers, ml_service):
        for path in ('/api/ml/insights', '/api/ml/predictions/auto'):
            body = client.get(path, headers=auth_headers).get_json()
            assert body['success'] is True
            assert body['data']['has_data'] is False

        assert client.post('/api/ml/train', headers=auth_headers).get_json()['data']['has_data'] is False
        assert ml_service.requests == []

    def test_insights_forward_transactions(self, client, auth_headers, ml_service):
        ml_service.add('POST', '/insights', (200, {"insights": ["spend less"]}))
        account = client.post('/api/accounts', json={"account_type": "checking", "balance": 75}, headers=auth_headers)
        assert account.status_code == 201

        response = client.get('/api/ml/insights', headers=auth_headers)

        assert response.status_code == 200
        payload = ml_service.requests[0].read()
        assert b'"Opening Balance"' in payload
        assert b'75.0' in payload

    def test_status_codes(self, client, auth_headers, ml_service):
        ml_service.add('GET', '/health', (500, {"detail": "down"}))

        assert client.get('/api/ml/health', headers=auth_headers).status_code == 503
        assert client.get('/api/ml/insights/summary', headers=auth_headers).status_code == 502

    def test_goal_timeline_validation(self, client, auth_headers, ml_service):
        response = client.post('/api/ml/goals/timeline', json={"target_amount": 100}, headers=auth_headers)

        assert response.status_code == 400
        assert ml_service.requests == []

    @pytest.mark.parametrize("path, body", [
        ('/api/ml/goals/timeline', {"target_amount": "abc", "current_savings": 0, "monthly_savings": 50}),
        ('/api/ml/goals/timeline', {"target_amount": 100, "current_savings": 0, "monthly_savings": -5}),
        ('/api/ml/goals/reverse-plan', {"target_amount": 100, "current_savings": "lots", "target_date": "2026-01-01"}),
        ('/api/ml/goals/reverse-plan', {"target_amount": 100, "current_savings": 0, "target_date": "soon"}),
    ])
    def test_goal_routes_reject_bad_input(self, client, auth_headers, ml_service, path, body):
        response = client.post(path, json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.get_json()['success'] is False
        assert ml_service.requests == []

    def test_goal_timeline_forwards_parsed_amounts(self, client, auth_headers, ml_service):
        ml_service.add('POST', '/goals/timeline', (200, {"months": 4}))

        response = client.post('/api/ml/goals/timeline', json={
            "target_amount": "1000", "current_savings": "200.50", "monthly_savings": 200,
        }, headers=auth_headers)

        assert response.status_code == 200
        assert b'"current_savings":200.5' in ml_service.requests[0].read().replace(b' ', b'')
