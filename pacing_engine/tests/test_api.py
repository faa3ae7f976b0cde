"""
HTTP surface tests for the pacing router.

Collaborators are swapped through app.dependency_overrides; the app lifespan
is not entered so no warehouse or database client is created.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest
import requests
from fastapi.testclient import TestClient
from google.api_core import exceptions as google_exceptions

from pacing_engine.core.cache import TTLCache
from pacing_engine.core.dependencies import (
    get_delivery_gateway,
    get_plan_repository,
    get_portfolio_cache,
)
from pacing_engine.main import app
from pacing_engine.models import CampaignDeliverySchedule, MonthBucket
from pacing_engine.services.plans import PlanRepository
from pacing_engine.tests.conftest import SEARCH_TABLE, by_fact_table, delivery_frame

pytestmark = pytest.mark.api


@pytest.fixture
def reader(sample_schedules):
    reader = AsyncMock(spec=PlanRepository)
    reader.get_campaign_line_items.return_value = sample_schedules[:2]
    reader.get_portfolio_line_items.return_value = sample_schedules
    reader.get_delivery_schedule.return_value = None
    return reader


@pytest.fixture
def portfolio_cache():
    return TTLCache(ttl_seconds=60)


@pytest.fixture
def client(reader, gateway, portfolio_cache):
    app.dependency_overrides[get_plan_repository] = lambda: reader
    app.dependency_overrides[get_delivery_gateway] = lambda: gateway
    app.dependency_overrides[get_portfolio_cache] = lambda: portfolio_cache
    yield TestClient(app)
    app.dependency_overrides.clear()


BULK_BODY = {
    'campaignId': 'MBA100',
    'lineItemIds': ['LI-1', 'li-1'],
    'startDate': '2024-01-01',
    'endDate': '2024-01-10',
}


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json() == {'status': 'healthy'}


class TestBulkEndpoint:

    def test_rows_rounded_to_four_places(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.return_value = delivery_frame(
            [{'line_item_id': 'li-1', 'date': date(2024, 1, 2), 'channel': 'Meta', 'amount_spent': 1.23456789}]
        )

        response = client.post('/pacing/bulk', json=BULK_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body['ok'] is True
        assert body['count'] == 1
        assert body['truncated'] is False
        assert body['rows'][0] == {
            'lineItemId': 'li-1',
            'date': '2024-01-02',
            'channel': 'meta',
            'amountSpent': 1.2346,
            'impressions': 0.0,
            'clicks': 0.0,
            'results': 0.0,
            'video3sViews': 0.0,
        }
        assert body['window'] == {'startDate': '2024-01-01', 'endDate': '2024-01-10'}
        assert body['requestId']

    def test_missing_campaign_id(self, client, fake_warehouse):
        response = client.post('/pacing/bulk', json={'lineItemIds': ['li-1']})

        assert response.status_code == 400
        detail = response.json()['detail']
        assert detail['ok'] is False
        assert detail['error'] == 'validation_error'
        fake_warehouse.query_dataframe.assert_not_awaited()

    def test_empty_line_item_ids(self, client):
        response = client.post('/pacing/bulk', json={'campaignId': 'MBA100', 'lineItemIds': []})
        assert response.status_code == 400

    def test_malformed_date(self, client):
        response = client.post('/pacing/bulk', json=dict(BULK_BODY, startDate='not-a-date'))
        assert response.status_code == 400
        assert 'startDate' in response.json()['detail']['message']

    def test_timeout_is_504(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.side_effect = TimeoutError('job timed out')

        response = client.post('/pacing/bulk', json=BULK_BODY)

        assert response.status_code == 504
        assert response.json()['detail']['error'] == 'timeout'

    def test_query_failure_is_502(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.side_effect = google_exceptions.Forbidden('Access Denied: table secret')

        response = client.post('/pacing/bulk', json=BULK_BODY)

        assert response.status_code == 502
        detail = response.json()['detail']
        assert detail['error'] == 'query_error'
        assert 'secret' not in detail['message']
        assert detail['requestId']

    def test_transport_failure_is_502_after_retries(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.side_effect = requests.exceptions.ConnectionError('Connection aborted.')

        response = client.post('/pacing/bulk', json=BULK_BODY)

        assert response.status_code == 502
        assert response.json()['detail']['error'] == 'query_error'
        assert fake_warehouse.query_dataframe.await_count == 3

    def test_search_line_items_routed(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.side_effect = by_fact_table(
            delivery_frame([]),
            delivery_frame([{'line_item_id': 'li-2', 'date': date(2024, 1, 4), 'channel': 'search', 'amount_spent': 12.5}]),
        )
        body = {**BULK_BODY, 'lineItemIds': ['li-1', 'LI-2'], 'searchLineItemIds': ['li-2']}

        response = client.post('/pacing/bulk', json=body)

        assert response.status_code == 200
        rows = response.json()['rows']
        assert [(r['lineItemId'], r['channel']) for r in rows] == [('li-2', 'search')]
        search_calls = [c for c in fake_warehouse.query_dataframe.await_args_list if SEARCH_TABLE in c.args[0]]
        assert [c.args[1][0].values for c in search_calls] == [['li-2']]


class TestLineItemsEndpoint:

    def test_campaign_pacing(self, client, fake_warehouse):
        fake_warehouse.query_dataframe.side_effect = by_fact_table(
            delivery_frame([{'line_item_id': 'li-1', 'date': date(2024, 1, 5), 'channel': 'meta', 'amount_spent': 950.0}])
        )

        response = client.post(
            '/pacing/line-items',
            json={'campaignId': 'MBA100', 'lineItemIds': ['li-1', 'li-2'], 'startDate': '2024-01-01', 'endDate': '2024-01-10'},
        )

        assert response.status_code == 200
        body = response.json()
        assert body['asOfDate'] == '2024-01-10'
        campaign = body['campaign']
        assert campaign['spendPaceStatus'] == 'ON'
        assert campaign['expectedSpendToDate'] == 1000.0
        assert [li['lineItemId'] for li in campaign['lineItems']] == ['li-1', 'li-2']

    def test_unexpected_error_is_500(self, client, reader):
        reader.get_campaign_line_items.side_effect = RuntimeError('connection reset')

        response = client.post('/pacing/line-items', json={'campaignId': 'MBA100', 'lineItemIds': ['li-1']})

        assert response.status_code == 500
        assert response.json()['detail'] == {
            'ok': False,
            'error': 'internal_error',
            'message': 'Internal server error',
        }


class TestPortfolioEndpoint:

    def test_snapshot_is_cached(self, client, reader, portfolio_cache):
        first = client.post('/pacing/portfolio', json={'preset': 'LAST_30'})
        second = client.post('/pacing/portfolio', json={'preset': 'LAST_30'})

        assert first.status_code == 200
        assert first.json() == second.json()
        assert reader.get_portfolio_line_items.await_count == 1
        assert len(portfolio_cache) == 1

    def test_different_windows_not_shared(self, client, reader):
        client.post('/pacing/portfolio', json={'preset': 'LAST_30'})
        client.post('/pacing/portfolio', json={'preset': 'LAST_90'})

        assert reader.get_portfolio_line_items.await_count == 2

    def test_unknown_preset_rejected(self, client):
        response = client.post('/pacing/portfolio', json={'preset': 'LAST_7'})
        # Enum validation happens in the request model
        assert response.status_code == 422

    def test_bad_date_is_400(self, client):
        response = client.post('/pacing/portfolio', json={'startDate': 'not-a-date'})
        assert response.status_code == 400


class TestExpectedSpendEndpoint:

    def test_expected_spend(self, client, reader):
        reader.get_delivery_schedule.return_value = CampaignDeliverySchedule(
            campaignId='MBA100',
            campaignStart=date(2024, 1, 1),
            campaignEnd=date(2024, 2, 29),
            months=[
                MonthBucket(year=2024, month=1, plannedAmount=3100.0),
                MonthBucket(year=2024, month=2, plannedAmount=2900.0),
            ],
        )

        response = client.get('/pacing/campaigns/MBA100/expected-spend-to-date', params={'asOf': '2024-02-10'})

        assert response.status_code == 200
        assert response.json() == {
            'campaignId': 'MBA100',
            'asOfDate': '2024-02-10',
            'bookedTotal': 6000.0,
            'expectedToDate': 4100.0,
        }

    def test_unknown_campaign_is_404(self, client):
        response = client.get('/pacing/campaigns/MBA404/expected-spend-to-date', params={'asOf': '2024-02-10'})

        assert response.status_code == 404
        assert response.json()['detail']['error'] == 'not_found'

    def test_bad_as_of_is_400(self, client):
        response = client.get('/pacing/campaigns/MBA100/expected-spend-to-date', params={'asOf': 'not-a-date'})
        assert response.status_code == 400
