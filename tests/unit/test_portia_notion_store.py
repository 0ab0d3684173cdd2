"""
Unit tests for the Notion store.

HTTP traffic to the Notion API is mocked with the responses library.
"""
import json

import pytest
import requests

from portia.database import ACCESS_REGISTRY, ACCESS_REQUESTS, APPLICATIONS, USERS
from portia.database.notion_store import NOTION_API_URL, NOTION_VERSION, NotionStore, compact_id
from portia.errors import BackendError, NotFound

DATABASE_IDS = {
    USERS: '11111111-1111-1111-1111-111111111111',
    APPLICATIONS: '22222222-2222-2222-2222-222222222222',
    ACCESS_REQUESTS: '33333333-3333-3333-3333-333333333333',
    ACCESS_REGISTRY: '44444444-4444-4444-4444-444444444444',
}

PAGE_ID = 'abcdefab-1234-5678-9abc-def012345678'


def query_url(collection, base=NOTION_API_URL):
    return f"{base}/databases/{compact_id(DATABASE_IDS[collection])}/query"


def page_url(page_id=PAGE_ID, base=NOTION_API_URL):
    return f"{base}/pages/{page_id}"


def request_page(page_id=PAGE_ID, status='pending', archived=False, database=ACCESS_REQUESTS):
    return {
        'object': 'page',
        'id': page_id,
        'created_time': '2025-01-15T10:00:00.000Z',
        'archived': archived,
        'parent': {'type': 'database_id', 'database_id': DATABASE_IDS[database]},
        'properties': {
            'Employee ID': {'rich_text': [{'plain_text': '1'}]},
            'Application ID': {'rich_text': [{'plain_text': '2'}]},
            'Status': {'select': {'name': status} if status else None},
            'Justification': {'rich_text': [{'plain_text': 'Sprint work'}]},
            'Auto Generated': {'checkbox': False},
        },
    }


def sent_json(call):
    return json.loads(call.request.body)


@pytest.fixture
def notion_store():
    return NotionStore(DATABASE_IDS, api_key='secret_test_key')


# ==============================================================================
# Configuration Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestConfiguration:
    """Test store construction."""

    def test_all_databases_required(self):
        ids = dict(DATABASE_IDS)
        ids.pop(ACCESS_REGISTRY)
        with pytest.raises(ValueError, match='access_registry'):
            NotionStore(ids, api_key='secret_test_key')

    def test_headers_sent(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(USERS),
            json={'results': [], 'has_more': False}, status=200,
        )

        notion_store.list(USERS)

        headers = mock_responses.calls[0].request.headers
        assert headers['Authorization'] == 'Bearer secret_test_key'
        assert headers['Notion-Version'] == NOTION_VERSION

    def test_proxy_base_url_without_key(self, mock_responses):
        store = NotionStore(DATABASE_IDS, base_url='http://localhost:8030/proxy/notion')
        mock_responses.add(
            mock_responses.POST, query_url(USERS, base='http://localhost:8030/proxy/notion'),
            json={'results': [], 'has_more': False}, status=200,
        )

        assert store.list(USERS) == []
        assert 'Authorization' not in mock_responses.calls[0].request.headers


# ==============================================================================
# Query Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestQueries:
    """Test listing through database queries."""

    def test_paginates_with_cursor(self, notion_store, mock_responses):
        second_id = 'bbbbbbbb-1234-5678-9abc-def012345678'
        mock_responses.add(
            mock_responses.POST, query_url(ACCESS_REQUESTS),
            json={'results': [request_page()], 'has_more': True, 'next_cursor': 'cursor-2'}, status=200,
        )
        mock_responses.add(
            mock_responses.POST, query_url(ACCESS_REQUESTS),
            json={'results': [request_page(second_id, status='approved')], 'has_more': False}, status=200,
        )

        records = notion_store.list(ACCESS_REQUESTS)

        assert [r.id for r in records] == [PAGE_ID, second_id]
        assert 'start_cursor' not in sent_json(mock_responses.calls[0])
        assert sent_json(mock_responses.calls[1])['start_cursor'] == 'cursor-2'
        assert sent_json(mock_responses.calls[0])['page_size'] == 100

    def test_archived_pages_skipped(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(ACCESS_REQUESTS),
            json={'results': [request_page(archived=True)], 'has_more': False}, status=200,
        )

        assert notion_store.list(ACCESS_REQUESTS) == []

    def test_empty_status_decodes_and_filters_as_pending(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(ACCESS_REQUESTS),
            json={'results': [request_page(status=None)], 'has_more': False}, status=200,
        )

        records = notion_store.list(ACCESS_REQUESTS, {'status': 'pending'})

        assert len(records) == 1
        assert records[0].status == 'pending'
        assert 'filter' not in sent_json(mock_responses.calls[0])

    def test_filter_pushed_down(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(ACCESS_REQUESTS),
            json={'results': [request_page()], 'has_more': False}, status=200,
        )

        notion_store.list(ACCESS_REQUESTS, {'employee_id': '1'})

        assert sent_json(mock_responses.calls[0])['filter'] == {
            'property': 'Employee ID', 'rich_text': {'equals': '1'},
        }

    def test_missing_database(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(USERS),
            json={'object': 'error', 'message': 'Could not find database'}, status=404,
        )

        with pytest.raises(BackendError):
            notion_store.list(USERS)

    def test_server_error(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(USERS),
            json={'object': 'error', 'message': 'Internal error'}, status=500,
        )

        with pytest.raises(BackendError) as exc_info:
            notion_store.list(USERS)
        assert exc_info.value.details == 'Internal error'

    def test_connection_error(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.POST, query_url(USERS),
            body=requests.ConnectionError('Connection refused'),
        )

        with pytest.raises(BackendError):
            notion_store.list(USERS)


# ==============================================================================
# Page Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.portia
class TestPages:
    """Test single page reads and writes."""

    def test_get_page(self, notion_store, mock_responses):
        mock_responses.add(mock_responses.GET, page_url(), json=request_page(), status=200)

        record = notion_store.get(ACCESS_REQUESTS, PAGE_ID)

        assert record.employee_id == '1'
        assert record.justification == 'Sprint work'

    def test_malformed_id_never_hits_api(self, notion_store, mock_responses):
        with pytest.raises(NotFound):
            notion_store.get(ACCESS_REQUESTS, '42')
        assert len(mock_responses.calls) == 0

    def test_missing_page(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.GET, page_url(),
            json={'object': 'error', 'message': 'Could not find page'}, status=404,
        )

        with pytest.raises(NotFound):
            notion_store.get(ACCESS_REQUESTS, PAGE_ID)

    def test_archived_page_not_found(self, notion_store, mock_responses):
        mock_responses.add(mock_responses.GET, page_url(), json=request_page(archived=True), status=200)

        with pytest.raises(NotFound):
            notion_store.get(ACCESS_REQUESTS, PAGE_ID)

    def test_page_from_other_database_not_found(self, notion_store, mock_responses):
        mock_responses.add(
            mock_responses.GET, page_url(), json=request_page(database=ACCESS_REGISTRY), status=200,
        )

        with pytest.raises(NotFound):
            notion_store.get(ACCESS_REQUESTS, PAGE_ID)

    def test_create_page(self, notion_store, mock_responses, frozen_time):
        mock_responses.add(mock_responses.POST, f"{NOTION_API_URL}/pages", json=request_page(), status=200)

        record = notion_store.create(ACCESS_REQUESTS, {
            'employee_id': '1', 'application_id': '2', 'justification': 'Sprint work',
        })

        assert record.id == PAGE_ID
        body = sent_json(mock_responses.calls[0])
        assert body['parent'] == {'database_id': compact_id(DATABASE_IDS[ACCESS_REQUESTS])}
        assert body['properties']['Status'] == {'select': {'name': 'pending'}}
        assert body['properties']['Request Date'] == {'date': {'start': '2025-01-15T10:00:00Z'}}

    def test_update_patches_only_changes(self, notion_store, mock_responses):
        mock_responses.add(mock_responses.GET, page_url(), json=request_page(), status=200)
        mock_responses.add(mock_responses.PATCH, page_url(), json=request_page(status='approved'), status=200)

        record = notion_store.update(ACCESS_REQUESTS, PAGE_ID, {'status': 'approved'})

        assert record.status == 'approved'
        assert sent_json(mock_responses.calls[1]) == {
            'properties': {'Status': {'select': {'name': 'approved'}}},
        }

    def test_delete_archives_page(self, notion_store, mock_responses):
        app_page = {
            'object': 'page',
            'id': PAGE_ID,
            'archived': False,
            'parent': {'database_id': DATABASE_IDS[APPLICATIONS]},
            'properties': {'Name': {'title': [{'plain_text': 'Jira'}]}},
        }
        mock_responses.add(mock_responses.GET, page_url(), json=app_page, status=200)
        mock_responses.add(mock_responses.PATCH, page_url(), json=dict(app_page, archived=True), status=200)

        notion_store.delete(APPLICATIONS, PAGE_ID)

        assert sent_json(mock_responses.calls[1]) == {'archived': True}
