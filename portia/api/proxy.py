"""Notion passthrough.

Lets a client (or a NotionStore pointed at this URL) talk to Notion without
ever holding the integration key. Requests are forwarded unchanged with
the server's key attached; Notion's status and body come back as-is.
"""
import logging

import requests
from flask import Blueprint, Response, current_app, request

from portia.database.notion_store import NOTION_API_URL, NOTION_VERSION
from portia.envelope import fail
from shared.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

proxy_bp = Blueprint('notion_proxy', __name__)


def _client():
    cfg = current_app.extensions['portia']['config']
    if not cfg.notion_api_key:
        return None
    return JsonHttpClient(
        NOTION_API_URL,
        headers={
            'Authorization': f'Bearer {cfg.notion_api_key}',
            'Notion-Version': NOTION_VERSION,
            'Content-Type': 'application/json',
        },
        timeout=cfg.notion_timeout,
    )


def _forward(method: str, path: str):
    client = _client()
    if client is None:
        logger.error("Notion proxy called but NOTION_API_KEY is not configured")
        return fail('CONFIG_ERROR', 'Notion API key is not configured', 500)

    body = request.get_json(silent=True) if method != 'GET' else None
    try:
        upstream = client.request(method, path, json=body)
    except requests.RequestException as e:
        logger.error(f"Notion proxy {method} {path} failed: {e}")
        return fail('BACKEND_ERROR', 'Could not reach Notion', 502, details=str(e))

    logger.debug(f"Notion proxy {method} {path} -> {upstream.status_code}")
    return Response(
        upstream.content,
        status=upstream.status_code,
        content_type=upstream.headers.get('Content-Type', 'application/json'),
    )


@proxy_bp.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = current_app.extensions['portia']['config'].cors_origin
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, Notion-Version'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PATCH, OPTIONS'
    return response


@proxy_bp.route('/databases/<database_id>/query', methods=['POST'])
def query_database(database_id):
    return _forward('POST', f"databases/{database_id}/query")


@proxy_bp.route('/pages', methods=['POST'])
def create_page():
    return _forward('POST', 'pages')


@proxy_bp.route('/pages/<page_id>', methods=['GET', 'PATCH'])
def page(page_id):
    return _forward(request.method, f"pages/{page_id}")
