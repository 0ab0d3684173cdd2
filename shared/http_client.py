from urllib.parse import urljoin

import requests


class JsonHttpClient:
    """
    Small requests wrapper for JSON APIs.

    Holds a base URL, default headers and a timeout so callers only pass
    paths and bodies. Responses are returned as-is; callers decide what a
    non-2xx status means.
    """

    def __init__(self, base_url: str, headers: dict = None, timeout: int = 30, session=None):
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def request(self, method: str, path: str, json=None, **kwargs) -> requests.Response:
        # Use per-call timeout if provided, otherwise default
        timeout = kwargs.pop("timeout", self.timeout)
        headers = dict(self.headers)
        headers.update(kwargs.pop("headers", None) or {})

        return self.session.request(
            method,
            self.url(path),
            headers=headers,
            json=json,
            timeout=timeout,
            **kwargs,
        )
