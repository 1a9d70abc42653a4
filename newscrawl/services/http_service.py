import requests
from typing import Callable

from newscrawl.domain.http_response import HttpResponse
from newscrawl.exceptions import FetchError


class HttpService:
    """
    HTTP client wrapper providing the plain GET primitive.

    Requires http_client callable for dependency injection, so tests can pass a
    Mock and the container can pass `requests.get` or a `Session.get`.
    Non-2xx statuses are returned, not raised; only transport errors raise.
    """

    def __init__(self, user_agent: str, http_client: Callable, timeout: int = 30):
        self.user_agent = user_agent
        self.timeout = timeout
        self.http_client = http_client

    def get(self, url: str) -> HttpResponse:
        """GET `url` and return status code, body text and headers."""
        headers = {"User-Agent": self.user_agent}
        try:
            resp = self.http_client(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise FetchError(url, e) from e

        resp_headers = getattr(resp, "headers", None)
        return HttpResponse(resp.status_code, resp.text, resp_headers)
