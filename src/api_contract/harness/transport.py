"""HTTP exchange models and the requests-based transport.

A transport is any callable taking an HttpRequest and returning an
HttpResponse. It is the only part of a run that blocks on I/O.
"""

import logging
from typing import Any, Callable

from pydantic import BaseModel
from requests import RequestException, Session

from api_contract.spec.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class HttpRequest(BaseModel):
    method: str
    path: str
    query: dict[str, Any] = {}
    headers: dict[str, str] = {}
    body: Any = None
    form: dict[str, Any] | None = None
    content_type: str = "application/json"


class HttpResponse(BaseModel):
    status: int
    headers: dict[str, str] = {}
    body: Any = None


Transport = Callable[[HttpRequest], HttpResponse]


class RequestsTransport:
    """Sends scenario requests to a live server with a shared Session."""

    def __init__(self, base_url: str, token: str = "", timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def __call__(self, request: HttpRequest) -> HttpResponse:
        url = f"{self.base_url}{request.path}"
        kwargs: dict[str, Any] = {
            "params": request.query or None,
            "headers": request.headers,
            "timeout": self.timeout,
        }
        if request.form is not None:
            if request.content_type.startswith("multipart/"):
                # requests builds the multipart boundary and header from ``files``
                kwargs["files"] = {name: (None, str(value)) for name, value in request.form.items()}
            else:
                kwargs["data"] = request.form
        elif request.body is not None:
            if "json" in request.content_type:
                kwargs["json"] = request.body
            else:
                kwargs["headers"] = {"Content-Type": request.content_type, **request.headers}
                kwargs["data"] = request.body

        logger.debug("%s %s", request.method.upper(), url)
        try:
            resp = self.session.request(request.method.upper(), url, **kwargs)
        except RequestException as e:
            raise TransportError(f"{request.method.upper()} {url} failed: {e}") from e

        return HttpResponse(status=resp.status_code, headers=dict(resp.headers), body=_decode_body(resp))


def _decode_body(resp) -> Any:
    if not resp.content:
        return None
    if "json" in resp.headers.get("Content-Type", ""):
        try:
            return resp.json()
        except ValueError:
            return resp.text
    return resp.text
