import logging
from http import HTTPStatus
from http.client import HTTPException
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .common_constants import FORMAT_JSON, FORMAT_TEXT
from .common_utils import parse_json
from .introspector_params import DEFAULT_METADATA_TIMEOUT_SECONDS

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class MetadataFetchError(Exception):
    def __init__(self, url: str, message: str):
        super().__init__(f"GET {url}: {message}")
        self.url = url


class TransportError(MetadataFetchError):
    pass


class HttpStatusError(MetadataFetchError):
    def __init__(self, url: str, status_code: int, reason: Optional[str] = None):
        super().__init__(url, f"{status_code} {reason or ''}".strip())
        self.status_code = status_code


class DecodeError(MetadataFetchError):
    pass


class MetadataFetcher:
    """
    Issues single GET requests against metadata endpoints, with a fixed
    timeout and no retries.
    """

    _HEADERS = {"Accept": "application/json"}

    def __init__(self, timeout: float = DEFAULT_METADATA_TIMEOUT_SECONDS):
        self.timeout = timeout

    def fetch_text(self, url: str) -> str:
        _logger.debug(f"Fetching '{url}' ...")

        try:
            # Request() raises ValueError for a URL without a scheme
            req = Request(url, method="GET", headers=self._HEADERS)

            with urlopen(req, timeout=self.timeout) as resp:
                # urlopen() raises HTTPError for most non-2xx codes, but
                # other 2xx/3xx codes still need to be rejected.
                if resp.status != HTTPStatus.OK.value:
                    raise HttpStatusError(url, resp.status, resp.reason)

                body = resp.read()
        except HTTPError as http_error:
            http_error.close()
            raise HttpStatusError(
                url, http_error.code, http_error.reason
            ) from http_error
        except (URLError, OSError, HTTPException, ValueError) as ex:
            raise TransportError(url, str(ex)) from ex

        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise DecodeError(url, f"Response is not UTF-8: {ex}") from ex

    def fetch_json(self, url: str) -> dict[str, Any]:
        text = self.fetch_text(url)

        try:
            doc = parse_json(text)
        except ValueError as ex:
            raise DecodeError(url, f"Response is not valid JSON: {ex}") from ex

        if not isinstance(doc, dict):
            raise DecodeError(url, "Response is not a JSON object")

        return doc

    def fetch(self, url: str, format: str = FORMAT_JSON) -> Any:
        if format == FORMAT_TEXT:
            return self.fetch_text(url)

        return self.fetch_json(url)
