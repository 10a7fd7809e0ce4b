"""Loaders that fetch JSON schemas from local files or over HTTP."""

from __future__ import annotations

import json
import os
import sys
import time
from typing import Any
from urllib.parse import unquote, urlparse

import requests

from .cache import CacheMissError


class LoaderError(Exception):
    """A schema could not be loaded."""

    retryable = False


class NotFoundError(LoaderError):
    """The location does not hold a schema for the resource."""


class NonJSONResponseError(LoaderError):
    """The location answered with something that is not JSON."""


class FileLoader:
    """Loads JSON schemas from paths or ``file://`` URLs."""

    def load(self, url: str) -> Any:
        """Read and parse the JSON document at ``url``."""
        path = self.to_file(url)
        try:
            with open(path, "rb") as f:
                content = f.read()
        except FileNotFoundError as err:
            raise NotFoundError(f"could not open file {path}") from err
        return json.loads(content)

    def to_file(self, url: str) -> str:
        """Turn a ``file://`` URL into a filesystem path; return anything else unchanged."""
        parsed = urlparse(url)
        if parsed.scheme != "file":
            return url
        path = unquote(parsed.path)
        if sys.platform == "win32":
            path = path.removeprefix("/").replace("/", os.sep)
        return path


_FATAL_REQUEST_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidSchema,
    requests.exceptions.MissingSchema,
    requests.exceptions.SSLError,
    requests.exceptions.TooManyRedirects,
)


def _should_retry(status: int) -> bool:
    return status == 0 or status == 429 or (status >= 500 and status != 501)


class HTTPURLLoader:
    """Downloads JSON schemas over HTTP, retrying transient failures."""

    def __init__(
        self,
        skip_tls: bool = False,
        cache: Any = None,
        *,
        retry_max: int = 2,
        backoff_min: float = 1.0,
        backoff_max: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.cache = cache
        self.retry_max = retry_max
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self._verify = not skip_tls
        self._session = session if session is not None else requests.Session()

    def load(self, url: str) -> Any:
        """Return the parsed JSON schema found at ``url``."""
        if self.cache is not None:
            try:
                cached = self.cache.get(url)
            except (CacheMissError, LookupError, OSError):
                pass
            else:
                return json.loads(cached)

        response = self._fetch(url)
        with response:
            if response.status_code == 404:
                raise NotFoundError(f"could not find schema at {url}")
            if response.status_code != 200:
                raise LoaderError(
                    f"error while downloading schema at {url} - "
                    f"received HTTP status {response.status_code}"
                )
            body = response.content

        if self.cache is not None:
            try:
                self.cache.set(url, body)
            except OSError as err:
                raise LoaderError(f"failed to write cache to disk: {err}") from err

        try:
            return json.loads(body)
        except ValueError as err:
            raise NonJSONResponseError(str(err)) from err

    def _wait(self, attempt: int, response: requests.Response | None) -> float:
        if response is not None and response.status_code in (429, 503):
            retry_after = response.headers.get("Retry-After", "")
            if retry_after.isdigit():
                return float(retry_after)
        return min(self.backoff_min * (2 ** attempt), self.backoff_max)

    def _fetch(self, url: str) -> requests.Response:
        attempts = self.retry_max + 1
        for attempt in range(attempts):
            last = attempt + 1 == attempts
            try:
                response = self._session.get(
                    url, verify=self._verify, headers={"Accept-Encoding": "identity"}
                )
            except _FATAL_REQUEST_ERRORS as err:
                raise LoaderError(f"failed downloading schema at {url}: {err}") from err
            except requests.RequestException as err:
                if last:
                    raise LoaderError(
                        f"failed downloading schema at {url}: GET {url} "
                        f"giving up after {attempts} attempt(s): {err}"
                    ) from err
                time.sleep(self._wait(attempt, None))
                continue

            if not _should_retry(response.status_code):
                return response
            wait = self._wait(attempt, response)
            response.close()
            if last:
                raise LoaderError(
                    f"failed downloading schema at {url}: GET {url} "
                    f"giving up after {attempts} attempt(s)"
                )
            time.sleep(wait)
        raise LoaderError(f"failed downloading schema at {url}")