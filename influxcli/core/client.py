"""HTTP client for the InfluxDB 1.x query, write and ping endpoints."""
from __future__ import annotations
from typing import Any, Dict, Optional, Sequence
import logging
import requests

from influxcli.core.errors import PermanentServerError, TransientServerError
from influxcli.core.result import QueryResult
from influxcli.core.session import ConnectionConfig, Consistency, Precision
from influxcli.utils.constants import REQUEST_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

# Write endpoint precision parameter per session precision
WRITE_PRECISION = {
    Precision.RFC3339: 'ns',
    Precision.H: 'h',
    Precision.M: 'm',
    Precision.S: 's',
    Precision.MS: 'ms',
    Precision.U: 'u',
    Precision.NS: 'ns',
}


class InfluxClient:
    """Thin wrapper over ``requests.Session`` bound to one connection target."""

    def __init__(self, config: ConnectionConfig, timeout: float = REQUEST_TIMEOUT,
                 http: Optional[requests.Session] = None):
        self.config = config
        self.timeout = timeout
        self.http = http or requests.Session()
        self.http.headers.setdefault('User-Agent', USER_AGENT)
        if config.username:
            self.http.auth = (config.username, config.password)
        self.http.verify = not config.unsafe_ssl

    @property
    def url(self) -> str:
        return self.config.url

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.url}{path}"
        logger.debug("%s %s params=%s", method, url, kwargs.get('params'))
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientServerError(f"unable to reach {self.url}: {e}") from e
        except requests.RequestException as e:
            raise PermanentServerError(f"request to {self.url} failed: {e}") from e
        if response.status_code >= 500:
            raise TransientServerError(_error_message(response), status_code=response.status_code)
        if response.status_code >= 400:
            raise PermanentServerError(_error_message(response), status_code=response.status_code)
        return response

    def ping(self) -> str:
        """Return the server version reported by /ping."""
        response = self._request('GET', '/ping')
        return response.headers.get('X-Influxdb-Version', 'unknown')

    def execute_query(self, database: str, query: str, epoch: str = 'ns') -> QueryResult:
        params: Dict[str, str] = {'epoch': epoch}
        if database:
            params['db'] = database
        response = self._request('POST', '/query', params=params, data={'q': query})
        try:
            payload = response.json()
        except ValueError as e:
            raise PermanentServerError(f"invalid JSON in query response: {e}") from e
        return QueryResult.from_response(payload)

    def write_batch(self, database: str, retention_policy: str, lines: Sequence[str],
                    consistency: Consistency = Consistency.ALL,
                    precision: Precision = Precision.NS) -> None:
        params = {
            'db': database,
            'consistency': str(Consistency.parse(consistency)),
            'precision': WRITE_PRECISION[Precision.parse(precision)],
        }
        if retention_policy:
            params['rp'] = retention_policy
        body = '\n'.join(lines).encode('utf-8')
        self._request('POST', '/write', params=params, data=body,
                      headers={'Content-Type': 'text/plain; charset=utf-8'})


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get('error'):
        return f"{payload['error']} (HTTP {response.status_code})"
    text = (response.text or '').strip()
    return f"{text or response.reason} (HTTP {response.status_code})"
