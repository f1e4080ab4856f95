"""BigQuery dry-run client built on the v2 REST API."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, Sequence

import httpx

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from .settings import Settings

__all__ = [
    "BigQueryClientSettings",
    "BigQueryDryRunClient",
    "DEFAULT_API_BASE_URL",
    "DryRunEstimator",
    "DryRunResult",
    "build_dry_run_request",
    "parse_dry_run_payload",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_API_BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"


@dataclass(slots=True, frozen=True)
class DryRunResult:
    """Estimated scan size, or the errors reported for the query."""

    scanned_bytes: int = 0
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def failure(cls, messages: Iterable[str]) -> "DryRunResult":
        errors = tuple(str(message) for message in messages if message)
        return cls(scanned_bytes=0, errors=errors or ("Unknown error",))


class DryRunEstimator(Protocol):
    """Anything that can estimate a query without executing it."""

    async def estimate(self, query: str) -> DryRunResult:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class BigQueryClientSettings:
    """Subset of settings required to configure the BigQuery client."""

    project_id: str
    access_token: str
    base_url: str = DEFAULT_API_BASE_URL
    location: str | None = None
    request_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "BigQueryClientSettings":
        return cls(
            project_id=settings.project_id,
            access_token=settings.access_token,
            base_url=settings.api_base_url or DEFAULT_API_BASE_URL,
            location=settings.location,
            request_timeout=settings.request_timeout,
        )


def build_dry_run_request(query: str, *, location: str | None = None) -> dict[str, Any]:
    """Return the ``jobs.insert`` body for a dry run of ``query``."""

    body: dict[str, Any] = {
        "configuration": {
            "dryRun": True,
            "query": {
                "query": query,
                "useLegacySql": False,
                "useQueryCache": False,
            },
        }
    }
    if location:
        body["jobReference"] = {"location": location}
    return body


def parse_dry_run_payload(payload: Mapping[str, Any], *, status_code: int = 200) -> DryRunResult:
    """Turn a ``jobs.insert`` response body into a :class:`DryRunResult`."""

    error = payload.get("error")
    if isinstance(error, Mapping) or status_code >= 400:
        messages = _error_messages(error if isinstance(error, Mapping) else {})
        return DryRunResult.failure(messages or [f"BigQuery request failed with HTTP {status_code}"])

    status = payload.get("status")
    if isinstance(status, Mapping):
        error_result = status.get("errorResult")
        if isinstance(error_result, Mapping):
            messages = _error_messages({"errors": status.get("errors") or [error_result]})
            return DryRunResult.failure(messages)

    statistics = payload.get("statistics")
    if not isinstance(statistics, Mapping):
        statistics = {}
    raw_bytes = statistics.get("totalBytesProcessed")
    if raw_bytes is None:
        query_stats = statistics.get("query")
        if isinstance(query_stats, Mapping):
            raw_bytes = query_stats.get("totalBytesProcessed")
    try:
        scanned = int(raw_bytes) if raw_bytes is not None else 0
    except (TypeError, ValueError):
        LOGGER.warning("Unexpected totalBytesProcessed value: %r", raw_bytes)
        scanned = 0
    return DryRunResult(scanned_bytes=max(0, scanned))


def _error_messages(error: Mapping[str, Any]) -> list[str]:
    items: Sequence[Any] = error.get("errors") or ()
    messages = [
        str(item.get("message"))
        for item in items
        if isinstance(item, Mapping) and item.get("message")
    ]
    if not messages and error.get("message"):
        messages = [str(error["message"])]
    return messages


class BigQueryDryRunClient:
    """Async dry-run estimator; failures come back as errors, never raise.

    Requests are not retried. A failed estimate stays failed until a new
    trigger asks again.
    """

    def __init__(
        self,
        settings: BigQueryClientSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> BigQueryClientSettings:
        return self._settings

    async def estimate(self, query: str) -> DryRunResult:
        if not query.strip():
            return DryRunResult.failure(["Query text is empty."])
        if not self._settings.project_id:
            return DryRunResult.failure(
                ["No BigQuery project configured. Set project_id or BQPREVIEW_PROJECT_ID."]
            )
        if not self._settings.access_token:
            return DryRunResult.failure(
                ["No access token available. Set BQPREVIEW_ACCESS_TOKEN."]
            )

        url = f"{self._settings.base_url.rstrip('/')}/projects/{self._settings.project_id}/jobs"
        body = build_dry_run_request(query, location=self._settings.location)
        headers = {"Authorization": f"Bearer {self._settings.access_token}"}
        LOGGER.debug("Submitting dry run (%d chars) to %s", len(query), url)
        try:
            response = await self._client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            LOGGER.warning("Dry run request failed: %s", exc)
            return DryRunResult.failure([str(exc) or exc.__class__.__name__])

        try:
            payload = response.json()
        except ValueError:
            snippet = response.text.strip()[:200]
            return DryRunResult.failure(
                [f"BigQuery returned HTTP {response.status_code}: {snippet or 'empty response'}"]
            )
        if not isinstance(payload, Mapping):
            return DryRunResult.failure([f"Unexpected BigQuery response: {payload!r}"])

        result = parse_dry_run_payload(payload, status_code=response.status_code)
        if result.ok:
            LOGGER.debug("Dry run estimated %d bytes", result.scanned_bytes)
        else:
            LOGGER.info("Dry run reported errors: %s", "; ".join(result.errors))
        return result

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this instance created it."""

        if not self._owns_client:
            return
        close = getattr(self._client, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _build_client(self, settings: BigQueryClientSettings) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.request_timeout)
