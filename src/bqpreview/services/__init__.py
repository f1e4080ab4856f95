"""Service layer helpers (settings, BigQuery client, telemetry)."""

from .bigquery import BigQueryClientSettings, BigQueryDryRunClient, DryRunEstimator, DryRunResult
from .settings import Settings, SettingsStore

__all__ = [
    "BigQueryClientSettings",
    "BigQueryDryRunClient",
    "DryRunEstimator",
    "DryRunResult",
    "Settings",
    "SettingsStore",
]
