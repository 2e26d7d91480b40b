"""Daily account usage from the Cloudflare GraphQL analytics API."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from cfstatus.client import CloudflareClient
from cfstatus.dates import format_date, format_instant, start_of_utc_day, utcnow
from cfstatus.models import UsageMetrics

logger = logging.getLogger(__name__)

USAGE_MAX_AGE = timedelta(minutes=15)

ACCOUNT_USAGE_QUERY = """
query AccountUsage(
  $accountTag: string!
  $datetimeStart: Time!
  $datetimeEnd: Time!
  $dateStart: Date!
  $dateEnd: Date!
) {
  viewer {
    accounts(filter: { accountTag: $accountTag }) {
      workersInvocationsAdaptive(
        limit: 10000
        filter: { datetime_geq: $datetimeStart, datetime_leq: $datetimeEnd }
      ) {
        sum {
          requests
        }
      }
      kvOperationsAdaptiveGroups(
        limit: 10000
        filter: { date_geq: $dateStart, date_leq: $dateEnd }
      ) {
        sum {
          requests
        }
        dimensions {
          actionType
        }
      }
      d1AnalyticsAdaptiveGroups(
        limit: 10000
        filter: { date_geq: $dateStart, date_leq: $dateEnd }
      ) {
        sum {
          readQueries
          writeQueries
          rowsRead
          rowsWritten
        }
      }
    }
  }
}
"""

_KV_ACTIONS = {
    "read": "kv_reads",
    "write": "kv_writes",
    "delete": "kv_deletes",
    "list": "kv_lists",
}

_D1_FIELDS = {
    "readQueries": "d1_read_queries",
    "writeQueries": "d1_write_queries",
    "rowsRead": "d1_rows_read",
    "rowsWritten": "d1_rows_written",
}


def is_usage_stale(
    metrics: Optional[UsageMetrics],
    now: Optional[datetime] = None,
    max_age: timedelta = USAGE_MAX_AGE,
) -> bool:
    """Usage must be refetched on a new UTC day or once ``max_age`` has passed."""
    if metrics is None:
        return True
    now = now or utcnow()
    if metrics.period_start != start_of_utc_day(now):
        return True
    return now - metrics.last_updated >= max_age


def build_usage_variables(account_id: str, now: datetime) -> Dict[str, str]:
    start = start_of_utc_day(now)
    return {
        "accountTag": account_id,
        "datetimeStart": format_instant(start),
        "datetimeEnd": format_instant(now),
        "dateStart": format_date(start),
        "dateEnd": format_date(now),
    }


def _rows(account: Mapping[str, Any], key: str) -> list:
    rows = account.get(key) or []
    if not isinstance(rows, list):
        raise TypeError(f"{key} must be a list")
    return rows


def _sum_value(row: Any, name: str) -> int:
    if not isinstance(row, Mapping):
        raise TypeError("analytics rows must be objects")
    totals = row.get("sum") or {}
    if not isinstance(totals, Mapping):
        raise TypeError("sum must be an object")
    value = totals.get(name) or 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be numeric")
    return int(value)


def reduce_usage(data: Any, period_start: datetime, now: datetime) -> UsageMetrics:
    """Collapse the three analytics datasets into one :class:`UsageMetrics`."""
    metrics = UsageMetrics(period_start=period_start, period_end=now, last_updated=now)

    accounts = data["viewer"]["accounts"]
    if not isinstance(accounts, list):
        raise TypeError("viewer.accounts must be a list")
    if not accounts:
        return metrics
    account = accounts[0]
    if not isinstance(account, Mapping):
        raise TypeError("account analytics must be an object")

    metrics.workers_requests = sum(
        _sum_value(row, "requests")
        for row in _rows(account, "workersInvocationsAdaptive")
    )

    for row in _rows(account, "kvOperationsAdaptiveGroups"):
        if not isinstance(row, Mapping):
            raise TypeError("analytics rows must be objects")
        dimensions = row.get("dimensions") or {}
        if not isinstance(dimensions, Mapping):
            raise TypeError("dimensions must be an object")
        action = str(dimensions.get("actionType") or "").lower()
        attribute = _KV_ACTIONS.get(action)
        if attribute is None:
            continue
        setattr(
            metrics, attribute, getattr(metrics, attribute) + _sum_value(row, "requests")
        )

    for row in _rows(account, "d1AnalyticsAdaptiveGroups"):
        for source, attribute in _D1_FIELDS.items():
            total = getattr(metrics, attribute) + _sum_value(row, source)
            setattr(metrics, attribute, total)

    return metrics


class UsageAggregator:
    def __init__(self, client: CloudflareClient):
        self.client = client

    async def fetch(self, account_id: str, now: Optional[datetime] = None) -> UsageMetrics:
        now = now or utcnow()
        start = start_of_utc_day(now)
        metrics = await self.client.graphql(
            ACCOUNT_USAGE_QUERY,
            build_usage_variables(account_id, now),
            lambda data: reduce_usage(data, start, now),
        )
        logger.debug(
            "Usage for %s: %d worker requests", account_id, metrics.workers_requests
        )
        return metrics
