"""
API client for the hosted price transparency SQL database
"""
import logging
import time
from typing import Callable, Dict, List, Optional

import pandas as pd
import requests

from config.settings import APIConfig
from price_panel.utils.sql import build_select, sql_quote

logger = logging.getLogger(__name__)


class RemoteQueryError(Exception):
    """A remote query failed for good (API error or retries exhausted)"""


class DoltHubClient:
    """Client for the DoltHub SQL API (GET ?q=<sql>, row-major JSON results)"""

    def __init__(self, config, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.base_url = config.api_base_url
        self.timeout = config.request_timeout
        self.retry_attempts = config.retry_attempts
        self.backoff_base = config.backoff_base
        self.page_sleep = config.sleep_sec
        self.session = session or requests.Session()
        self.session.headers.update(APIConfig.HEADERS)
        self._sleep = sleep
        self.queries_issued = 0

    def _backoff(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    def query(self, sql: str) -> pd.DataFrame:
        """Run one SQL statement; values come back as strings (None for NULL)"""
        self.queries_issued += 1
        last_error = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.session.get(self.base_url, params={"q": sql}, timeout=self.timeout)

                if response.status_code == 429 or response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(f"Attempt {attempt + 1} got {last_error}")
                    if attempt < self.retry_attempts - 1:
                        self._sleep(self._backoff(attempt))
                    continue

                if response.status_code >= 400:
                    raise RemoteQueryError(f"HTTP {response.status_code}: {response.text[:200]}")

                payload = response.json()

            except (requests.RequestException, ValueError) as e:
                last_error = str(e)
                logger.warning(f"Attempt {attempt + 1} failed: {e}")
                if attempt < self.retry_attempts - 1:
                    self._sleep(self._backoff(attempt))
                continue

            if payload.get("query_execution_status") == "Error":
                raise RemoteQueryError(payload.get("query_execution_message") or "query error")

            return self._rows_to_frame(payload.get("rows") or [])

        raise RemoteQueryError(f"Query failed after {self.retry_attempts} attempts: {last_error}")

    @staticmethod
    def _rows_to_frame(rows: List[Dict]) -> pd.DataFrame:
        if not rows:
            return pd.DataFrame()
        columns = list(rows[0].keys())
        records = [
            [None if row.get(col) is None else str(row.get(col)) for col in columns]
            for row in rows
        ]
        return pd.DataFrame(records, columns=columns, dtype=object)

    def paginated_query(self, select_clause: str, table: str,
                        where_conditions: Optional[List[str]] = None,
                        key_col: str = "row_id", page_size: int = APIConfig.PAGE_SIZE) -> pd.DataFrame:
        """Keyset pagination: ORDER BY key, each page asks for key > last key seen"""
        pages = []
        last_key = None

        while True:
            conditions = list(where_conditions or [])
            if last_key is not None:
                conditions.append(f"{key_col} > {sql_quote(last_key)}")

            sql = build_select(select_clause, table, conditions, order_by=key_col, limit=page_size)
            chunk = self.query(sql)
            if chunk.empty:
                break

            pages.append(chunk)
            last_key = chunk[key_col].iloc[-1]

            if len(pages) % 10 == 0:
                logger.info(f"    Page {len(pages)} ({sum(len(p) for p in pages)} rows so far)")

            if len(chunk) < page_size:
                break
            self._sleep(self.page_sleep)

        if not pages:
            return pd.DataFrame()
        return pd.concat(pages, ignore_index=True)
