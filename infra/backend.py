"""Thin Supabase (PostgREST) client over requests."""

from __future__ import annotations

from typing import Any, Mapping

import requests

from infra.errors import BackendError


class SupabaseRestClient:
    """Issues table reads and inserts against the Supabase REST endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._session = session or requests.Session()
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def table_url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        """Return rows of `table` matching PostgREST query params."""
        try:
            response = self._session.get(
                self.table_url(table),
                params=dict(params),
                headers=self._headers,
                timeout=self._timeout_s,
            )
            response.raise_for_status()
            rows = response.json()
        except requests.RequestException as exc:
            raise BackendError(f"select from {table} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"select from {table} returned invalid JSON") from exc
        if not isinstance(rows, list):
            raise BackendError(f"select from {table} returned {type(rows).__name__}, expected list")
        return rows

    def insert(self, table: str, rows: list[dict[str, Any]], *, returning: bool = True) -> list[dict[str, Any]]:
        """Insert rows; with `returning` the created rows are read back."""
        headers = dict(self._headers)
        headers["Prefer"] = "return=representation" if returning else "return=minimal"
        try:
            response = self._session.post(
                self.table_url(table),
                json=rows,
                headers=headers,
                timeout=self._timeout_s,
            )
            response.raise_for_status()
            if not returning:
                return []
            created = response.json()
        except requests.RequestException as exc:
            raise BackendError(f"insert into {table} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"insert into {table} returned invalid JSON") from exc
        if not isinstance(created, list):
            raise BackendError(f"insert into {table} returned {type(created).__name__}, expected list")
        return created
