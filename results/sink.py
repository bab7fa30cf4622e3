"""Result sink contracts and the Supabase-backed implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from infra.backend import SupabaseRestClient
from infra.errors import BackendError, PersistenceError

TEST_RESULTS_TABLE = "test_results"
TEST_WORD_LISTS_TABLE = "test_word_lists"


class ResultSink(Protocol):
    """Durably records a finished session's score."""

    def record_result(
        self,
        *,
        source_list_ids: frozenset[str],
        score: int,
        total: int,
        details: Any,
    ) -> None: ...


@dataclass(frozen=True)
class RecordedResult:
    source_list_ids: frozenset[str]
    score: int
    total: int
    details: Any


@dataclass
class InMemoryResultSink:
    """Result sink that keeps recorded results in memory."""

    results: list[RecordedResult] = field(default_factory=list)

    def record_result(
        self,
        *,
        source_list_ids: frozenset[str],
        score: int,
        total: int,
        details: Any,
    ) -> None:
        self.results.append(
            RecordedResult(source_list_ids=frozenset(source_list_ids), score=score, total=total, details=details)
        )


class SupabaseResultSink:
    """Writes a `test_results` row, then one `test_word_lists` link per source list."""

    def __init__(self, client: SupabaseRestClient) -> None:
        self._client = client

    def record_result(
        self,
        *,
        source_list_ids: frozenset[str],
        score: int,
        total: int,
        details: Any,
    ) -> None:
        try:
            created = self._client.insert(
                TEST_RESULTS_TABLE,
                [{"score": score, "total": total, "details": details}],
            )
            if not created or "id" not in created[0]:
                raise PersistenceError("test result insert returned no id")
            result_id = created[0]["id"]

            links = [
                {"test_result_id": result_id, "word_list_id": list_id}
                for list_id in sorted(source_list_ids)
            ]
            if links:
                self._client.insert(TEST_WORD_LISTS_TABLE, links, returning=False)
        except BackendError as exc:
            raise PersistenceError(str(exc)) from exc
