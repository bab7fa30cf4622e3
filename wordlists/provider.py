"""Word list model, backend row parsing and list providers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from infra.backend import SupabaseRestClient
from infra.errors import BackendError, ListLoadError
from infra.logging import get_logger
from infra.recovery import BackoffPolicy, Sleeper, is_recoverable_error, retry_operation

WORD_LISTS_TABLE = "word_lists"


@dataclass(frozen=True)
class Word:
    text: str
    mastered: bool = False


@dataclass(frozen=True)
class WordList:
    """A caregiver-curated list; only active, non-deleted lists feed a session."""

    id: str
    name: str
    words: tuple[Word, ...] = ()
    is_active: bool = False
    deleted_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_available(self) -> bool:
        return self.is_active and self.deleted_at is None


class ListProvider(Protocol):
    """Source of active word lists, newest first."""

    def get_active_lists(self) -> list[WordList]: ...


def parse_word_list(row: dict[str, Any]) -> WordList:
    """Validate one `word_lists` row and convert it to a WordList."""
    if not isinstance(row, dict):
        raise ValueError("word list row must be a JSON object")

    list_id = row.get("id")
    if list_id is None or str(list_id) == "":
        raise ValueError("word list row field 'id' is required")
    name = row.get("name")
    if not isinstance(name, str):
        raise ValueError("word list row field 'name' must be a string")

    raw_words = row.get("words") or []
    if not isinstance(raw_words, list):
        raise ValueError("word list row field 'words' must be a list")
    words = tuple(_parse_word(item) for item in raw_words)

    return WordList(
        id=str(list_id),
        name=name,
        words=words,
        is_active=bool(row.get("is_active", False)),
        deleted_at=_parse_timestamp(row.get("deleted_at")),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def _parse_word(item: Any) -> Word:
    if isinstance(item, str):
        return Word(text=item)
    if isinstance(item, dict) and isinstance(item.get("text"), str):
        return Word(text=item["text"], mastered=bool(item.get("mastered", False)))
    raise ValueError(f"invalid word entry: {item!r}")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp: {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def newest_first(lists: list[WordList]) -> list[WordList]:
    """Order lists by creation time, newest first; undated lists go last."""
    dated = [wl for wl in lists if wl.created_at is not None]
    undated = [wl for wl in lists if wl.created_at is None]
    return sorted(dated, key=lambda wl: wl.created_at, reverse=True) + undated


class SupabaseListProvider:
    """Reads active, non-deleted lists from the hosted `word_lists` table."""

    def __init__(self, client: SupabaseRestClient) -> None:
        self._client = client

    def get_active_lists(self) -> list[WordList]:
        try:
            rows = self._client.select(
                WORD_LISTS_TABLE,
                {
                    "select": "*",
                    "deleted_at": "is.null",
                    "is_active": "eq.true",
                    "order": "created_at.desc",
                },
            )
        except BackendError as exc:
            raise ListLoadError(str(exc)) from exc

        lists: list[WordList] = []
        for row in rows:
            try:
                lists.append(parse_word_list(row))
            except ValueError as exc:
                get_logger().error(
                    "skipping malformed word list row",
                    extra={"event_type": "list_parse_error", "metadata": {"error": str(exc)}},
                )
        return [wl for wl in lists if wl.is_available]


@dataclass
class InMemoryListProvider:
    """In-process list store with the same filtering and ordering as the backend."""

    lists: list[WordList] = field(default_factory=list)

    def get_active_lists(self) -> list[WordList]:
        return newest_first([wl for wl in self.lists if wl.is_available])


class RetryingListProvider:
    """Retries transient list-load failures with bounded backoff."""

    def __init__(
        self,
        inner: ListProvider,
        *,
        max_attempts: int = 3,
        backoff: BackoffPolicy | None = None,
        sleeper: Sleeper | Callable[[float], None] = time.sleep,
    ) -> None:
        self._inner = inner
        self._max_attempts = max_attempts
        self._backoff = backoff or BackoffPolicy()
        self._sleeper = sleeper

    def get_active_lists(self) -> list[WordList]:
        return retry_operation(
            self._inner.get_active_lists,
            should_retry=is_recoverable_error,
            max_attempts=self._max_attempts,
            backoff=self._backoff,
            sleeper=self._sleeper,
        )
