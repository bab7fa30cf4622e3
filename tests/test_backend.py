from datetime import datetime, timezone

import pytest
import requests

from infra.backend import SupabaseRestClient
from infra.errors import BackendError, ListLoadError, PersistenceError
from results.sink import InMemoryResultSink, SupabaseResultSink
from wordlists.provider import (
    InMemoryListProvider,
    SupabaseListProvider,
    Word,
    WordList,
    parse_word_list,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def _next(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._next("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._next("POST", url, **kwargs)


def make_client(*responses) -> tuple[SupabaseRestClient, FakeSession]:
    session = FakeSession(list(responses))
    client = SupabaseRestClient("https://demo.supabase.co/", "anon-key", timeout_s=3.0, session=session)
    return client, session


def test_select_sends_auth_headers_and_params() -> None:
    client, session = make_client(FakeResponse(payload=[{"id": 1}]))
    rows = client.select("word_lists", {"is_active": "eq.true"})
    assert rows == [{"id": 1}]
    request = session.requests[0]
    assert request["url"] == "https://demo.supabase.co/rest/v1/word_lists"
    assert request["params"] == {"is_active": "eq.true"}
    assert request["headers"]["apikey"] == "anon-key"
    assert request["headers"]["Authorization"] == "Bearer anon-key"
    assert request["timeout"] == 3.0


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(status_code=500),
        FakeResponse(invalid_json=True),
        FakeResponse(payload={"not": "a list"}),
        requests.ConnectionError("offline"),
    ],
)
def test_select_failures_become_backend_errors(response) -> None:
    client, _ = make_client(response)
    with pytest.raises(BackendError):
        client.select("word_lists", {})


def test_insert_prefer_header_follows_returning() -> None:
    client, session = make_client(FakeResponse(payload=[{"id": 9}]), FakeResponse(status_code=201))
    assert client.insert("test_results", [{"score": 1}]) == [{"id": 9}]
    assert client.insert("test_word_lists", [{"x": 1}], returning=False) == []
    assert session.requests[0]["headers"]["Prefer"] == "return=representation"
    assert session.requests[0]["json"] == [{"score": 1}]
    assert session.requests[1]["headers"]["Prefer"] == "return=minimal"


def test_parse_word_list_accepts_objects_strings_and_zulu_timestamps() -> None:
    parsed = parse_word_list(
        {
            "id": 7,
            "name": "Week 1",
            "words": [{"text": "cat", "mastered": True}, "dog"],
            "is_active": True,
            "deleted_at": None,
            "created_at": "2024-03-01T10:00:00Z",
        }
    )
    assert parsed == WordList(
        id="7",
        name="Week 1",
        words=(Word("cat", mastered=True), Word("dog")),
        is_active=True,
        deleted_at=None,
        created_at=datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc),
    )


@pytest.mark.parametrize(
    "row",
    [
        {"name": "missing id"},
        {"id": 1, "name": None},
        {"id": 1, "name": "x", "words": "cat,dog"},
        {"id": 1, "name": "x", "words": [42]},
        {"id": 1, "name": "x", "created_at": 12},
    ],
)
def test_parse_word_list_rejects_malformed_rows(row: dict) -> None:
    with pytest.raises(ValueError):
        parse_word_list(row)


def test_supabase_provider_queries_active_lists_and_skips_bad_rows() -> None:
    client, session = make_client(
        FakeResponse(
            payload=[
                {"id": 2, "name": "Newest", "words": ["cat"], "is_active": True},
                {"id": 3, "name": None},
                {"id": 1, "name": "Older", "words": [{"text": "dog"}], "is_active": True},
            ]
        )
    )
    lists = SupabaseListProvider(client).get_active_lists()
    assert [wl.id for wl in lists] == ["2", "1"]
    assert session.requests[0]["params"] == {
        "select": "*",
        "deleted_at": "is.null",
        "is_active": "eq.true",
        "order": "created_at.desc",
    }


def test_supabase_provider_wraps_backend_failure() -> None:
    client, _ = make_client(requests.Timeout("slow"))
    with pytest.raises(ListLoadError):
        SupabaseListProvider(client).get_active_lists()


def test_in_memory_provider_filters_and_orders_newest_first() -> None:
    provider = InMemoryListProvider(
        lists=[
            WordList(id="old", name="Old", is_active=True, created_at=datetime(2024, 1, 1)),
            WordList(id="new", name="New", is_active=True, created_at=datetime(2024, 2, 1)),
            WordList(id="off", name="Off", is_active=False, created_at=datetime(2024, 3, 1)),
            WordList(
                id="gone",
                name="Gone",
                is_active=True,
                created_at=datetime(2024, 3, 1),
                deleted_at=datetime(2024, 3, 2),
            ),
        ]
    )
    assert [wl.id for wl in provider.get_active_lists()] == ["new", "old"]


def test_supabase_sink_writes_result_then_links() -> None:
    client, session = make_client(FakeResponse(payload=[{"id": 55}]), FakeResponse(status_code=201))
    SupabaseResultSink(client).record_result(
        source_list_ids=frozenset({"b", "a"}),
        score=1,
        total=2,
        details=[{"word": "cat", "userAnswer": "cat", "correct": True}],
    )
    result_request, link_request = session.requests
    assert result_request["url"].endswith("/rest/v1/test_results")
    assert result_request["json"] == [
        {"score": 1, "total": 2, "details": [{"word": "cat", "userAnswer": "cat", "correct": True}]}
    ]
    assert link_request["url"].endswith("/rest/v1/test_word_lists")
    assert link_request["json"] == [
        {"test_result_id": 55, "word_list_id": "a"},
        {"test_result_id": 55, "word_list_id": "b"},
    ]


@pytest.mark.parametrize(
    "responses",
    [
        [FakeResponse(status_code=503)],
        [FakeResponse(payload=[])],
        [FakeResponse(payload=[{"id": 1}]), requests.ConnectionError("dropped")],
    ],
)
def test_supabase_sink_failures_become_persistence_errors(responses: list) -> None:
    client, _ = make_client(*responses)
    with pytest.raises(PersistenceError):
        SupabaseResultSink(client).record_result(source_list_ids=frozenset({"a"}), score=0, total=1, details={})


def test_in_memory_sink_records_calls() -> None:
    sink = InMemoryResultSink()
    sink.record_result(source_list_ids=frozenset({"a"}), score=3, total=4, details={})
    assert sink.results[0].score == 3
    assert sink.results[0].total == 4
