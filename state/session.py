"""Spelling test session state machine."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence, TypeVar

from audio.tts import SpeechOutput
from infra.config import Settings
from infra.errors import (
    InvalidSessionOperation,
    ListLoadError,
    NoActiveListError,
    PersistenceError,
    SpeechUnavailableError,
    SpellingError,
)
from infra.logging import get_logger
from infra.scheduler import ScheduledHandle, Scheduler
from results.sink import ResultSink
from wordlists.provider import ListProvider, WordList

T = TypeVar("T")

CORRECT_PROMPT = "Correct!"
INCORRECT_PROMPT = "Incorrect. The word was {word}."
NO_ACTIVE_LIST_MESSAGE = "No active word list found. Please activate one from the Manage Words section."
LIST_LOAD_FAILED_MESSAGE = "Failed to fetch active word lists."


class SessionPhase(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


class FeedbackKind(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class SessionWord:
    """A word tagged with the list it was drawn from."""

    text: str
    source_list_id: str
    mastered: bool = False


@dataclass(frozen=True)
class AttemptRecord:
    word: str
    user_answer: str
    correct: bool

    def to_payload(self) -> dict[str, Any]:
        return {"word": self.word, "userAnswer": self.user_answer, "correct": self.correct}


@dataclass(frozen=True)
class Feedback:
    kind: FeedbackKind
    word: str


@dataclass(frozen=True)
class SessionReport:
    source_list_ids: frozenset[str]
    score: int
    total: int
    attempts: tuple[AttemptRecord, ...]

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.score / self.total * 100)


class SessionView(Protocol):
    """Rendering surface driven by the controller."""

    def focus_input(self) -> None: ...

    def clear_input(self) -> None: ...

    def show_feedback(self, feedback: Feedback) -> None: ...

    def show_result(self, report: SessionReport) -> None: ...


class NullView:
    def focus_input(self) -> None:
        return None

    def clear_input(self) -> None:
        return None

    def show_feedback(self, feedback: Feedback) -> None:
        return None

    def show_result(self, report: SessionReport) -> None:
        return None


def fisher_yates_shuffle(items: Sequence[T], rng: random.Random) -> list[T]:
    """Return a uniformly random permutation of `items` without mutating it."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def build_word_pool(lists: Sequence[WordList]) -> list[SessionWord]:
    """Concatenate words of every available list, in list order, tagged by source."""
    pool: list[SessionWord] = []
    for word_list in lists:
        if not word_list.is_available:
            continue
        for word in word_list.words:
            if not word.text.strip():
                continue
            pool.append(SessionWord(text=word.text.strip(), source_list_id=word_list.id, mastered=word.mastered))
    return pool


def prepare_queue(lists: Sequence[WordList], rng: random.Random) -> tuple[SessionWord, ...]:
    """Build the shuffled session queue or raise NoActiveListError."""
    if not lists:
        raise NoActiveListError(NO_ACTIVE_LIST_MESSAGE)
    pool = build_word_pool(lists)
    if not pool:
        raise NoActiveListError(NO_ACTIVE_LIST_MESSAGE)
    return tuple(fisher_yates_shuffle(pool, rng))


def grade_answer(raw: str, target: str) -> bool:
    """Exact match after trimming whitespace, ignoring case."""
    return raw.strip().lower() == target.strip().lower()


class SpellingSessionController:
    """Owns one spelling test from queue preparation to the result request."""

    def __init__(
        self,
        *,
        speech: SpeechOutput,
        result_sink: ResultSink,
        scheduler: Scheduler,
        settings: Settings,
        view: SessionView | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._speech = speech
        self._result_sink = result_sink
        self._scheduler = scheduler
        self._settings = settings
        self._view = view or NullView()
        self._rng = rng or random.Random(settings.shuffle_seed)
        self._logger = get_logger()

        self._phase = SessionPhase.NOT_STARTED
        self._queue: tuple[SessionWord, ...] = ()
        self._position = 0
        self._score = 0
        self._attempts: list[AttemptRecord] = []
        self._feedback: Feedback | None = None
        self._feedback_pending = False
        self._dwell_handle: ScheduledHandle | None = None
        self._generation = 0
        self._session_id: str | None = None
        self._error: SpellingError | None = None
        self._speech_degraded = False

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def queue(self) -> tuple[SessionWord, ...]:
        return self._queue

    @property
    def position(self) -> int:
        return self._position

    @property
    def score(self) -> int:
        return self._score

    @property
    def attempts(self) -> tuple[AttemptRecord, ...]:
        return tuple(self._attempts)

    @property
    def feedback(self) -> Feedback | None:
        return self._feedback

    @property
    def feedback_pending(self) -> bool:
        return self._feedback_pending

    @property
    def error(self) -> SpellingError | None:
        return self._error

    @property
    def speech_degraded(self) -> bool:
        return self._speech_degraded

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def current_word(self) -> SessionWord | None:
        if self._phase is SessionPhase.NOT_STARTED or not self._queue:
            return None
        return self._queue[self._position]

    def load_active_lists(self, provider: ListProvider) -> bool:
        """Fetch active lists and prepare a queue; failures become `error` state."""
        try:
            lists = provider.get_active_lists()
        except ListLoadError as exc:
            self._reset()
            self._error = ListLoadError(LIST_LOAD_FAILED_MESSAGE)
            self._log_warning("list_load_failed", "failed to fetch active word lists", {"error": str(exc)})
            return False
        return self.load_and_prepare(lists)

    def load_and_prepare(self, lists: Sequence[WordList]) -> bool:
        self._reset()
        try:
            self._queue = prepare_queue(lists, self._rng)
        except NoActiveListError as exc:
            self._error = exc
            self._log_warning("no_active_list", "no active word list", {"list_count": len(lists)})
            return False
        self._error = None
        self._log_info(
            "session_prepared",
            "session queue prepared",
            {"list_count": len(lists), "word_count": len(self._queue)},
        )
        return True

    def start(self) -> None:
        if not self._queue:
            raise InvalidSessionOperation("no prepared word queue; load active lists first")
        if self._phase is SessionPhase.IN_PROGRESS:
            raise InvalidSessionOperation("session already in progress; use restart()")
        if self._phase is SessionPhase.FINISHED:
            self._queue = tuple(fisher_yates_shuffle(self._queue, self._rng))
        self._begin()

    def restart(self) -> None:
        self._cancel_dwell()
        self._stop_speech()
        if self._phase is SessionPhase.NOT_STARTED:
            self.start()
            return
        if not self._queue:
            raise InvalidSessionOperation("no prepared word queue; load active lists first")
        self._queue = tuple(fisher_yates_shuffle(self._queue, self._rng))
        self._begin()

    def teardown(self) -> None:
        """Abandon the session: cancel timers and speech and forget all state."""
        self._cancel_dwell()
        self._stop_speech()
        self._log_info("session_teardown", "session torn down", {"position": self._position})
        self._reset()

    def submit_answer(self, raw: str) -> AttemptRecord | None:
        if self._phase is not SessionPhase.IN_PROGRESS:
            raise InvalidSessionOperation(f"cannot submit an answer while {self._phase.value}")
        if self._feedback_pending:
            return None
        answer = raw.strip()
        if not answer:
            return None

        target = self._queue[self._position]
        correct = grade_answer(answer, target.text)
        record = AttemptRecord(word=target.text, user_answer=answer, correct=correct)
        self._attempts.append(record)
        if correct:
            self._score += 1

        self._feedback = Feedback(kind=FeedbackKind.CORRECT if correct else FeedbackKind.INCORRECT, word=target.text)
        self._feedback_pending = True
        self._view.show_feedback(self._feedback)
        self._say(CORRECT_PROMPT if correct else INCORRECT_PROMPT.format(word=target.text))

        generation = self._generation
        self._dwell_handle = self._scheduler.schedule(
            self._settings.dwell_seconds,
            lambda: self._on_dwell_elapsed(generation),
        )
        self._log_info(
            "answer_graded",
            "answer graded",
            {"position": self._position, "correct": correct, "score": self._score},
        )
        return record

    def replay_current_word(self) -> bool:
        if self._phase is not SessionPhase.IN_PROGRESS:
            raise InvalidSessionOperation(f"cannot replay a word while {self._phase.value}")
        if self._feedback_pending and not self._settings.allow_replay_during_feedback:
            return False
        self._say(self._queue[self._position].text)
        return True

    def report(self) -> SessionReport:
        answered = self._queue[: len(self._attempts)]
        return SessionReport(
            source_list_ids=frozenset(word.source_list_id for word in answered),
            score=self._score,
            total=len(self._queue),
            attempts=tuple(self._attempts),
        )

    def _begin(self) -> None:
        self._generation += 1
        self._session_id = uuid.uuid4().hex
        self._position = 0
        self._score = 0
        self._attempts = []
        self._feedback = None
        self._feedback_pending = False
        self._phase = SessionPhase.IN_PROGRESS
        self._log_info("session_started", "session started", {"word_count": len(self._queue)})
        self._prompt_current_word()

    def _prompt_current_word(self) -> None:
        self._say(self._queue[self._position].text)
        self._view.focus_input()

    def _on_dwell_elapsed(self, generation: int) -> None:
        if generation != self._generation or self._phase is not SessionPhase.IN_PROGRESS:
            return
        self._dwell_handle = None
        self._feedback_pending = False
        self._feedback = None
        self._view.clear_input()
        if self._position < len(self._queue) - 1:
            self._position += 1
            self._prompt_current_word()
        else:
            self._finish()

    def _finish(self) -> None:
        self._phase = SessionPhase.FINISHED
        report = self.report()
        self._log_info(
            "session_finished",
            "session finished",
            {"score": report.score, "total": report.total},
        )
        self._view.show_result(report)

        if self._settings.result_details == "detailed":
            details: Any = [attempt.to_payload() for attempt in report.attempts]
        else:
            details = {}
        session_id = self._session_id
        self._scheduler.submit(lambda: self._deliver_result(report, details, session_id))

    def _deliver_result(self, report: SessionReport, details: Any, session_id: str | None) -> None:
        try:
            self._result_sink.record_result(
                source_list_ids=report.source_list_ids,
                score=report.score,
                total=report.total,
                details=details,
            )
        except PersistenceError as exc:
            self._logger.warning(
                "failed to save test results",
                extra={
                    "event_type": "persistence_failed",
                    "session_id": session_id,
                    "metadata": {"error": str(exc)},
                },
            )
            return
        self._logger.info(
            "test results saved",
            extra={"event_type": "result_saved", "session_id": session_id, "metadata": {"score": report.score}},
        )

    def _say(self, text: str) -> None:
        try:
            self._speech.speak(text)
        except SpeechUnavailableError as exc:
            if not self._speech_degraded:
                self._log_warning("speech_unavailable", "speech unavailable; continuing text-only", {"error": str(exc)})
            self._speech_degraded = True

    def _stop_speech(self) -> None:
        try:
            self._speech.stop()
        except SpeechUnavailableError as exc:
            self._speech_degraded = True
            self._log_warning("speech_unavailable", "speech stop failed", {"error": str(exc)})

    def _cancel_dwell(self) -> None:
        if self._dwell_handle is not None:
            self._dwell_handle.cancel()
            self._dwell_handle = None

    def _reset(self) -> None:
        self._cancel_dwell()
        self._generation += 1
        self._phase = SessionPhase.NOT_STARTED
        self._queue = ()
        self._position = 0
        self._score = 0
        self._attempts = []
        self._feedback = None
        self._feedback_pending = False
        self._session_id = None

    def _log_info(self, event_type: str, message: str, metadata: dict[str, Any]) -> None:
        self._logger.info(message, extra=self._log_extra(event_type, metadata))

    def _log_warning(self, event_type: str, message: str, metadata: dict[str, Any]) -> None:
        self._logger.warning(message, extra=self._log_extra(event_type, metadata))

    def _log_extra(self, event_type: str, metadata: dict[str, Any]) -> dict[str, Any]:
        return {
            "event_type": event_type,
            "phase": self._phase.value,
            "session_id": self._session_id,
            "metadata": metadata,
        }
