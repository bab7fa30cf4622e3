"""Spelling practice entry point and terminal session runner."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from audio.tts import Pyttsx3Speech, SilentSpeech, SpeechOutput, create_speech_output
from infra.backend import SupabaseRestClient
from infra.config import Settings, load_dotenv, load_settings
from infra.errors import SpeechUnavailableError
from infra.logging import get_logger
from infra.scheduler import AsyncioScheduler, Scheduler
from results.sink import ResultSink, SupabaseResultSink
from state.session import Feedback, FeedbackKind, SessionPhase, SessionReport, SpellingSessionController
from wordlists.provider import ListProvider, RetryingListProvider, SupabaseListProvider

HELP_TEXT = "Type each word you hear and press Enter. :r repeats the word, :v changes the voice, :q quits."


@dataclass
class Collaborators:
    """Backend-facing collaborators for one run."""

    provider: ListProvider
    result_sink: ResultSink


def run_startup_health_checks(env: dict[str, str] | None = None) -> tuple[bool, dict[str, bool]]:
    """Run lightweight startup checks for configuration, logging and backend settings."""
    checks = {"config_loadable": False, "logger_writable": False, "backend_configured": False}
    try:
        if env is None:
            load_dotenv()
        settings = load_settings(env)
        checks["config_loadable"] = True
        checks["backend_configured"] = settings.backend_configured
        logger = get_logger(primary_path=settings.log_path)
        logger.info("startup health checks completed", extra={"event_type": "health_check", "metadata": checks})
        checks["logger_writable"] = True
    except (ValueError, OSError):
        return False, checks
    return all(checks.values()), checks


def build_collaborators(settings: Settings) -> Collaborators:
    client = SupabaseRestClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout_s=settings.backend_timeout_seconds,
    )
    return Collaborators(
        provider=RetryingListProvider(
            SupabaseListProvider(client),
            max_attempts=settings.list_load_max_attempts,
        ),
        result_sink=SupabaseResultSink(client),
    )


class TerminalView:
    """Session view that renders feedback and results as terminal lines."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self._write = write
        self._ready = asyncio.Event()

    def focus_input(self) -> None:
        self._ready.set()

    def clear_input(self) -> None:
        return None

    def show_feedback(self, feedback: Feedback) -> None:
        self._ready.clear()
        if feedback.kind is FeedbackKind.CORRECT:
            self._write("Correct!")
        else:
            self._write(f"Incorrect. The word was: {feedback.word}")

    def show_result(self, report: SessionReport) -> None:
        self._write("Test Complete!")
        self._write(f"You scored {report.score} out of {report.total} ({report.percentage}%)")
        self._ready.set()

    async def wait_until_ready(self) -> None:
        await self._ready.wait()


def open_speech(settings: Settings, scheduler: Scheduler, write: Callable[[str], None]) -> SpeechOutput:
    try:
        return create_speech_output(settings, scheduler)
    except SpeechUnavailableError as exc:
        get_logger().warning(
            "speech unavailable at startup",
            extra={"event_type": "speech_unavailable", "metadata": {"error": str(exc)}},
        )
        write("Speech is unavailable; continuing without audio.")
        return SilentSpeech()


async def run_spelling_session(
    settings: Settings,
    provider: ListProvider,
    result_sink: ResultSink,
    *,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
    speech: SpeechOutput | None = None,
) -> int:
    """Run practice sessions in the terminal until the learner stops."""
    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    if speech is None:
        speech = open_speech(settings, scheduler, write)
    view = TerminalView(write)
    controller = SpellingSessionController(
        speech=speech,
        result_sink=result_sink,
        scheduler=scheduler,
        settings=settings,
        view=view,
    )

    if not controller.load_active_lists(provider):
        write(f"Error: {controller.error}")
        return 1

    write(f"Spelling test: {len(controller.queue)} words. {HELP_TEXT}")
    try:
        controller.start()
        while await _play_session(controller, view, speech, read_line, write):
            again = await _read(read_line, "Try again? [y/N] ")
            if again.strip().lower() not in {"y", "yes"}:
                break
            controller.restart()
    finally:
        controller.teardown()
        if isinstance(speech, Pyttsx3Speech):
            speech.close()
    return 0


async def _play_session(
    controller: SpellingSessionController,
    view: TerminalView,
    speech: SpeechOutput,
    read_line: Callable[[str], str],
    write: Callable[[str], None],
) -> bool:
    """Drive one session; return False if the learner quit early."""
    while controller.phase is SessionPhase.IN_PROGRESS:
        await view.wait_until_ready()
        if controller.phase is not SessionPhase.IN_PROGRESS:
            break
        raw = await _read(read_line, f"Word {controller.position + 1} of {len(controller.queue)}: ")
        command = raw.strip().lower()
        if command == ":q":
            return False
        if command == ":r":
            controller.replay_current_word()
        elif command == ":v":
            speech.cycle_voice()
            write(f"Voice: {speech.current_voice or 'default'}")
            controller.replay_current_word()
        else:
            controller.submit_answer(raw)
    return True


async def _read(read_line: Callable[[str], str], prompt: str) -> str:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, read_line, prompt)
    except EOFError:
        return ":q"


def main() -> int:
    ok, checks = run_startup_health_checks()
    logger = get_logger()
    if not ok:
        logger.error("startup health checks failed", extra={"event_type": "health_check", "metadata": checks})
        return 1

    settings = load_settings()
    collaborators = build_collaborators(settings)
    logger.info("spelling practice initialized", extra={"event_type": "startup", "metadata": checks})
    return asyncio.run(run_spelling_session(settings, collaborators.provider, collaborators.result_sink))


if __name__ == "__main__":
    raise SystemExit(main())
