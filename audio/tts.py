"""Speech output contracts, pyttsx3 adapter and a silent fallback."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import pyttsx3

from infra.config import Settings
from infra.errors import SpeechUnavailableError
from infra.logging import get_logger
from infra.scheduler import ScheduledHandle, Scheduler

PREFERRED_VOICE_NAMES = ("Google US English", "Zira", "Samantha", "Female")
PUMP_INTERVAL_S = 0.05


@dataclass(frozen=True)
class SpeechOptions:
    """Utterance tuning; the defaults are slower than conversational speech."""

    rate: float = 0.8
    pitch: float = 1.1
    volume: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpeechOptions":
        return cls(rate=settings.speech_rate, pitch=settings.speech_pitch, volume=settings.speech_volume)


class SpeechOutput(Protocol):
    """Text-to-speech protocol. Speaking cancels any utterance still in flight."""

    @property
    def current_voice(self) -> str | None: ...

    def speak(self, text: str, options: SpeechOptions | None = None) -> None: ...

    def stop(self) -> None: ...

    def cycle_voice(self) -> None: ...


class SpeechEngine(Protocol):
    """Subset of the pyttsx3 engine API used by the adapter."""

    def connect(self, topic: str, cb: Callable[..., Any]) -> object: ...

    def say(self, text: str, name: str | None = None) -> None: ...

    def stop(self) -> None: ...

    def getProperty(self, name: str) -> Any: ...

    def setProperty(self, name: str, value: Any) -> None: ...

    def startLoop(self, useDriverLoop: bool = True) -> None: ...

    def endLoop(self) -> None: ...

    def iterate(self) -> None: ...


@dataclass
class SilentSpeech:
    """Text-only adapter used when no speech engine is available."""

    spoken: list[str] = field(default_factory=list)

    @property
    def current_voice(self) -> str | None:
        return None

    def speak(self, text: str, options: SpeechOptions | None = None) -> None:
        self.spoken.append(text)

    def stop(self) -> None:
        return None

    def cycle_voice(self) -> None:
        return None


class Pyttsx3Speech:
    """pyttsx3 engine driven in external-loop mode by the session scheduler."""

    def __init__(
        self,
        engine: SpeechEngine,
        scheduler: Scheduler,
        default_options: SpeechOptions | None = None,
    ) -> None:
        self._engine = engine
        self._scheduler = scheduler
        self._default_options = default_options or SpeechOptions()
        self._base_rate = int(engine.getProperty("rate") or 200)
        self._voices = english_voices(engine.getProperty("voices") or [])
        self._voice = select_default_voice(self._voices)
        self._utterance_seq = 0
        self._current: str | None = None
        self._is_speaking = False
        self._loop_started = False
        self._pump_handle: ScheduledHandle | None = None

        engine.connect("started-utterance", self._on_started)
        engine.connect("finished-utterance", self._on_finished)
        engine.connect("error", self._on_error)
        if self._voice is not None:
            engine.setProperty("voice", self._voice.id)

    @property
    def current_voice(self) -> str | None:
        return self._voice.name if self._voice is not None else None

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def speak(self, text: str, options: SpeechOptions | None = None) -> None:
        opts = options or self._default_options
        self._utterance_seq += 1
        name = f"utterance-{self._utterance_seq}"
        try:
            self._engine.stop()
            self._current = name
            self._is_speaking = False
            self._engine.setProperty("rate", max(1, int(self._base_rate * opts.rate)))
            self._engine.setProperty("volume", opts.volume)
            # pyttsx3 exposes no portable pitch property; opts.pitch is not applied.
            self._engine.say(text, name)
            if not self._loop_started:
                self._engine.startLoop(False)
                self._loop_started = True
        except (RuntimeError, OSError) as exc:
            self._current = None
            raise SpeechUnavailableError(f"speech engine failed: {exc}") from exc
        self._ensure_pump()

    def stop(self) -> None:
        self._current = None
        self._is_speaking = False
        try:
            self._engine.stop()
        except (RuntimeError, OSError) as exc:
            raise SpeechUnavailableError(f"speech engine failed to stop: {exc}") from exc

    def cycle_voice(self) -> None:
        if not self._voices:
            return
        index = self._voices.index(self._voice) if self._voice in self._voices else -1
        self._voice = self._voices[(index + 1) % len(self._voices)]
        self._engine.setProperty("voice", self._voice.id)

    def close(self) -> None:
        if self._pump_handle is not None:
            self._pump_handle.cancel()
            self._pump_handle = None
        self._current = None
        if self._loop_started:
            self._engine.endLoop()
            self._loop_started = False

    def _ensure_pump(self) -> None:
        if self._pump_handle is None:
            self._pump_handle = self._scheduler.schedule(PUMP_INTERVAL_S, self._pump)

    def _pump(self) -> None:
        self._pump_handle = None
        if not self._loop_started:
            return
        self._engine.iterate()
        if self._current is not None:
            self._ensure_pump()

    def _on_started(self, name: str) -> None:
        if name == self._current:
            self._is_speaking = True

    def _on_finished(self, name: str, completed: bool) -> None:
        if name != self._current:
            return
        self._is_speaking = False
        self._current = None

    def _on_error(self, name: str, exception: Exception) -> None:
        if name != self._current:
            return
        self._is_speaking = False
        self._current = None
        get_logger().warning(
            "utterance failed",
            extra={"event_type": "speech_error", "metadata": {"error": str(exception)}},
        )


def create_speech_output(settings: Settings, scheduler: Scheduler) -> Pyttsx3Speech:
    """Initialise the platform speech engine or raise SpeechUnavailableError."""
    try:
        engine = pyttsx3.init()
    except (ImportError, OSError, RuntimeError) as exc:
        raise SpeechUnavailableError(f"speech engine unavailable: {exc}") from exc
    return Pyttsx3Speech(engine=engine, scheduler=scheduler, default_options=SpeechOptions.from_settings(settings))


def english_voices(voices: list[Any]) -> list[Any]:
    """Keep voices whose language or identifier marks them as English."""
    return [voice for voice in voices if _is_english(voice)]


def select_default_voice(voices: list[Any]) -> Any | None:
    """Prefer well-known natural voices, then any English voice."""
    for fragment in PREFERRED_VOICE_NAMES:
        for voice in voices:
            if fragment in (getattr(voice, "name", "") or ""):
                return voice
    return voices[0] if voices else None


def _is_english(voice: Any) -> bool:
    for language in getattr(voice, "languages", None) or []:
        if isinstance(language, bytes):
            language = language.decode("utf-8", errors="ignore")
        # espeak prefixes language codes with a priority byte.
        if str(language).strip("\x00\x01\x02\x03\x04\x05 ").lower().startswith("en"):
            return True
    identifier = f"{getattr(voice, 'id', '')} {getattr(voice, 'name', '')}".lower()
    return "english" in identifier or "en_" in identifier or "en-" in identifier
