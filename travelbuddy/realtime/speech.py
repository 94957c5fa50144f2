"""
Speech Capture Adapter Module

Wraps a platform speech-recognition capability (Web Speech API in the
browser) behind a small interface the session can drive:

- start() / stop() controls
- interim and final transcript notifications
- listening started / stopped notifications
- error notifications with a fixed set of kinds

Recognition is single-utterance (non-continuous) and fixed to Japanese.

Adapters:
- ScriptedSpeechAdapter: deterministic fake for tests and demos
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Protocol

from travelbuddy.logger import get_logger
from travelbuddy.messages import msg

logger = get_logger(__name__)

SPEECH_LANGUAGE = "ja-JP"


class SpeechErrorKind(Enum):
    """Kinds of speech capture failure."""
    NO_SPEECH_DETECTED = auto()
    MICROPHONE_UNAVAILABLE = auto()
    PERMISSION_DENIED = auto()
    OTHER = auto()

    @classmethod
    def from_platform_code(cls, code: str) -> "SpeechErrorKind":
        """Map a Web Speech API error code."""
        return _PLATFORM_CODES.get(code, cls.OTHER)

    def describe(self, code: str = "") -> str:
        """User-facing message for this error."""
        if self is SpeechErrorKind.NO_SPEECH_DETECTED:
            return msg("speech.no_speech")
        if self is SpeechErrorKind.MICROPHONE_UNAVAILABLE:
            return msg("speech.audio_capture")
        if self is SpeechErrorKind.PERMISSION_DENIED:
            return msg("speech.not_allowed")
        return msg("speech.other", code=code or "unknown")


_PLATFORM_CODES = {
    "no-speech": SpeechErrorKind.NO_SPEECH_DETECTED,
    "audio-capture": SpeechErrorKind.MICROPHONE_UNAVAILABLE,
    "not-allowed": SpeechErrorKind.PERMISSION_DENIED,
}


@dataclass
class TranscriptState:
    """Latest recognition result held by an adapter."""
    text: str = ""
    is_final: bool = False


class SpeechListener(Protocol):
    """Receiver of adapter notifications (the session)."""

    async def on_interim(self, text: str) -> None: ...

    async def on_final(self, text: str) -> None: ...

    async def on_error(self, kind: SpeechErrorKind, detail: str) -> None: ...

    async def on_listening_changed(self, listening: bool) -> None: ...


class SpeechCaptureAdapter(ABC):
    """
    Base class for speech capture adapters.

    Owns the TranscriptState; listeners are only ever notified, never given
    the state object.
    """

    language = SPEECH_LANGUAGE
    continuous = False

    def __init__(self):
        self._transcript = TranscriptState()
        self._listener: Optional[SpeechListener] = None
        self._listening = False

    def attach(self, listener: SpeechListener) -> None:
        """Set the receiver of notifications."""
        self._listener = listener

    @abstractmethod
    async def start(self) -> None:
        """Begin capturing one utterance."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop capturing; any interim text is discarded."""
        pass

    def clear_transcript(self) -> None:
        """Forget the current transcript."""
        self._transcript = TranscriptState()

    @property
    def transcript(self) -> TranscriptState:
        """Copy of the current transcript state."""
        return TranscriptState(self._transcript.text, self._transcript.is_final)

    @property
    def is_listening(self) -> bool:
        return self._listening

    # ------------------------------------------------------------------
    # Notification helpers for subclasses
    # ------------------------------------------------------------------

    async def _emit_listening(self, listening: bool) -> None:
        self._listening = listening
        if listening:
            self._transcript = TranscriptState()
        elif not self._transcript.is_final:
            self._transcript = TranscriptState()
        logger.debug(f"Voice recognition {'started' if listening else 'ended'}")
        if self._listener:
            await self._listener.on_listening_changed(listening)

    async def _emit_interim(self, text: str) -> None:
        self._transcript = TranscriptState(text=text, is_final=False)
        if self._listener:
            await self._listener.on_interim(text)

    async def _emit_final(self, text: str) -> None:
        self._transcript = TranscriptState(text=text, is_final=True)
        logger.debug(f"Transcript: {text}")
        if self._listener:
            await self._listener.on_final(text)

    async def _emit_error(self, kind: SpeechErrorKind, detail: str = "") -> None:
        logger.warning(f"Speech recognition error: {kind.name} {detail}".rstrip())
        self._listening = False
        if self._listener:
            await self._listener.on_error(kind, detail)


@dataclass(frozen=True)
class SpeechCapability:
    """
    Whether speech capture exists in this runtime.

    Use ``SpeechCapability.available(adapter)`` or
    ``SpeechCapability.unavailable(reason)``.
    """
    adapter: Optional[SpeechCaptureAdapter] = None
    reason: str = ""

    @classmethod
    def available(cls, adapter: SpeechCaptureAdapter) -> "SpeechCapability":
        return cls(adapter=adapter)

    @classmethod
    def unavailable(cls, reason: str = "") -> "SpeechCapability":
        return cls(adapter=None, reason=reason or msg("speech.unsupported"))

    @property
    def is_available(self) -> bool:
        return self.adapter is not None


# ============================================================================
# Adapters
# ============================================================================

@dataclass
class ScriptedUtterance:
    """
    One scripted recognition run.

    Attributes:
        interims: Interim texts emitted in order
        final: Final text (None for no final result)
        error: Platform error code emitted instead of a final result
    """
    interims: List[str] = field(default_factory=list)
    final: Optional[str] = None
    error: Optional[str] = None


class ScriptedSpeechAdapter(SpeechCaptureAdapter):
    """
    Plays back scripted utterances, one per start().

    Each run emits: listening started, interims, then final or error, then
    listening stopped, matching the Web Speech event order. With
    ``hold_open=True`` the run pauses before ending so tests can call stop()
    mid-listen.

    Usage:
        adapter = ScriptedSpeechAdapter([
            ScriptedUtterance(interims=["今日は"], final="今日はどこに行けばいい？"),
        ])
    """

    def __init__(self, utterances: Optional[List[ScriptedUtterance]] = None, hold_open: bool = False):
        super().__init__()
        self._script: List[ScriptedUtterance] = list(utterances or [])
        self._hold_open = hold_open
        self.start_count = 0

    def queue(self, utterance: ScriptedUtterance) -> None:
        """Append another utterance to the script."""
        self._script.append(utterance)

    async def start(self) -> None:
        self.start_count += 1
        await self._emit_listening(True)

        if not self._script:
            await self._emit_error(SpeechErrorKind.NO_SPEECH_DETECTED, "no-speech")
            await self._emit_listening(False)
            return

        utterance = self._script.pop(0)
        for text in utterance.interims:
            await self._emit_interim(text)

        if self._hold_open:
            return

        await self._finish(utterance)

    async def _finish(self, utterance: ScriptedUtterance) -> None:
        if utterance.error:
            await self._emit_error(SpeechErrorKind.from_platform_code(utterance.error), utterance.error)
        elif utterance.final is not None:
            await self._emit_final(utterance.final)
        await self._emit_listening(False)

    async def stop(self) -> None:
        if self._listening:
            await self._emit_listening(False)

