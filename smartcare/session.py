"""Call session management.

Each active call or chat gets a CallSession that accumulates its transcript
and stream identifiers. The SessionManager owns all in-flight sessions for one
gateway instance; the ProcessedCallRegistry records which session keys have
already been handed to the ticket pipeline.

Neither is persisted: a restart loses in-flight sessions, which is acceptable
for short-lived calls.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger


@dataclass
class CallSession:
    """Represents a single call (or chat) flowing through the gateway."""

    key: str

    # Provider identifiers
    call_sid: str = ""
    stream_sid: str | None = None

    # Caller details from the stream's custom parameters
    caller_phone: str = ""
    direction: str = ""
    custom_parameters: dict[str, str] = field(default_factory=dict)

    # Voice/language selected at call start
    voice: str | None = None
    language: str | None = None

    # Lifecycle flags
    ai_link_open: bool = False
    ticket_created: bool = False
    is_fallback_key: bool = False
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None

    # Relay counters
    frames_in: int = 0
    frames_out: int = 0
    dropped_frames: int = 0
    malformed_frames: int = 0

    metadata: dict[str, Any] = field(default_factory=dict)
    _transcript: list[str] = field(default_factory=list)

    @property
    def transcript(self) -> str:
        """The accumulated transcript, one ``Speaker: utterance`` line per turn."""
        return "".join(self._transcript)

    @property
    def turn_count(self) -> int:
        return len(self._transcript)

    def append_turn(self, speaker: str, text: str) -> None:
        """Append one turn. Turns are never rewritten or reordered."""
        self._transcript.append(f"{speaker}: {text}\n")

    def end(self) -> None:
        self.ended_at = self.ended_at or time.time()

    @property
    def duration_ms(self) -> int:
        end = self.ended_at or time.time()
        return int((end - self.started_at) * 1000)


class SessionManager:
    """Keyed store of in-flight sessions.

    Each session is only mutated by the bridge (or chat handler) that owns it,
    so no cross-session locking is needed. All operations are synchronous and
    therefore atomic with respect to the event loop.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}
        self._counter = itertools.count(1)

    def new_fallback_key(self) -> str:
        """Generate a key for a stream that did not identify its call.

        Fallback keys are unique within this process only and can never be
        matched by the call-status webhook.
        """
        key = f"session_{int(time.time() * 1000)}_{next(self._counter)}"
        logger.warning(f"No provider call id available, using fallback session key {key}")
        return key

    def get_or_create(self, key: str, **attrs: Any) -> CallSession:
        """Return the session for ``key``, creating it with ``attrs`` if absent."""
        session = self._sessions.get(key)
        if session is None:
            session = CallSession(key=key, **attrs)
            self._sessions[key] = session
            logger.info(f"Session created: {key}")
        return session

    def get(self, key: str) -> CallSession | None:
        return self._sessions.get(key)

    def update(self, key: str, mutator: Callable[[CallSession], Any]) -> CallSession | None:
        """Apply ``mutator`` to the session for ``key``. Returns None if absent."""
        session = self._sessions.get(key)
        if session is None:
            return None
        mutator(session)
        return session

    def remove(self, key: str) -> CallSession | None:
        """Remove a session from the store."""
        session = self._sessions.pop(key, None)
        if session:
            session.end()
            logger.info(f"Session removed: {key} (duration: {session.duration_ms}ms)")
        return session

    def clear(self) -> int:
        """Drop all sessions. Returns count removed."""
        count = len(self._sessions)
        for key in list(self._sessions):
            self.remove(key)
        return count

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def all_sessions(self) -> list[CallSession]:
        return list(self._sessions.values())


@dataclass
class ProcessedCall:
    """Dedup record for one session key."""

    key: str
    claimed_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    # PipelineOutcome of the winning invocation, once it finished
    outcome: Any = None

    @property
    def done(self) -> bool:
        return self.completed_at is not None


class ProcessedCallRegistry:
    """Records which session keys have been handed to the ticket pipeline.

    ``claim`` is a single check-and-set: the first caller for a key wins and
    every later caller gets the winner's record back.
    """

    def __init__(self) -> None:
        self._records: dict[str, ProcessedCall] = {}

    def claim(self, key: str) -> tuple[bool, ProcessedCall]:
        """Claim ``key`` for processing.

        Returns:
            (won, record): ``won`` is True only for the first caller.
        """
        record = ProcessedCall(key=key)
        existing = self._records.setdefault(key, record)
        return existing is record, existing

    def complete(self, key: str, outcome: Any) -> None:
        record = self._records.get(key)
        if record is None:
            return
        record.outcome = outcome
        record.completed_at = time.time()

    def release(self, key: str) -> None:
        """Forget a claim that was abandoned before any work started."""
        self._records.pop(key, None)

    def get(self, key: str) -> ProcessedCall | None:
        return self._records.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)
