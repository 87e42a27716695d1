"""Session state machine for the upload -> generate -> select -> refine flow.

Every session is an immutable :class:`SessionSnapshot` replaced wholesale by
:func:`reduce`. The reducer is pure; when a transition needs the generation
service it returns a command alongside the new snapshot and
:class:`StudioSession` runs it as a background task.

Each started operation gets a fresh ``operation_token``. A completion is only
applied while the session is still PROCESSING that same token, so a slow
request from an abandoned operation can never overwrite newer state.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .. import messages
from ..config import get_settings
from ..prompts import VARIATIONS_PROMPT
from ..schemas import GeneratedImage, GenerationMode, SessionState, SourceImage
from ..service import GenerationError, ProductStudioService
from ..utils import build_download_filename, is_image_mime

logger = logging.getLogger(__name__)


class SessionError(Exception):
    pass


class InvalidTransitionError(SessionError):
    """The event is not accepted in the session's current state."""

    def __init__(self, state: SessionState, event: object) -> None:
        super().__init__(f"{type(event).__name__} is not allowed while {state.value}")
        self.state = state
        self.event = event


class SessionNotFoundError(SessionError, KeyError):
    pass


# ----------------------------------------------------------------------
# Snapshot
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState = SessionState.IDLE
    mode: GenerationMode = GenerationMode.STUDIO
    source: Optional[SourceImage] = None
    batch: Tuple[GeneratedImage, ...] = ()
    selected_index: Optional[int] = None
    error: Optional[str] = None
    inline_error: Optional[str] = None
    processing_message: Optional[str] = None
    operation_token: int = 0

    @property
    def selected_image(self) -> Optional[GeneratedImage]:
        if self.selected_index is None:
            return None
        return self.batch[self.selected_index]


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class FileSelected:
    filename: str
    mime_type: Optional[str]
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class FileRejected:
    """An upload failed validation before its type could be considered."""

    message: str


@dataclass(frozen=True)
class ModeChanged:
    mode: GenerationMode


@dataclass(frozen=True)
class GenerationSucceeded:
    token: int
    images: Tuple[GeneratedImage, ...] = field(repr=False)


@dataclass(frozen=True)
class GenerationFailed:
    token: int
    message: str


@dataclass(frozen=True)
class ImageSelected:
    index: int


@dataclass(frozen=True)
class RefinementSubmitted:
    prompt: str


@dataclass(frozen=True)
class VariationsRequested:
    pass


@dataclass(frozen=True)
class BackToGrid:
    pass


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class StartOver:
    pass


Event = Union[
    FileSelected,
    FileRejected,
    ModeChanged,
    GenerationSucceeded,
    GenerationFailed,
    ImageSelected,
    RefinementSubmitted,
    VariationsRequested,
    BackToGrid,
    RetryRequested,
    StartOver,
]


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class GenerateCommand:
    token: int
    source: SourceImage = field(repr=False)
    mode: GenerationMode


@dataclass(frozen=True)
class RefineCommand:
    token: int
    image: GeneratedImage = field(repr=False)
    instruction: str


Command = Union[GenerateCommand, RefineCommand]


@dataclass(frozen=True)
class DownloadFile:
    filename: str
    mime_type: str
    data: bytes = field(repr=False)


# ----------------------------------------------------------------------
# Reducer
# ----------------------------------------------------------------------
def reduce(snapshot: SessionSnapshot, event: Event) -> Tuple[SessionSnapshot, Optional[Command]]:
    """Apply ``event`` to ``snapshot``.

    Returns the next snapshot and, when the transition starts an operation,
    the command the caller must execute. Raises :class:`InvalidTransitionError`
    for events the current state does not accept and ``ValueError`` for
    malformed input (blank prompt, selection outside the grid).
    """
    state = snapshot.state

    if isinstance(event, StartOver):
        # Reachable from anywhere; the token is kept so late completions stay stale.
        return SessionSnapshot(mode=snapshot.mode, operation_token=snapshot.operation_token), None

    if isinstance(event, (GenerationSucceeded, GenerationFailed)):
        if state is not SessionState.PROCESSING or event.token != snapshot.operation_token:
            logger.warning(
                "Discarding stale completion for operation %s (current %s, state %s)",
                event.token,
                snapshot.operation_token,
                state.value,
            )
            return snapshot, None
        if isinstance(event, GenerationSucceeded):
            return replace(
                snapshot,
                state=SessionState.SUCCESS,
                batch=tuple(event.images),
                selected_index=None,
                processing_message=None,
            ), None
        return replace(
            snapshot,
            state=SessionState.ERROR,
            batch=(),
            selected_index=None,
            error=event.message,
            processing_message=None,
        ), None

    if state is SessionState.IDLE:
        if isinstance(event, ModeChanged):
            return replace(snapshot, mode=event.mode), None
        if isinstance(event, FileRejected):
            return replace(snapshot, inline_error=event.message), None
        if isinstance(event, FileSelected):
            if not is_image_mime(event.mime_type):
                return replace(snapshot, inline_error=messages.INVALID_FILE), None
            source = SourceImage(filename=event.filename, mime_type=event.mime_type, data=event.data)
            return _start_generation(replace(snapshot, source=source))

    elif state is SessionState.SUCCESS:
        if isinstance(event, ImageSelected):
            if not 0 <= event.index < len(snapshot.batch):
                raise ValueError(f"image index {event.index} is outside the current grid")
            return replace(snapshot, state=SessionState.EDITING, selected_index=event.index), None

    elif state is SessionState.EDITING:
        if isinstance(event, RefinementSubmitted):
            if not event.prompt.strip():
                raise ValueError("refinement prompt must not be blank")
            return _start_refinement(snapshot, event.prompt.strip())
        if isinstance(event, VariationsRequested):
            return _start_refinement(snapshot, VARIATIONS_PROMPT)
        if isinstance(event, BackToGrid):
            return replace(snapshot, state=SessionState.SUCCESS, selected_index=None), None

    elif state is SessionState.ERROR:
        if isinstance(event, RetryRequested) and snapshot.source is not None:
            return _start_generation(snapshot)

    raise InvalidTransitionError(state, event)


def _start_generation(snapshot: SessionSnapshot) -> Tuple[SessionSnapshot, Command]:
    token = snapshot.operation_token + 1
    next_snapshot = replace(
        snapshot,
        state=SessionState.PROCESSING,
        batch=(),
        selected_index=None,
        error=None,
        inline_error=None,
        processing_message=messages.processing_message_for(snapshot.mode),
        operation_token=token,
    )
    return next_snapshot, GenerateCommand(token=token, source=snapshot.source, mode=snapshot.mode)


def _start_refinement(snapshot: SessionSnapshot, instruction: str) -> Tuple[SessionSnapshot, Command]:
    token = snapshot.operation_token + 1
    image = snapshot.selected_image
    next_snapshot = replace(
        snapshot,
        state=SessionState.PROCESSING,
        selected_index=None,
        error=None,
        inline_error=None,
        processing_message=messages.PROCESSING_REFINEMENT,
        operation_token=token,
    )
    return next_snapshot, RefineCommand(token=token, image=image, instruction=instruction)


def download_for(snapshot: SessionSnapshot) -> DownloadFile:
    """Return the image currently displayed in the editing view."""
    image = snapshot.selected_image
    if snapshot.state is not SessionState.EDITING or image is None:
        raise InvalidTransitionError(snapshot.state, "download")
    filename = build_download_filename(snapshot.source.filename if snapshot.source else None, snapshot.mode)
    return DownloadFile(filename=filename, mime_type=image.mime_type, data=image.data)


# ----------------------------------------------------------------------
# Session controller
# ----------------------------------------------------------------------
class StudioSession:
    """Owns one snapshot and executes the commands the reducer emits."""

    def __init__(self, session_id: str, service: ProductStudioService) -> None:
        self.session_id = session_id
        self._service = service
        self._snapshot = SessionSnapshot()
        self._tasks: Set[asyncio.Task] = set()
        self._waiters: List[asyncio.Future] = []

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def dispatch(self, event: Event) -> SessionSnapshot:
        previous = self._snapshot.state
        snapshot, command = reduce(self._snapshot, event)
        self._snapshot = snapshot
        if snapshot.state is not previous:
            logger.debug(
                "Session %s: %s -> %s on %s", self.session_id, previous.value, snapshot.state.value, type(event).__name__
            )
        if command is not None:
            self._launch(command)
        if snapshot.state is not SessionState.PROCESSING:
            self._wake_waiters()
        return snapshot

    def download(self) -> DownloadFile:
        return download_for(self._snapshot)

    async def settled(self) -> SessionSnapshot:
        """Wait until the session is no longer PROCESSING.

        Any transition out of PROCESSING releases the waiters, including
        start over, so an abandoned request never holds them.
        """
        if self._snapshot.state is SessionState.PROCESSING:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            await waiter
        return self._snapshot

    def _wake_waiters(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _launch(self, command: Command) -> None:
        task = asyncio.get_running_loop().create_task(self._run(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, command: Command) -> None:
        try:
            if isinstance(command, GenerateCommand):
                images = await self._service.generate_from_source(command.source, command.mode)
            else:
                images = await self._service.refine(command.image, command.instruction)
        except GenerationError as exc:
            self.dispatch(GenerationFailed(token=command.token, message=exc.user_message))
        except Exception:
            logger.exception("Unexpected failure in session %s operation %s", self.session_id, command.token)
            message = messages.GENERATION_FAILED if isinstance(command, GenerateCommand) else messages.REFINEMENT_FAILED
            self.dispatch(GenerationFailed(token=command.token, message=message))
        else:
            self.dispatch(GenerationSucceeded(token=command.token, images=tuple(images)))


# ----------------------------------------------------------------------
# In-memory store
# ----------------------------------------------------------------------
class SessionStore:
    """Keeps live sessions in process memory. Nothing is persisted.

    Sessions unused for longer than ``ttl_seconds`` are dropped the next time
    the store is touched. A session that is still PROCESSING is kept.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, StudioSession] = {}
        self._last_used: Dict[str, float] = {}
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def create(self, service: ProductStudioService) -> StudioSession:
        session_id = secrets.token_urlsafe(16)
        session = StudioSession(session_id, service)
        with self._lock:
            now = self._clock()
            self._expire(now)
            self._sessions[session_id] = session
            self._last_used[session_id] = now
        logger.info("Created session %s", session_id)
        return session

    def get(self, session_id: str) -> StudioSession:
        with self._lock:
            now = self._clock()
            self._expire(now)
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_used[session_id] = now
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._last_used.pop(session_id, None)
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expire(self, now: float) -> None:
        # Caller holds the lock.
        if self._ttl_seconds is None:
            return
        cutoff = now - self._ttl_seconds
        expired = [
            session_id
            for session_id, last_used in self._last_used.items()
            if last_used < cutoff and self._sessions[session_id].snapshot.state is not SessionState.PROCESSING
        ]
        for session_id in expired:
            del self._sessions[session_id]
            del self._last_used[session_id]
        if expired:
            logger.info("Expired %d idle sessions", len(expired))


_STORE: Optional[SessionStore] = None
_STORE_LOCK = threading.Lock()


def get_session_store() -> SessionStore:
    """Return the process-wide SessionStore, creating it on first use."""
    global _STORE
    if _STORE is not None:
        return _STORE
    with _STORE_LOCK:
        if _STORE is None:
            _STORE = SessionStore(ttl_seconds=get_settings().session_ttl_seconds)
    return _STORE
