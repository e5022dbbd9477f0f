"""Playback session state machine for the stream player.

A session walks an ordered list of sources: each source is attached (direct or
through an adaptive engine), becomes ready, or fails and hands over to the next
one. When the last source fails the session is exhausted. The controller also
owns the presentation state (fullscreen strategy and auto-hiding controls).
"""

import enum
import logging
import time
from typing import Callable, Iterable, List, Optional

from attachment import (
    AdaptiveEngineSource,
    DirectSource,
    MediaElement,
    SourceAttachment,
)
from capabilities import HostCapabilities
from scheduling import Scheduler, TaskSlot
from sources import (
    DEFAULT_ADAPTIVE_SUFFIXES,
    Source,
    SourceLike,
    build_source_list,
    is_adaptive_manifest,
)

LOG = logging.getLogger(__name__)

DEFAULT_CONTROLS_HIDE_DELAY_MS = 2000


class PlaybackError(RuntimeError):
    """Base error for the playback controller."""


class NoSourcesError(PlaybackError, ValueError):
    """Raised when ``open()`` is given nothing playable."""


class PlaybackState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EXHAUSTED = "exhausted"


class FullscreenMode(enum.Enum):
    NONE = "none"
    NATIVE = "native"
    EMULATED = "emulated"


class PlaybackSession:
    def __init__(self, sources: List[Source], title: str) -> None:
        self.sources = sources
        self.title = title
        self.index = 0
        self.generation = 0
        self.attachment: Optional[SourceAttachment] = None
        self.closed = False

    @property
    def current(self) -> Source:
        return self.sources[self.index]

    def has_next(self) -> bool:
        return self.index + 1 < len(self.sources)


class StreamPlaybackController:
    def __init__(
        self,
        element: MediaElement,
        capabilities: HostCapabilities,
        scheduler: Scheduler,
        *,
        controls_hide_delay_ms: int = DEFAULT_CONTROLS_HIDE_DELAY_MS,
        adaptive_suffixes: Iterable[str] = DEFAULT_ADAPTIVE_SUFFIXES,
        muted: bool = False,
        on_change: Optional[Callable[["StreamPlaybackController"], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._element = element
        self._capabilities = capabilities
        self._hide_task = TaskSlot(scheduler)
        self._hide_delay_ms = max(0, int(controls_hide_delay_ms))
        self._adaptive_suffixes = tuple(adaptive_suffixes)
        self._on_change = on_change
        self._on_closed = on_closed
        self._clock = clock
        self._session: Optional[PlaybackSession] = None
        self._last_sources: List[Source] = []
        self._last_title = ""

        self.state = PlaybackState.IDLE
        self.is_loading = False
        self.is_playing = False
        self.is_muted = bool(muted)
        self.fullscreen_mode = FullscreenMode.NONE
        self.controls_visible = True
        self.last_activity: Optional[float] = None

    # ------------------------------------------------------------ observables
    @property
    def exhausted(self) -> bool:
        return self.state is PlaybackState.EXHAUSTED

    @property
    def is_fullscreen(self) -> bool:
        return self.fullscreen_mode is not FullscreenMode.NONE

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    def source_index(self) -> int:
        return self._session.index if self._session else 0

    @property
    def sources(self) -> List[Source]:
        return list(self._session.sources) if self._session else []

    @property
    def current_source(self) -> Optional[Source]:
        if self._session is None:
            return None
        return self._session.current

    @property
    def title(self) -> str:
        return self._session.title if self._session else ""

    # ---------------------------------------------------------------- session
    def open(
        self,
        primary_address: str,
        title: str,
        alternate_sources: Optional[Iterable[SourceLike]] = None,
    ) -> None:
        """Start a new session at the first source, closing any previous one."""
        sources = build_source_list(primary_address, alternate_sources)
        if not sources:
            raise NoSourcesError("No stream URL provided.")
        if self._session is not None:
            # Replacing a session keeps the host view open.
            self._teardown(notify=False)

        self._session = PlaybackSession(sources, title or "Live Stream")
        self._last_sources = list(sources)
        self._last_title = self._session.title
        self.controls_visible = True
        LOG.info("Opening %s with %d source(s)", self._session.title, len(sources))
        try:
            self._element.set_muted(self.is_muted)
        except Exception as err:
            LOG.debug("Could not apply mute state: %s", err)
        self._attach_current()

    def retry(self) -> None:
        """Reopen the last session from its first source."""
        if not self._last_sources:
            return
        primary, *alternates = self._last_sources
        self.open(primary.address, self._last_title, alternates)

    def close(self) -> None:
        if self._session is None:
            return
        self._teardown(notify=True)

    # ------------------------------------------------------- source handling
    def _attach_current(self) -> None:
        session = self._session
        if session is None or session.closed:
            return
        self._release_attachment(session)
        if session.index > 0:
            # Drop the failed source's media before the next one arrives.
            self._clear_element()
        session.generation += 1
        generation = session.generation
        source = session.current

        def _ready() -> None:
            self._handle_ready(session, generation)

        def _error(reason: str = "") -> None:
            self._handle_error(session, generation, reason)

        if is_adaptive_manifest(source.address, self._adaptive_suffixes) and self._capabilities.adaptive_engine_available():
            attachment: SourceAttachment = AdaptiveEngineSource(
                self._capabilities.create_adaptive_engine, _ready, _error
            )
        else:
            attachment = DirectSource(_ready, _error)
        session.attachment = attachment
        self.state = PlaybackState.LOADING
        self.is_loading = True
        self.is_playing = False
        LOG.info(
            "Attaching source %d/%d (%s, %s): %s",
            session.index + 1,
            len(session.sources),
            source.label,
            attachment.kind,
            source.address,
        )
        self._notify()
        try:
            attachment.attach(self._element, source.address)
        except Exception as err:
            self._handle_error(session, generation, str(err) or err.__class__.__name__)

    def _is_stale(self, session: PlaybackSession, generation: int) -> bool:
        return session.closed or session is not self._session or generation != session.generation

    def _handle_ready(self, session: PlaybackSession, generation: int) -> None:
        if self._is_stale(session, generation):
            LOG.debug("Ignoring ready signal from a released source")
            return
        if self.state is PlaybackState.READY:
            return
        self.state = PlaybackState.READY
        self.is_loading = False
        try:
            self._element.play()
        except Exception as err:
            self._handle_error(session, generation, f"play failed: {err}")
            return
        self.is_playing = True
        LOG.info("Source %d ready: %s", session.index + 1, session.current.address)
        self._notify()

    def _handle_error(self, session: PlaybackSession, generation: int, reason: str = "") -> None:
        if self._is_stale(session, generation):
            LOG.debug("Ignoring error from a released source: %s", reason)
            return
        failed = session.current
        LOG.warning(
            "Source %d/%d failed (%s): %s",
            session.index + 1,
            len(session.sources),
            reason or "playback error",
            failed.address,
        )
        if session.has_next():
            session.index += 1
            self._attach_current()
            return
        self._release_attachment(session)
        self._clear_element()
        session.generation += 1
        self.state = PlaybackState.EXHAUSTED
        self.is_loading = False
        self.is_playing = False
        LOG.warning("All %d source(s) failed for %s", len(session.sources), session.title)
        self._notify()

    @staticmethod
    def _release_attachment(session: PlaybackSession) -> None:
        attachment, session.attachment = session.attachment, None
        if attachment is None:
            return
        try:
            attachment.release()
        except Exception as err:
            LOG.debug("Releasing %s attachment failed: %s", attachment.kind, err)

    def _clear_element(self) -> None:
        try:
            self._element.clear()
        except Exception as err:
            LOG.debug("Clearing media element failed: %s", err)

    # --------------------------------------------------------------- toggles
    def toggle_play(self) -> None:
        session = self._session
        if session is None or session.closed or session.attachment is None:
            return
        # Nothing to resume until the current source is ready.
        if self.state is PlaybackState.LOADING:
            return
        if self.is_playing:
            self._element.pause()
            self.is_playing = False
        else:
            self._element.play()
            self.is_playing = True
        self._notify()

    def toggle_mute(self) -> None:
        self.is_muted = not self.is_muted
        self._element.set_muted(self.is_muted)
        self._notify()

    def toggle_fullscreen(self) -> None:
        if not self.is_open:
            return
        if self.is_fullscreen:
            self._exit_fullscreen()
        else:
            self._enter_fullscreen()
        self._notify()

    def _enter_fullscreen(self) -> None:
        caps = self._capabilities
        if caps.is_embedded() or caps.is_touch_device():
            self.fullscreen_mode = FullscreenMode.EMULATED
        elif not caps.native_fullscreen_supported():
            self.fullscreen_mode = FullscreenMode.EMULATED
        else:
            try:
                granted = bool(self._element.request_native_fullscreen())
            except Exception as err:
                LOG.info("Native fullscreen request failed (%s); using overlay", err)
                granted = False
            self.fullscreen_mode = FullscreenMode.NATIVE if granted else FullscreenMode.EMULATED
        LOG.debug("Entered %s fullscreen", self.fullscreen_mode.value)
        self.controls_visible = True
        self._arm_hide_timer()

    def _exit_fullscreen(self) -> None:
        if self.fullscreen_mode is FullscreenMode.NATIVE:
            try:
                self._element.exit_native_fullscreen()
            except Exception as err:
                LOG.debug("Native fullscreen exit failed: %s", err)
        self.fullscreen_mode = FullscreenMode.NONE
        self.controls_visible = True
        self._hide_task.cancel()

    def notify_native_fullscreen_exited(self) -> None:
        """The platform left native fullscreen on its own (window manager, Escape)."""
        if self.fullscreen_mode is not FullscreenMode.NATIVE:
            return
        self.fullscreen_mode = FullscreenMode.NONE
        self.controls_visible = True
        self._hide_task.cancel()
        self._notify()

    # ---------------------------------------------------- controls visibility
    def on_activity(self) -> None:
        if not self.is_open:
            return
        self.last_activity = self._clock()
        changed = not self.controls_visible
        self.controls_visible = True
        self._arm_hide_timer()
        if changed:
            self._notify()

    def on_pointer_leave(self) -> None:
        if not self.is_open or not self.is_fullscreen:
            return
        self._hide_task.cancel()
        self._hide_controls()

    def _arm_hide_timer(self) -> None:
        self._hide_task.arm(self._hide_delay_ms, self._on_hide_timeout)

    def _on_hide_timeout(self) -> None:
        if not self.is_open:
            return
        # No-op outside fullscreen.
        if self.is_fullscreen:
            self._hide_controls()

    def _hide_controls(self) -> None:
        if not self.controls_visible:
            return
        self.controls_visible = False
        self._notify()

    # --------------------------------------------------------------- teardown
    def _teardown(self, *, notify: bool) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        session.closed = True
        self._hide_task.cancel()
        self._release_attachment(session)
        for action in (self._element.pause, self._element.clear):
            try:
                action()
            except Exception as err:
                LOG.debug("Element teardown step failed: %s", err)
        if self.fullscreen_mode is FullscreenMode.NATIVE:
            try:
                self._element.exit_native_fullscreen()
            except Exception as err:
                LOG.debug("Native fullscreen exit failed: %s", err)
        self.state = PlaybackState.IDLE
        self.is_loading = False
        self.is_playing = False
        self.fullscreen_mode = FullscreenMode.NONE
        self.controls_visible = True
        self.last_activity = None
        LOG.info("Closed %s", session.title)
        if not notify:
            return
        self._notify()
        if self._on_closed:
            try:
                self._on_closed()
            except Exception as err:
                LOG.error("Close callback failed: %s", err)

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self)
        except Exception as err:
            LOG.error("State listener failed: %s", err)


__all__ = [
    "DEFAULT_CONTROLS_HIDE_DELAY_MS",
    "FullscreenMode",
    "NoSourcesError",
    "PlaybackError",
    "PlaybackSession",
    "PlaybackState",
    "StreamPlaybackController",
]
