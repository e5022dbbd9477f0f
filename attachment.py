"""Strategies that bind one source address to the output media element.

The fallback state machine only sees ``SourceAttachment``: it calls
``attach(element, address)`` once and ``release()`` exactly when it is done with
the source. Readiness and failure come back through the two callbacks each
attachment is built with.
"""

import enum
import logging
from typing import Callable, Dict, List, Optional

LOG = logging.getLogger(__name__)

ReadyCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


class MediaError(RuntimeError):
    """Raised by an element when a source cannot even be assigned."""


class EngineEvent(enum.Enum):
    READY = "ready"
    ERROR = "error"


class MediaElement:
    """The single output surface a session plays into."""

    def set_listeners(
        self,
        on_can_play: Optional[ReadyCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        raise NotImplementedError

    def load(self, address: str) -> None:
        raise NotImplementedError

    def play(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def set_muted(self, muted: bool) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        """Stop playback and detach the current source."""
        raise NotImplementedError

    def request_native_fullscreen(self) -> bool:
        return False

    def exit_native_fullscreen(self) -> None:
        pass


class AdaptiveEngine:
    """Manifest-aware engine that feeds an element (an HLS player, typically)."""

    def on(self, event: EngineEvent, callback: Callable[..., None]) -> None:
        raise NotImplementedError

    def load_source(self, address: str) -> None:
        raise NotImplementedError

    def attach_media(self, element: MediaElement) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        raise NotImplementedError


class SourceAttachment:
    kind = "abstract"

    def __init__(self, on_ready: ReadyCallback, on_error: ErrorCallback) -> None:
        self._on_ready = on_ready
        self._on_error = on_error
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def attach(self, element: MediaElement, address: str) -> None:
        raise NotImplementedError

    def release(self) -> None:
        raise NotImplementedError


class DirectSource(SourceAttachment):
    """Assigns the address straight to the element."""

    kind = "direct"

    def __init__(self, on_ready: ReadyCallback, on_error: ErrorCallback) -> None:
        super().__init__(on_ready, on_error)
        self._element: Optional[MediaElement] = None

    def attach(self, element: MediaElement, address: str) -> None:
        self._element = element
        element.set_listeners(self._on_ready, self._on_error)
        element.load(address)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        element, self._element = self._element, None
        if element is None:
            return
        try:
            element.set_listeners(None, None)
        except Exception as err:
            LOG.debug("Failed to unbind element listeners: %s", err)


class AdaptiveEngineSource(SourceAttachment):
    """Creates an adaptive engine, points it at the address and binds it to the element."""

    kind = "adaptive"

    def __init__(
        self,
        engine_factory: Callable[[], AdaptiveEngine],
        on_ready: ReadyCallback,
        on_error: ErrorCallback,
    ) -> None:
        super().__init__(on_ready, on_error)
        self._engine_factory = engine_factory
        self._engine: Optional[AdaptiveEngine] = None

    @property
    def engine(self) -> Optional[AdaptiveEngine]:
        return self._engine

    def attach(self, element: MediaElement, address: str) -> None:
        engine = self._engine_factory()
        self._engine = engine
        engine.on(EngineEvent.READY, self._on_ready)
        engine.on(EngineEvent.ERROR, self._on_error)
        engine.load_source(address)
        engine.attach_media(element)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        engine, self._engine = self._engine, None
        if engine is None:
            return
        try:
            engine.destroy()
        except Exception as err:
            LOG.debug("Adaptive engine destroy failed: %s", err)


class EngineEmitter:
    """Small callback registry shared by engine implementations."""

    def __init__(self) -> None:
        self._handlers: Dict[EngineEvent, List[Callable[..., None]]] = {}

    def on(self, event: EngineEvent, callback: Callable[..., None]) -> None:
        self._handlers.setdefault(event, []).append(callback)

    def emit(self, event: EngineEvent, *args: object) -> None:
        for handler in list(self._handlers.get(event, ())):
            handler(*args)

    def clear(self) -> None:
        self._handlers.clear()


__all__ = [
    "AdaptiveEngine",
    "AdaptiveEngineSource",
    "DirectSource",
    "EngineEmitter",
    "EngineEvent",
    "ErrorCallback",
    "MediaElement",
    "MediaError",
    "ReadyCallback",
    "SourceAttachment",
]
