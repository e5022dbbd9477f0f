from typing import Callable, Optional

from attachment import AdaptiveEngine


class HostCapabilities:
    """Feature detection for the environment the player runs in."""

    def adaptive_engine_available(self) -> bool:
        return False

    def create_adaptive_engine(self) -> AdaptiveEngine:
        raise RuntimeError("No adaptive-streaming engine in this environment.")

    def is_embedded(self) -> bool:
        return False

    def is_touch_device(self) -> bool:
        return False

    def native_fullscreen_supported(self) -> bool:
        return True


class StaticCapabilities(HostCapabilities):
    """Capabilities fixed at construction, usually from the config file."""

    def __init__(
        self,
        *,
        engine_factory: Optional[Callable[[], AdaptiveEngine]] = None,
        embedded: bool = False,
        touch: bool = False,
        native_fullscreen: bool = True,
    ) -> None:
        self._engine_factory = engine_factory
        self._embedded = bool(embedded)
        self._touch = bool(touch)
        self._native_fullscreen = bool(native_fullscreen)

    def adaptive_engine_available(self) -> bool:
        return self._engine_factory is not None

    def create_adaptive_engine(self) -> AdaptiveEngine:
        if self._engine_factory is None:
            return super().create_adaptive_engine()
        return self._engine_factory()

    def is_embedded(self) -> bool:
        return self._embedded

    def is_touch_device(self) -> bool:
        return self._touch

    def native_fullscreen_supported(self) -> bool:
        return self._native_fullscreen


__all__ = ["HostCapabilities", "StaticCapabilities"]
