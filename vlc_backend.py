import logging
import os
import threading
import urllib.request
from typing import Callable, Dict, List, Optional

from attachment import AdaptiveEngine, EngineEmitter, EngineEvent, MediaElement, MediaError
from sources import parse_hls_variants, parse_stream_modifiers, select_hls_variant


def _prime_vlc_search_path() -> None:
    """Make sure libvlc.dll is discoverable before importing python-vlc."""
    candidates = [
        os.path.join(os.environ.get("ProgramFiles(x86)", ""), "VideoLAN", "VLC"),
        os.path.join(os.environ.get("ProgramFiles", ""), "VideoLAN", "VLC"),
    ]
    seen = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        dll_path = os.path.join(path, "libvlc.dll")
        if os.path.isfile(dll_path):
            try:
                os.add_dll_directory(path)  # type: ignore[attr-defined]
            except (AttributeError, OSError):
                os.environ["PATH"] = f"{path};" + os.environ.get("PATH", "")


_prime_vlc_search_path()

try:
    import vlc  # type: ignore
except Exception as _err:  # pragma: no cover - import guard
    vlc = None  # type: ignore
    _VLC_IMPORT_ERROR = _err
else:
    _VLC_IMPORT_ERROR = None

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/118.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = (
    "application/x-mpegURL,application/vnd.apple.mpegurl,"
    "application/json,text/plain,*/*"
)
MANIFEST_TIMEOUT_SECONDS = 4
MANIFEST_MAX_BYTES = 512_000


class InternalPlayerUnavailableError(RuntimeError):
    """Raised when the built-in player cannot be created."""


_VLC_RUNTIME_PREPARED = False


def _prepare_vlc_runtime() -> None:
    """Ensure python-vlc is ready. Minimal guard that surfaces import issues."""
    global _VLC_RUNTIME_PREPARED
    if _VLC_RUNTIME_PREPARED:
        return
    if vlc is None:
        detail = _VLC_IMPORT_ERROR or "python-vlc (libVLC) is not installed."
        raise InternalPlayerUnavailableError(str(detail))
    _VLC_RUNTIME_PREPARED = True


def _detect_system_http_proxy() -> Optional[str]:
    """Return system HTTP(S) proxy if configured (Windows honours IE settings)."""
    try:
        proxies = urllib.request.getproxies()
    except Exception:
        return None
    for key in ("http", "https"):
        proxy = proxies.get(key)
        if proxy:
            return proxy
    return None


def request_headers(headers: Optional[Dict[str, object]]) -> Dict[str, str]:
    req_headers: Dict[str, str] = {
        "User-Agent": str((headers or {}).get("user-agent") or DEFAULT_USER_AGENT),
        "Accept": DEFAULT_ACCEPT,
    }
    if headers:
        for key, name in (("referer", "Referer"), ("origin", "Origin"), ("cookie", "Cookie"), ("authorization", "Authorization")):
            value = headers.get(key)
            if value:
                req_headers[name] = str(value)
        extras = headers.get("_extra")
        if isinstance(extras, list):
            for hdr in extras:
                if ":" not in str(hdr):
                    continue
                name, val = str(hdr).split(":", 1)
                name, val = name.strip(), val.strip()
                if name and val and name not in req_headers:
                    req_headers[name] = val
    return req_headers


def fetch_manifest(url: str) -> str:
    base_url, headers = parse_stream_modifiers(url)
    req = urllib.request.Request(base_url, headers=request_headers(headers))
    with urllib.request.urlopen(req, timeout=MANIFEST_TIMEOUT_SECONDS) as response:
        data = response.read(MANIFEST_MAX_BYTES)
    return data.decode("utf-8", errors="ignore")


def _state_key(state: object) -> str:
    if state is None:
        return "unknown"
    name = getattr(state, "name", None)
    if isinstance(name, str):
        return name.lower()
    return str(state).rsplit(".", 1)[-1].lower()


class VlcMediaElement(MediaElement):
    """libVLC media player exposed as the output element.

    libVLC reports state by polling; ``poll()`` turns state transitions into the
    can-play / error callbacks bound through ``set_listeners``.
    """

    def __init__(self, instance, player, fullscreen_window=None) -> None:
        self.instance = instance
        self.player = player
        self._fullscreen_window = fullscreen_window
        self._on_can_play: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None
        self._last_state: Optional[str] = None
        self._seen_playing = False
        self._released = False

    def set_listeners(self, on_can_play, on_error) -> None:
        self._on_can_play = on_can_play
        self._on_error = on_error

    def load(self, address: str) -> None:
        if self._released:
            raise MediaError("Media element has been released.")
        base_url, headers = parse_stream_modifiers(address)
        if not base_url:
            raise MediaError("Empty stream address.")
        media = self.instance.media_new(base_url)
        if media is None:
            raise MediaError(f"libVLC could not create media for {base_url}")
        self._apply_media_options(media, headers)
        self._last_state = None
        self._seen_playing = False
        try:
            self.player.stop()
        except Exception as err:
            LOG.debug("Stop before load failed: %s", err)
        self.player.set_media(media)
        if self.player.play() == -1:
            raise MediaError(f"libVLC refused to play {base_url}")
        LOG.debug("Loaded %s into libVLC", base_url)

    @staticmethod
    def _apply_media_options(media, headers: Dict[str, object]) -> None:
        media.add_option(":http-reconnect=true")
        media.add_option(":network-caching=3000")
        media.add_option(":adaptive-use-access=1")
        proxy_url = _detect_system_http_proxy()
        if proxy_url:
            media.add_option(f":http-proxy={proxy_url}")
        ua = (headers or {}).get("user-agent") or DEFAULT_USER_AGENT
        media.add_option(f":http-user-agent={ua}")
        ref = (headers or {}).get("referer")
        if ref:
            media.add_option(f":http-referrer={ref}")
        cookie = (headers or {}).get("cookie")
        if cookie:
            media.add_option(f":http-cookie={cookie}")
        for key, name in (("origin", "Origin"), ("authorization", "Authorization")):
            value = (headers or {}).get(key)
            if value:
                media.add_option(f":http-header={name}: {value}")
        extras = (headers or {}).get("_extra")
        if isinstance(extras, list):
            for hdr in extras:
                media.add_option(f":http-header={hdr}")

    def poll(self) -> str:
        try:
            state = self.player.get_state()
        except Exception:
            state = None
        key = _state_key(state)
        if key == self._last_state:
            return key
        self._last_state = key
        if key == "playing":
            self._seen_playing = True
            if self._on_can_play:
                self._on_can_play()
        elif key == "error":
            if self._on_error:
                self._on_error("libVLC reported a playback error")
        elif key == "ended" and not self._seen_playing:
            if self._on_error:
                self._on_error("stream ended before playback started")
        return key

    def play(self) -> None:
        self.player.play()

    def pause(self) -> None:
        self.player.set_pause(1)

    def set_muted(self, muted: bool) -> None:
        self.player.audio_set_mute(bool(muted))

    def clear(self) -> None:
        self._on_can_play = None
        self._on_error = None
        self._last_state = None
        try:
            self.player.stop()
        finally:
            self.player.set_media(None)

    def request_native_fullscreen(self) -> bool:
        window = self._fullscreen_window
        if window is None:
            return False
        return bool(window.ShowFullScreen(True))

    def exit_native_fullscreen(self) -> None:
        window = self._fullscreen_window
        if window is not None and window.IsFullScreen():
            window.ShowFullScreen(False)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        for action in (self.player.stop, self.player.release, self.instance.release):
            try:
                action()
            except Exception as err:
                LOG.debug("libVLC release step failed: %s", err)


def create_vlc_element(fullscreen_window=None) -> VlcMediaElement:
    _prepare_vlc_runtime()
    instance_opts = [
        "--quiet",
        "--no-video-title-show",
        "--intf=dummy",
    ]
    try:
        instance = vlc.Instance(instance_opts)
    except Exception as err:
        LOG.warning("libVLC rejected tuning flags (%s); retrying with defaults.", err)
        instance = vlc.Instance()
    if not instance:
        raise InternalPlayerUnavailableError("Failed to initialise libVLC instance.")
    try:
        player = instance.media_player_new()
    except Exception as err:
        instance.release()
        raise InternalPlayerUnavailableError(f"Failed to initialise media player: {err}") from err
    if not player:
        instance.release()
        raise InternalPlayerUnavailableError("Could not create libVLC media player object.")
    return VlcMediaElement(instance, player, fullscreen_window)


def _spawn_thread(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="hls-manifest", daemon=True).start()


class HlsVariantEngine(AdaptiveEngine):
    """Resolves an HLS master playlist to one variant and plays it on the element.

    The manifest is fetched off the UI thread; results come back through
    ``dispatch`` (``wx.CallAfter`` in the app). Nothing fires after ``destroy()``.
    """

    def __init__(
        self,
        dispatch: Callable[..., None],
        *,
        variant_max_mbps: Optional[float] = None,
        fetch: Callable[[str], str] = fetch_manifest,
        spawn: Callable[[Callable[[], None]], None] = _spawn_thread,
    ) -> None:
        self._dispatch = dispatch
        self._variant_max_mbps = variant_max_mbps
        self._fetch = fetch
        self._spawn = spawn
        self._events = EngineEmitter()
        self._address: Optional[str] = None
        self._element: Optional[MediaElement] = None
        self._destroyed = False
        self.variants: List[dict] = []
        self.selected_url: Optional[str] = None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def on(self, event: EngineEvent, callback: Callable[..., None]) -> None:
        self._events.on(event, callback)

    def load_source(self, address: str) -> None:
        self._address = address

    def attach_media(self, element: MediaElement) -> None:
        if not self._address:
            raise MediaError("No manifest address loaded.")
        self._element = element
        element.set_listeners(self._media_ready, self._media_error)
        address = self._address
        self._spawn(lambda: self._resolve_worker(address))

    def _resolve_worker(self, address: str) -> None:
        try:
            text = self._fetch(address)
        except Exception as err:
            LOG.debug("Failed to fetch HLS manifest %s: %s", address, err)
            self._dispatch(self._fail, f"manifest fetch failed: {err}")
            return
        self._dispatch(self._deliver, address, text)

    def _deliver(self, address: str, text: str) -> None:
        if self._destroyed or self._element is None:
            return
        if not text or "#EXTM3U" not in text[:1024]:
            self._fail("response is not an HLS manifest")
            return
        base_url, _, modifiers = address.partition("|")
        self.variants = parse_hls_variants(text, base_url.strip())
        selected = select_hls_variant(self.variants, self._variant_max_mbps)
        target = selected["url"] if selected else address
        if selected and modifiers:
            target = f"{target}|{modifiers}"
        self.selected_url = target
        LOG.debug("HLS manifest parsed (%d variants); playing %s", len(self.variants), target)
        try:
            self._element.load(target)
        except Exception as err:
            self._fail(f"could not load variant: {err}")

    def _media_ready(self) -> None:
        if not self._destroyed:
            self._events.emit(EngineEvent.READY)

    def _media_error(self, reason: str = "") -> None:
        if not self._destroyed:
            self._events.emit(EngineEvent.ERROR, reason or "media error")

    def _fail(self, reason: str) -> None:
        if self._destroyed:
            return
        self._events.emit(EngineEvent.ERROR, reason)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._events.clear()
        element, self._element = self._element, None
        if element is not None:
            element.set_listeners(None, None)


__all__ = [
    "HlsVariantEngine",
    "InternalPlayerUnavailableError",
    "VlcMediaElement",
    "create_vlc_element",
    "fetch_manifest",
    "request_headers",
]
