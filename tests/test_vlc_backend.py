"""
Tests for the libVLC output element and the HLS variant engine.
"""
import pytest
import os
import sys
from unittest.mock import Mock
from enum import IntEnum

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from attachment import EngineEvent, MediaError
from capabilities import StaticCapabilities
from stream_controller import PlaybackState, StreamPlaybackController
from vlc_backend import HlsVariantEngine, VlcMediaElement, request_headers


# Mock VLC State enum for testing without VLC installed
class MockState(IntEnum):
    NothingSpecial = 0
    Opening = 1
    Buffering = 2
    Playing = 3
    Paused = 4
    Stopped = 5
    Ended = 6
    Error = 7


MASTER = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-STREAM-INF:BANDWIDTH=1200000,RESOLUTION=640x360
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720
mid/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=6000000,RESOLUTION=1920x1080
high/index.m3u8
"""


def make_element(window=None):
    instance = Mock()
    player = Mock()
    player.play.return_value = 0
    player.get_state.return_value = MockState.NothingSpecial
    return VlcMediaElement(instance, player, window)


def sync_dispatch(fn, *args):
    fn(*args)


def run_now(target):
    target()


class TestVlcMediaElement:
    """Test the libVLC element wrapper."""

    def test_load_strips_modifiers_into_options(self):
        """Test piped header modifiers become libVLC media options."""
        element = make_element()
        media = element.instance.media_new.return_value

        element.load("http://cdn.example/live.ts|User-Agent=TestUA|Referer=http://ref.example/")

        element.instance.media_new.assert_called_once_with("http://cdn.example/live.ts")
        options = [c.args[0] for c in media.add_option.call_args_list]
        assert ":http-user-agent=TestUA" in options
        assert ":http-referrer=http://ref.example/" in options
        element.player.set_media.assert_called_once_with(media)
        element.player.play.assert_called_once_with()

    def test_load_refused_raises(self):
        """Test a -1 from libVLC play is surfaced as MediaError."""
        element = make_element()
        element.player.play.return_value = -1

        with pytest.raises(MediaError):
            element.load("http://cdn.example/live.ts")

    def test_load_empty_address_raises(self):
        """Test an empty address is rejected before touching libVLC."""
        element = make_element()

        with pytest.raises(MediaError):
            element.load("|User-Agent=x")
        element.instance.media_new.assert_not_called()

    def test_poll_reports_can_play_once(self):
        """Test the playing state fires can-play only on transition."""
        element = make_element()
        ready, error = Mock(), Mock()
        element.set_listeners(ready, error)

        element.player.get_state.return_value = MockState.Opening
        assert element.poll() == "opening"
        element.player.get_state.return_value = MockState.Playing
        element.poll()
        element.poll()

        ready.assert_called_once_with()
        error.assert_not_called()

    def test_poll_reports_error_state(self):
        """Test the libVLC error state fires the error listener."""
        element = make_element()
        ready, error = Mock(), Mock()
        element.set_listeners(ready, error)
        element.player.get_state.return_value = MockState.Error

        element.poll()

        error.assert_called_once()
        ready.assert_not_called()

    def test_ended_before_playing_is_an_error(self):
        """Test a stream that ends without ever playing counts as failed."""
        element = make_element()
        error = Mock()
        element.set_listeners(Mock(), error)
        element.player.get_state.return_value = MockState.Ended

        element.poll()

        error.assert_called_once()

    def test_ended_after_playing_is_not_an_error(self):
        """Test a normal end of stream does not trigger fallback."""
        element = make_element()
        error = Mock()
        element.set_listeners(Mock(), error)
        element.player.get_state.return_value = MockState.Playing
        element.poll()
        element.player.get_state.return_value = MockState.Ended
        element.poll()

        error.assert_not_called()

    def test_poll_survives_get_state_failure(self):
        """Test a failing state query reads as unknown."""
        element = make_element()
        element.player.get_state.side_effect = RuntimeError("gone")

        assert element.poll() == "unknown"

    def test_clear_detaches_media_even_if_stop_fails(self):
        """Test clear always drops the media and listeners."""
        element = make_element()
        ready = Mock()
        element.set_listeners(ready, Mock())
        element.player.stop.side_effect = RuntimeError("busy")

        with pytest.raises(RuntimeError):
            element.clear()

        element.player.set_media.assert_called_once_with(None)
        element.player.get_state.return_value = MockState.Playing
        element.poll()
        ready.assert_not_called()

    def test_pause_and_mute(self):
        """Test pause and mute map to the libVLC calls."""
        element = make_element()

        element.pause()
        element.set_muted(True)

        element.player.set_pause.assert_called_once_with(1)
        element.player.audio_set_mute.assert_called_once_with(True)

    def test_native_fullscreen_uses_window(self):
        """Test native fullscreen goes through the host window."""
        window = Mock()
        window.ShowFullScreen.return_value = True
        window.IsFullScreen.return_value = True
        element = make_element(window)

        assert element.request_native_fullscreen() is True
        element.exit_native_fullscreen()

        window.ShowFullScreen.assert_any_call(True)
        window.ShowFullScreen.assert_called_with(False)

    def test_native_fullscreen_without_window(self):
        """Test no window means the native request is refused."""
        assert make_element().request_native_fullscreen() is False

    def test_release_is_idempotent(self):
        """Test release frees libVLC objects once and blocks further loads."""
        element = make_element()
        element.release()
        element.release()

        element.player.release.assert_called_once_with()
        element.instance.release.assert_called_once_with()
        with pytest.raises(MediaError):
            element.load("http://cdn.example/live.ts")


class TestRequestHeaders:
    """Test manifest request header building."""

    def test_default_user_agent(self):
        """Test a browser-like UA is sent when none is given."""
        headers = request_headers({})

        assert "Mozilla" in headers["User-Agent"]
        assert "mpegurl" in headers["Accept"].lower()

    def test_modifier_headers_are_forwarded(self):
        """Test referer, cookie and extra headers reach the request."""
        headers = request_headers(
            {"user-agent": "UA", "referer": "http://r/", "cookie": "a=b", "_extra": ["X-Token: 42"]}
        )

        assert headers["User-Agent"] == "UA"
        assert headers["Referer"] == "http://r/"
        assert headers["Cookie"] == "a=b"
        assert headers["X-Token"] == "42"


class TestHlsVariantEngine:
    """Test manifest resolution and engine events."""

    def _engine(self, text=MASTER, cap=None, fetch=None, spawn=run_now):
        engine = HlsVariantEngine(
            sync_dispatch,
            variant_max_mbps=cap,
            fetch=fetch or (lambda url: text),
            spawn=spawn,
        )
        ready, error = Mock(), Mock()
        engine.on(EngineEvent.READY, ready)
        engine.on(EngineEvent.ERROR, error)
        return engine, ready, error

    def test_cap_selects_best_variant_under_limit(self):
        """Test the highest variant at or below the cap is played."""
        engine, _ready, error = self._engine(cap=3.0)
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(element)

        element.load.assert_called_once_with("http://cdn.example/live/mid/index.m3u8")
        assert len(engine.variants) == 3
        error.assert_not_called()

    def test_modifiers_follow_selected_variant(self):
        """Test header modifiers are kept on the chosen variant URL."""
        engine, _ready, _error = self._engine(cap=10)
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8|Referer=http://r/")
        engine.attach_media(element)

        element.load.assert_called_once_with("http://cdn.example/live/high/index.m3u8|Referer=http://r/")

    def test_no_cap_plays_master(self):
        """Test without a cap the master playlist is handed to libVLC as-is."""
        engine, _ready, _error = self._engine(cap=None)
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(element)

        element.load.assert_called_once_with("http://cdn.example/live/master.m3u8")
        assert engine.selected_url == "http://cdn.example/live/master.m3u8"

    def test_fetch_failure_emits_error(self):
        """Test a network failure on the manifest becomes an engine error."""

        def boom(url):
            raise OSError("timed out")

        engine, ready, error = self._engine(fetch=boom)
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(element)

        error.assert_called_once()
        ready.assert_not_called()
        element.load.assert_not_called()

    def test_non_manifest_body_emits_error(self):
        """Test an HTML error page is not treated as a playlist."""
        engine, _ready, error = self._engine(text="<html>Forbidden</html>")
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(Mock())

        error.assert_called_once_with("response is not an HLS manifest")

    def test_element_events_map_to_engine_events(self):
        """Test element can-play and error callbacks surface as engine events."""
        engine, ready, error = self._engine()
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(element)
        on_can_play, on_error = element.set_listeners.call_args.args

        on_can_play()
        on_error("decode error")

        ready.assert_called_once_with()
        error.assert_called_once_with("decode error")

    def test_nothing_fires_after_destroy(self):
        """Test a manifest arriving after destroy is dropped."""
        pending = []
        engine, ready, error = self._engine(spawn=pending.append)
        element = Mock()
        engine.load_source("http://cdn.example/live/master.m3u8")
        engine.attach_media(element)
        on_can_play, on_error = element.set_listeners.call_args.args

        engine.destroy()
        pending[0]()
        on_can_play()
        on_error("late")

        assert engine.destroyed is True
        element.load.assert_not_called()
        element.set_listeners.assert_called_with(None, None)
        ready.assert_not_called()
        error.assert_not_called()

    def test_attach_without_source_raises(self):
        """Test attaching before load_source is an error."""
        engine, _ready, _error = self._engine()

        with pytest.raises(MediaError):
            engine.attach_media(Mock())


class TestFallbackOnLibVlc:
    """Test source fallback driven by libVLC state polling."""

    def test_failed_source_is_not_replayed_while_manifest_loads(self):
        """Test the failed direct source stays unloaded until the HLS variant arrives."""
        element = make_element()
        pending = []
        caps = StaticCapabilities(
            engine_factory=lambda: HlsVariantEngine(sync_dispatch, fetch=lambda url: MASTER, spawn=pending.append)
        )
        controller = StreamPlaybackController(element, caps, Mock())
        controller.open("http://x/a.mp4", "Title", [{"address": "http://x/b.m3u8"}])

        element.player.get_state.return_value = MockState.Error
        element.poll()
        element.player.get_state.return_value = MockState.Stopped
        element.poll()
        controller.toggle_play()

        element.player.set_media.assert_called_with(None)
        assert element.player.play.call_count == 1
        assert controller.state is PlaybackState.LOADING
        assert controller.source_index == 1

        pending[0]()
        element.player.get_state.return_value = MockState.Playing
        element.poll()

        media_urls = [c.args[0] for c in element.instance.media_new.call_args_list]
        assert media_urls == ["http://x/a.mp4", "http://x/b.m3u8"]
        assert controller.state is PlaybackState.READY
        assert controller.is_playing is True
