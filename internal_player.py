import logging
import platform
import threading
from typing import Callable, Iterable, Optional

import wx

from capabilities import StaticCapabilities
from options import PlayerSettings
from scheduling import ScheduledTask, Scheduler
from sources import SourceLike
from stream_controller import FullscreenMode, StreamPlaybackController
from vlc_backend import (
    HlsVariantEngine,
    InternalPlayerUnavailableError,
    VlcMediaElement,
    create_vlc_element,
)

LOG = logging.getLogger(__name__)


class _WxTask(ScheduledTask):
    def __init__(self, call_later: wx.CallLater) -> None:
        self._call_later = call_later
        self._cancelled = False

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        try:
            if self._call_later.IsRunning():
                self._call_later.Stop()
        except RuntimeError:
            # Owner window already destroyed.
            pass

    @property
    def active(self) -> bool:
        if self._cancelled:
            return False
        try:
            return bool(self._call_later.IsRunning())
        except RuntimeError:
            return False


class WxScheduler(Scheduler):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        return _WxTask(wx.CallLater(max(1, int(delay_ms)), callback))


class PlayerFrame(wx.Frame):
    """Stream player window: renders controller state and forwards user input."""

    _HANDLE_CHECK_INTERVAL = 0.1
    _POLL_INTERVAL_MS = 500

    def __init__(
        self,
        parent: Optional[wx.Window],
        settings: Optional[PlayerSettings] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__(parent, title="LQR SPORT Player", size=(960, 540))
        self._settings = settings or PlayerSettings()
        self._on_close_cb = on_close
        self._destroyed = False
        self._auto_handle_bound = False
        self._have_handle = False
        self._emulated_maximized = False
        self._handle_guard = threading.Lock()

        try:
            self.element: VlcMediaElement = create_vlc_element(fullscreen_window=self)
        except InternalPlayerUnavailableError:
            super().Destroy()
            raise
        engine_factory = None
        if self._settings.adaptive_engine_enabled:
            engine_factory = lambda: HlsVariantEngine(  # noqa: E731
                wx.CallAfter, variant_max_mbps=self._settings.variant_max_mbps
            )
        capabilities = StaticCapabilities(
            engine_factory=engine_factory,
            embedded=self._settings.embedded,
            touch=self._settings.touch,
            native_fullscreen=self._settings.native_fullscreen_enabled,
        )
        self.controller = StreamPlaybackController(
            self.element,
            capabilities,
            WxScheduler(),
            controls_hide_delay_ms=self._settings.controls_hide_delay_ms,
            adaptive_suffixes=self._settings.adaptive_suffixes,
            muted=self._settings.start_muted,
            on_change=self._render,
            on_closed=self._on_session_closed,
        )

        panel = wx.Panel(self)
        panel.SetBackgroundColour(wx.BLACK)
        main_sizer = wx.BoxSizer(wx.VERTICAL)

        self.title_label = wx.StaticText(panel, label="")
        self.title_label.SetForegroundColour(wx.WHITE)
        main_sizer.Add(self.title_label, 0, wx.ALL, 5)

        self.video_panel = wx.Panel(panel)
        self.video_panel.SetBackgroundColour(wx.BLACK)
        self.video_panel.Bind(wx.EVT_SIZE, self._on_video_panel_resize)
        self.video_panel.Bind(wx.EVT_WINDOW_DESTROY, self._on_video_panel_destroy)
        self.video_panel.Bind(wx.EVT_MOTION, self._on_pointer_motion)
        main_sizer.Add(self.video_panel, 1, wx.EXPAND | wx.ALL, 0)

        self.controls_panel = wx.Panel(panel, style=wx.TAB_TRAVERSAL)
        self.controls_panel.SetBackgroundColour(wx.BLACK)
        self.controls_panel.Bind(wx.EVT_MOTION, self._on_pointer_motion)
        for window in (panel, self.video_panel, self.controls_panel):
            window.Bind(wx.EVT_LEAVE_WINDOW, self._on_pointer_leave)
        controls = wx.BoxSizer(wx.HORIZONTAL)

        self.play_pause_btn = wx.Button(self.controls_panel, label="Play")
        self.play_pause_btn.SetName("Play or Pause")
        self.play_pause_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.controller.toggle_play())

        self.mute_btn = wx.Button(self.controls_panel, label="Mute")
        self.mute_btn.SetName("Mute or Unmute")
        self.mute_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.controller.toggle_mute())

        self.fullscreen_btn = wx.Button(self.controls_panel, label="Full Screen")
        self.fullscreen_btn.SetName("Toggle Full Screen")
        self.fullscreen_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.controller.toggle_fullscreen())

        self.retry_btn = wx.Button(self.controls_panel, label="Retry")
        self.retry_btn.SetName("Retry Stream")
        self.retry_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.controller.retry())

        self.back_btn = wx.Button(self.controls_panel, label="Back to Channels")
        self.back_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.controller.close())

        controls.Add(self.play_pause_btn, 0, wx.ALL, 5)
        controls.Add(self.mute_btn, 0, wx.ALL, 5)
        controls.Add(self.fullscreen_btn, 0, wx.ALL, 5)
        controls.Add(self.retry_btn, 0, wx.ALL, 5)
        controls.AddStretchSpacer(1)
        self.status_label = wx.StaticText(self.controls_panel, label="Idle")
        self.status_label.SetForegroundColour(wx.WHITE)
        controls.Add(self.status_label, 0, wx.ALIGN_CENTER_VERTICAL | wx.ALL, 5)
        controls.Add(self.back_btn, 0, wx.ALL, 5)
        self.controls_panel.SetSizer(controls)
        main_sizer.Add(self.controls_panel, 0, wx.EXPAND | wx.LEFT | wx.RIGHT | wx.BOTTOM, 5)

        panel.SetSizer(main_sizer)
        self.SetMinSize((480, 320))
        self.Bind(wx.EVT_CLOSE, self._on_close)
        self.Bind(wx.EVT_CHAR_HOOK, self._on_key_down)

        self._status_timer = wx.Timer(self)
        self.Bind(wx.EVT_TIMER, self._on_timer, self._status_timer)

        self.retry_btn.Hide()
        wx.CallAfter(self._ensure_player_window)
        self._render(self.controller)

    # ------------------------------------------------------------------ public
    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def open_stream(
        self,
        url: str,
        title: str,
        alt_sources: Optional[Iterable[SourceLike]] = None,
    ) -> None:
        if self._destroyed:
            raise InternalPlayerUnavailableError("Player window has been destroyed.")
        self._ensure_player_window()
        self.controller.open(url, title, alt_sources)
        self._status_timer.Start(self._POLL_INTERVAL_MS)
        if not self.IsShown():
            self.Show()
        self.Raise()
        wx.CallAfter(self.play_pause_btn.SetFocus)

    # ---------------------------------------------------------------- internal
    def _ensure_player_window(self) -> None:
        if self._have_handle or self._destroyed:
            return
        with self._handle_guard:
            if self._have_handle:
                return
            handle = self.video_panel.GetHandle()
            if not handle:
                if not self._auto_handle_bound:
                    self._auto_handle_bound = True
                    wx.CallLater(int(self._HANDLE_CHECK_INTERVAL * 1000), self._ensure_player_window)
                return
            player = self.element.player
            try:
                system = platform.system()
                if system == "Linux":
                    player.set_xwindow(handle)
                elif system == "Darwin":
                    player.set_nsobject(int(handle))
                else:
                    player.set_hwnd(handle)
                self._have_handle = True
            except Exception as err:
                LOG.warning("Failed to bind video surface: %s", err)
                wx.CallLater(int(self._HANDLE_CHECK_INTERVAL * 1000), self._ensure_player_window)

    def _render(self, controller: StreamPlaybackController) -> None:
        if self._destroyed:
            return
        title = controller.title
        self.SetTitle(f"{title} - LQR SPORT" if title else "LQR SPORT Player")
        self.title_label.SetLabel(title)
        self.play_pause_btn.SetLabel("Pause" if controller.is_playing else "Play")
        self.mute_btn.SetLabel("Unmute" if controller.is_muted else "Mute")
        self.fullscreen_btn.SetLabel("Exit Full Screen" if controller.is_fullscreen else "Full Screen")
        self.back_btn.Show(not controller.is_fullscreen)
        self.retry_btn.Show(controller.exhausted)

        if controller.exhausted:
            status = "Stream unavailable"
        elif controller.is_loading:
            source = controller.current_source
            status = f"Loading stream... ({source.label})" if source else "Loading stream..."
        elif controller.is_playing:
            status = "Playing"
        elif controller.is_open:
            status = "Paused"
        else:
            status = "Idle"
        self.status_label.SetLabel(status)

        show_chrome = controller.controls_visible or not controller.is_fullscreen
        self.controls_panel.Show(show_chrome)
        self.title_label.Show(show_chrome)
        emulated = controller.fullscreen_mode is FullscreenMode.EMULATED
        if emulated != self._emulated_maximized:
            self._emulated_maximized = emulated
            self.Maximize(emulated)
        self.Layout()

    def _on_session_closed(self) -> None:
        self._status_timer.Stop()
        if self._destroyed:
            return
        self.Hide()
        if self._on_close_cb:
            try:
                self._on_close_cb()
            except Exception as err:
                LOG.error("Close callback failed: %s", err)

    def _on_timer(self, _event: wx.TimerEvent) -> None:
        if self._destroyed:
            return
        self.element.poll()
        if self.controller.fullscreen_mode is FullscreenMode.NATIVE and not self.IsFullScreen():
            # Native fullscreen left through the window manager.
            self.controller.notify_native_fullscreen_exited()

    def _on_video_panel_resize(self, event: wx.Event) -> None:
        self._ensure_player_window()
        event.Skip()

    def _on_video_panel_destroy(self, _event: wx.Event) -> None:
        self._have_handle = False

    def _on_pointer_motion(self, event: wx.MouseEvent) -> None:
        self.controller.on_activity()
        event.Skip()

    def _on_pointer_leave(self, event: wx.MouseEvent) -> None:
        event.Skip()
        if self._destroyed:
            return
        # Moving between child panels also fires leave; only leaving the frame counts.
        if self.GetScreenRect().Contains(wx.GetMousePosition()):
            return
        self.controller.on_pointer_leave()

    def _on_key_down(self, event: wx.KeyEvent) -> None:
        key = event.GetKeyCode()
        self.controller.on_activity()
        if key == wx.WXK_SPACE:
            self.controller.toggle_play()
            return
        if key in (ord("M"), ord("m")):
            self.controller.toggle_mute()
            return
        if key == wx.WXK_F11:
            self.controller.toggle_fullscreen()
            return
        if key == wx.WXK_ESCAPE:
            if self.controller.is_fullscreen:
                self.controller.toggle_fullscreen()
            else:
                self.controller.close()
            return
        event.Skip()

    def _on_close(self, event: wx.CloseEvent) -> None:
        self._status_timer.Stop()
        self.controller.close()
        self._destroyed = True
        self.element.release()
        event.Skip()


__all__ = [
    "InternalPlayerUnavailableError",
    "PlayerFrame",
    "WxScheduler",
]
