import logging
import logging.handlers
import os
import platform
import tempfile
from typing import Dict, List, Optional

import wx

from favorites import FavoritesStore
from internal_player import InternalPlayerUnavailableError, PlayerFrame
from options import APP_NAME, get_loaded_config_path, load_config, resolve_player_settings, save_config

LOG = logging.getLogger("lqrsport")

LOG_PATH = os.path.join(tempfile.gettempdir(), "lqrsport_player.log")


def configure_logging() -> None:
    debug = os.getenv("LQR_DEBUG", "0").strip() not in {"", "0", "false", "False"}
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        fh = logging.handlers.RotatingFileHandler(LOG_PATH, maxBytes=5 * 1024 * 1024, backupCount=2, encoding="utf-8")
        fh.setFormatter(fmt)
        root.addHandler(fh)
    except OSError as e:
        print(f"Could not initialize log file at {LOG_PATH}: {e}")
    if debug:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        root.addHandler(sh)


def set_linux_env():
    if platform.system() != "Linux":
        return
    os.environ["UBUNTU_MENUPROXY"] = "0"
    os.environ.setdefault("GDK_BACKEND", "x11")


def _channel_key(channel: Dict, position: int):
    return channel.get("id", position), channel.get("type") or "channel"


class ChannelListFrame(wx.Frame):
    def __init__(self, config: Dict):
        super().__init__(None, title="LQR SPORT", size=(520, 600))
        self.config = config
        self.settings = resolve_player_settings(config)
        self.favorites = FavoritesStore()
        self.channels: List[Dict] = [ch for ch in config.get("channels", []) if isinstance(ch, dict)]
        self.visible: List[int] = []
        self.favorites_only = bool(config.get("favorites_only"))
        self._player: Optional[PlayerFrame] = None

        panel = wx.Panel(self)
        sizer = wx.BoxSizer(wx.VERTICAL)
        self.listbox = wx.ListBox(panel, style=wx.LB_SINGLE)
        self.listbox.SetName("Channels")
        self.listbox.Bind(wx.EVT_LISTBOX_DCLICK, lambda _evt: self.play_selected())
        self.listbox.Bind(wx.EVT_KEY_DOWN, self._on_list_key)
        self.listbox.Bind(wx.EVT_CONTEXT_MENU, self._on_context_menu)
        sizer.Add(self.listbox, 1, wx.EXPAND | wx.ALL, 8)
        panel.SetSizer(sizer)

        menu_bar = wx.MenuBar()
        file_menu = wx.Menu()
        m_export = file_menu.Append(wx.ID_ANY, "Export Favorites...")
        m_import = file_menu.Append(wx.ID_ANY, "Import Favorites...")
        file_menu.AppendSeparator()
        m_exit = file_menu.Append(wx.ID_EXIT, "Exit\tCtrl+Q")
        self.Bind(wx.EVT_MENU, self._on_export_favorites, m_export)
        self.Bind(wx.EVT_MENU, self._on_import_favorites, m_import)
        self.Bind(wx.EVT_MENU, lambda _evt: self.Close(), m_exit)
        menu_bar.Append(file_menu, "&File")

        view_menu = wx.Menu()
        self._fav_item = view_menu.AppendCheckItem(wx.ID_ANY, "Favorites Only\tCtrl+F")
        self._fav_item.Check(self.favorites_only)
        self.Bind(wx.EVT_MENU, self._on_toggle_favorites_only, self._fav_item)
        menu_bar.Append(view_menu, "&View")
        self.SetMenuBar(menu_bar)

        self.Bind(wx.EVT_CLOSE, self._on_close)
        self.refresh_list()
        self.Show()

    def refresh_list(self):
        self.visible = []
        labels = []
        for pos, channel in enumerate(self.channels):
            item_id, item_type = _channel_key(channel, pos)
            fav = self.favorites.is_favorite(item_id, item_type)
            if self.favorites_only and not fav:
                continue
            self.visible.append(pos)
            name = channel.get("name") or channel.get("title") or f"Channel {pos + 1}"
            labels.append(f"* {name}" if fav else name)
        self.listbox.Set(labels)
        if labels:
            self.listbox.SetSelection(0)

    def _selected_channel(self):
        idx = self.listbox.GetSelection()
        if idx == wx.NOT_FOUND or idx >= len(self.visible):
            return None, None
        pos = self.visible[idx]
        return pos, self.channels[pos]

    def _ensure_player(self) -> PlayerFrame:
        if self._player is None or self._player.destroyed:
            self._player = PlayerFrame(self, self.settings, on_close=self._on_player_closed)
        return self._player

    def play_selected(self):
        _pos, channel = self._selected_channel()
        if channel is None:
            return
        url = channel.get("stream_url") or channel.get("live_url") or ""
        title = channel.get("name") or channel.get("title") or "Live Stream"
        try:
            player = self._ensure_player()
            player.open_stream(url, title, channel.get("alt_sources") or [])
        except InternalPlayerUnavailableError as err:
            LOG.error("Built-in player unavailable: %s", err)
            wx.MessageBox(f"The built-in player could not start:\n{err}", "Player Unavailable", wx.OK | wx.ICON_ERROR)
        except ValueError as err:
            wx.MessageBox(str(err), "Stream Unavailable", wx.OK | wx.ICON_WARNING)

    def _on_player_closed(self):
        self.Raise()
        self.listbox.SetFocus()

    def toggle_favorite_selected(self):
        pos, channel = self._selected_channel()
        if channel is None:
            return
        item_id, item_type = _channel_key(channel, pos)
        if self.favorites.is_favorite(item_id, item_type):
            self.favorites.remove(item_id, item_type)
        else:
            item = dict(channel, id=item_id, type=item_type)
            self.favorites.add(item)
        self.refresh_list()

    def _on_list_key(self, event):
        key = event.GetKeyCode()
        if key in (wx.WXK_RETURN, wx.WXK_NUMPAD_ENTER):
            self.play_selected()
            return
        if key in (ord("F"), ord("f")) and not event.HasAnyModifiers():
            self.toggle_favorite_selected()
            return
        event.Skip()

    def _on_context_menu(self, _event):
        menu = wx.Menu()
        m_play = menu.Append(wx.ID_ANY, "Play")
        m_fav = menu.Append(wx.ID_ANY, "Toggle Favorite")
        self.Bind(wx.EVT_MENU, lambda _evt: self.play_selected(), m_play)
        self.Bind(wx.EVT_MENU, lambda _evt: self.toggle_favorite_selected(), m_fav)
        self.PopupMenu(menu)
        menu.Destroy()

    def _on_toggle_favorites_only(self, _event):
        self.favorites_only = self._fav_item.IsChecked()
        self.config["favorites_only"] = self.favorites_only
        save_config(self.config)
        self.refresh_list()

    def _on_export_favorites(self, _event):
        with wx.FileDialog(self, "Export Favorites",
                           wildcard="JSON files (*.json)|*.json",
                           defaultFile="lqrsport_favorites.json",
                           style=wx.FD_SAVE | wx.FD_OVERWRITE_PROMPT) as dlg:
            if dlg.ShowModal() != wx.ID_OK:
                return
            path = dlg.GetPath()
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.favorites.export())
        except OSError as err:
            LOG.error("Failed to export favorites to %s: %s", path, err)
            wx.MessageBox(f"Could not export favorites:\n{err}", "Export Failed", wx.OK | wx.ICON_ERROR)

    def _on_import_favorites(self, _event):
        with wx.FileDialog(self, "Import Favorites",
                           wildcard="JSON files (*.json)|*.json|All files (*.*)|*.*",
                           style=wx.FD_OPEN | wx.FD_FILE_MUST_EXIST) as dlg:
            if dlg.ShowModal() != wx.ID_OK:
                return
            path = dlg.GetPath()
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as err:
            LOG.error("Failed to read favorites from %s: %s", path, err)
            text = ""
        if not self.favorites.import_json(text):
            wx.MessageBox("The selected file is not a valid favorites list.", "Import Failed", wx.OK | wx.ICON_WARNING)
            return
        self.refresh_list()

    def _on_close(self, event):
        if self._player is not None and not self._player.destroyed:
            self._player.Close(force=True)
            self._player = None
        event.Skip()


if __name__ == "__main__":
    configure_logging()
    set_linux_env()
    app = wx.App()
    app.SetAppName(APP_NAME)
    config = load_config()
    LOG.info("Using config %s", get_loaded_config_path() or "(defaults)")
    ChannelListFrame(config)
    app.MainLoop()
