import os
import sys
import json
import logging
try:
    import wx  # type: ignore
    _HAS_WX = True
except ModuleNotFoundError:  # wxPython optional for headless helpers
    wx = None  # type: ignore
    _HAS_WX = False
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import tempfile

from sources import DEFAULT_ADAPTIVE_SUFFIXES

LOG = logging.getLogger(__name__)

APP_NAME = "LQRSport"
CONFIG_FILE = "lqrsport.conf"
FAVORITES_FILE = "lqrsport_favorites.json"
PLATFORMS = ("mobile", "desktop", "tv")
_CONFIG_PATH = None  # Path of config last loaded/saved

DEFAULT_CONFIG: Dict = {
    "channels": [],
    "platform": "desktop",
    "controls_hide_delay_ms": 2000,
    "adaptive_suffixes": list(DEFAULT_ADAPTIVE_SUFFIXES),
    "adaptive_engine_enabled": True,
    "native_fullscreen_enabled": True,
    "embedded": False,
    "variant_max_mbps": None,
    "start_muted": False,
    "favorites_only": False,
}


def _is_writable_dir(path: str) -> bool:
    try:
        if not os.path.isdir(path):
            return False
        testfile = os.path.join(path, ".lqrsport_write_test.tmp")
        with open(testfile, "w", encoding="utf-8") as f:
            f.write("test")
        os.remove(testfile)
        return True
    except OSError:
        return False

def get_app_dir():
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))

def get_cwd_dir():
    try:
        return os.getcwd()
    except OSError:
        return None

def get_user_config_dir():
    """
    Gets the user-specific config directory, creating it if it doesn't exist.
    Uses wx.StandardPaths once a wx.App exists and falls back to the platform
    convention when running headless.
    """
    app = None
    if _HAS_WX and hasattr(wx, "GetApp"):
        try:
            app = wx.GetApp()
        except Exception:
            app = None
    if _HAS_WX and app is not None:
        try:
            config_dir = wx.StandardPaths.Get().GetUserConfigDir()
            os.makedirs(config_dir, exist_ok=True)
            return config_dir
        except Exception as e:
            LOG.debug("wx.StandardPaths unavailable: %s", e)

    if sys.platform == "win32":
        path = os.path.join(os.getenv('APPDATA', os.path.expanduser('~')), APP_NAME)
    elif sys.platform == "darwin":
        path = os.path.join(os.path.expanduser('~/Library/Application Support'), APP_NAME)
    else:  # linux and other unix
        path = os.path.join(os.getenv('XDG_CONFIG_HOME', os.path.expanduser('~/.config')), APP_NAME)

    try:
        os.makedirs(path, exist_ok=True)
        return path
    except OSError:
        return tempfile.gettempdir()

def get_config_read_candidates():
    # App dir, then CWD, then the per-user config dir.
    candidates = []

    app_dir = get_app_dir()
    if app_dir:
        candidates.append(os.path.join(app_dir, CONFIG_FILE))

    cwd = get_cwd_dir()
    if cwd:
        candidates.append(os.path.join(cwd, CONFIG_FILE))

    user_dir = get_user_config_dir()
    if user_dir:
        candidates.append(os.path.join(user_dir, CONFIG_FILE))

    unique_candidates = []
    seen = set()
    for c in candidates:
        if c not in seen:
            unique_candidates.append(c)
            seen.add(c)
    return unique_candidates

def get_config_write_target():
    # Prefer writing back to the file that was loaded.
    global _CONFIG_PATH
    if _CONFIG_PATH:
        parent = os.path.dirname(_CONFIG_PATH)
        if parent and _is_writable_dir(parent):
            return _CONFIG_PATH

    app_dir = get_app_dir()
    if app_dir and _is_writable_dir(app_dir):
        return os.path.join(app_dir, CONFIG_FILE)

    cwd = get_cwd_dir()
    if cwd and _is_writable_dir(cwd):
        return os.path.join(cwd, CONFIG_FILE)

    return os.path.join(get_user_config_dir(), CONFIG_FILE)

def load_config() -> Dict:
    global _CONFIG_PATH
    for p in get_config_read_candidates():
        if os.path.exists(p):
            try:
                with open(p, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    for k, v in DEFAULT_CONFIG.items():
                        data.setdefault(k, list(v) if isinstance(v, list) else v)
                    _CONFIG_PATH = p
                    return data
            except (OSError, ValueError) as e:
                LOG.error("Failed to load config from %s: %s", p, e)
                # Try the next candidate location.
    app_dir = get_app_dir()
    _CONFIG_PATH = os.path.join(app_dir, CONFIG_FILE) if app_dir else None
    return {k: (list(v) if isinstance(v, list) else v) for k, v in DEFAULT_CONFIG.items()}

def save_config(cfg: Dict):
    global _CONFIG_PATH
    path = get_config_write_target()
    try:
        dir_path = os.path.dirname(path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(cfg, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _CONFIG_PATH = path
    except OSError as e:
        LOG.error("Failed to save config to %s: %s", path, e)

def get_loaded_config_path() -> str:
    """Return the config path most recently loaded or saved, if known."""
    return _CONFIG_PATH or ""

def get_favorites_path() -> str:
    return os.path.join(get_user_config_dir(), FAVORITES_FILE)


@dataclass(frozen=True)
class PlayerSettings:
    platform: str = "desktop"
    controls_hide_delay_ms: int = 2000
    adaptive_suffixes: Tuple[str, ...] = DEFAULT_ADAPTIVE_SUFFIXES
    adaptive_engine_enabled: bool = True
    native_fullscreen_enabled: bool = True
    embedded: bool = False
    variant_max_mbps: Optional[float] = None
    start_muted: bool = False

    @property
    def touch(self) -> bool:
        return self.platform == "mobile"


def _bool_pref(value, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    return default

def _sanitize_variant_cap(value) -> Optional[float]:
    if value is None:
        return None
    try:
        cap = float(value)
    except (TypeError, ValueError):
        return None
    if cap <= 0:
        return None
    return max(0.25, cap)

def resolve_player_settings(cfg: Dict) -> PlayerSettings:
    defaults = PlayerSettings()
    platform_name = str(cfg.get("platform") or defaults.platform).strip().lower()
    if platform_name not in PLATFORMS:
        platform_name = defaults.platform

    try:
        delay = int(cfg.get("controls_hide_delay_ms", defaults.controls_hide_delay_ms))
    except (TypeError, ValueError):
        delay = defaults.controls_hide_delay_ms
    if delay < 0:
        delay = defaults.controls_hide_delay_ms

    raw_suffixes = cfg.get("adaptive_suffixes")
    suffixes: List[str] = []
    if isinstance(raw_suffixes, (list, tuple)):
        for item in raw_suffixes:
            token = str(item).strip().lower()
            if not token:
                continue
            if not token.startswith("."):
                token = "." + token
            if token not in suffixes:
                suffixes.append(token)

    return PlayerSettings(
        platform=platform_name,
        controls_hide_delay_ms=delay,
        adaptive_suffixes=tuple(suffixes) or defaults.adaptive_suffixes,
        adaptive_engine_enabled=_bool_pref(cfg.get("adaptive_engine_enabled"), True),
        native_fullscreen_enabled=_bool_pref(cfg.get("native_fullscreen_enabled"), True),
        embedded=_bool_pref(cfg.get("embedded"), False),
        variant_max_mbps=_sanitize_variant_cap(cfg.get("variant_max_mbps")),
        start_muted=_bool_pref(cfg.get("start_muted"), False),
    )
