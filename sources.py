import re
import urllib.parse
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

_HLS_ATTR_RE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')

DEFAULT_ADAPTIVE_SUFFIXES: Tuple[str, ...] = (".m3u8",)
PRIMARY_LABEL = "Source 1"


@dataclass(frozen=True)
class Source:
    """One candidate playable address plus a display label."""

    address: str
    label: str = ""


SourceLike = Union[Source, Mapping[str, object]]


def _coerce_source(item: SourceLike, position: int) -> Optional[Source]:
    if isinstance(item, Source):
        address, label = item.address, item.label
    elif isinstance(item, Mapping):
        address = item.get("address") or item.get("url") or ""
        label = item.get("label") or ""
    else:
        return None
    address = str(address).strip()
    if not address:
        return None
    return Source(address, str(label).strip() or f"Source {position}")


def build_source_list(primary: str, alternates: Optional[Iterable[SourceLike]] = None) -> List[Source]:
    """Primary first, then alternates in order; blanks and repeated addresses are dropped."""
    candidates: List[Source] = []
    seen = set()
    primary = (primary or "").strip()
    if primary:
        candidates.append(Source(primary, PRIMARY_LABEL))
        seen.add(primary)
    for item in alternates or ():
        source = _coerce_source(item, len(candidates) + 1)
        if source is None or source.address in seen:
            continue
        seen.add(source.address)
        candidates.append(source)
    return candidates


def strip_stream_modifiers(url: str) -> str:
    if not url:
        return ""
    base, _, _ = url.partition("|")
    return base.strip()


def is_adaptive_manifest(address: str, suffixes: Sequence[str] = DEFAULT_ADAPTIVE_SUFFIXES) -> bool:
    """True when the address path ends in a known streaming-manifest suffix."""
    target = strip_stream_modifiers(address)
    if not target:
        return False
    path = urllib.parse.urlparse(target).path or target
    lower = path.lower()
    return any(lower.endswith(suffix.lower()) for suffix in suffixes if suffix)


def _normalize_header_name(key: str) -> str:
    return "-".join(part.capitalize() for part in key.split("-") if part)


def parse_stream_modifiers(url: str) -> Tuple[str, Dict[str, object]]:
    """Split ``url|User-Agent=..|Referer=..`` into the bare URL and a header map."""
    if not url:
        return "", {}
    base, sep, tail = url.partition("|")
    headers: Dict[str, object] = {}
    extras: List[str] = []
    if sep:
        for part in tail.split("|"):
            token = part.strip()
            if not token or "=" not in token:
                continue
            key, value = token.split("=", 1)
            key = key.strip().lower()
            value = urllib.parse.unquote_plus(value.strip())
            if not value:
                continue
            if key in ("user-agent", "ua", "http-user-agent"):
                headers["user-agent"] = value
            elif key in ("referer", "referrer", "http-referrer", "http-referer"):
                headers["referer"] = value
            elif key in ("origin", "http-origin"):
                headers["origin"] = value
            elif key in ("cookie", "http-cookie"):
                headers["cookie"] = value
            elif key in ("authorization", "auth", "http-authorization"):
                headers["authorization"] = value
            elif key in ("bearer", "token"):
                headers["authorization"] = f"Bearer {value}"
            else:
                extras.append(f"{_normalize_header_name(key)}: {value}")
    if extras:
        headers["_extra"] = extras
    return base.strip(), headers


def parse_hls_variants(manifest_text: str, base_url: str) -> List[dict]:
    variants: List[dict] = []
    if not manifest_text:
        return variants
    lines = manifest_text.splitlines()
    total = len(lines)
    idx = 0
    while idx < total:
        line = lines[idx].strip()
        if line.startswith("#EXT-X-STREAM-INF"):
            attrs = {k: v.strip('"') for k, v in _HLS_ATTR_RE.findall(line)}
            bandwidth_val = attrs.get("AVERAGE-BANDWIDTH") or attrs.get("BANDWIDTH")
            bandwidth_mbps: Optional[float] = None
            if bandwidth_val:
                try:
                    bandwidth_mbps = max(float(bandwidth_val) / 1_000_000.0, 0.0)
                except ValueError:
                    bandwidth_mbps = None
            uri = ""
            look_ahead = idx + 1
            while look_ahead < total:
                next_line = lines[look_ahead].strip()
                if not next_line:
                    look_ahead += 1
                    continue
                if next_line.startswith("#"):
                    if next_line.startswith("#EXT-X-STREAM-INF"):
                        break
                    look_ahead += 1
                    continue
                uri = next_line
                break
            if uri:
                variants.append(
                    {
                        "url": urllib.parse.urljoin(base_url, uri),
                        "bandwidth_mbps": bandwidth_mbps,
                    }
                )
            idx = look_ahead
            continue
        idx += 1
    return variants


def select_hls_variant(variants: List[dict], cap_mbps: Optional[float]) -> Optional[dict]:
    """Highest variant under the cap, else the lowest known bitrate, else the first."""
    if not variants:
        return None
    if not cap_mbps:
        return None
    eligible = [v for v in variants if v.get("bandwidth_mbps") and v["bandwidth_mbps"] <= cap_mbps]
    if eligible:
        return max(eligible, key=lambda v: v["bandwidth_mbps"] or 0.0)
    with_bandwidth = [v for v in variants if v.get("bandwidth_mbps")]
    if with_bandwidth:
        return min(with_bandwidth, key=lambda v: v["bandwidth_mbps"] or 0.0)
    return variants[0]


__all__ = [
    "DEFAULT_ADAPTIVE_SUFFIXES",
    "PRIMARY_LABEL",
    "Source",
    "build_source_list",
    "is_adaptive_manifest",
    "parse_hls_variants",
    "parse_stream_modifiers",
    "select_hls_variant",
    "strip_stream_modifiers",
]
