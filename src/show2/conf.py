"""Runtime settings for the Show2 driver.

There is no config file; defaults come from the environment and the CLI
overrides them.

    SHOW2_VID         vendor ID, hex as lsusb prints it     default 10c4
    SHOW2_PID         product ID, hex                       default ea60
    SHOW2_INTERFACE   interface index to claim              default: auto
    SHOW2_TIMEOUT_MS  handshake timeout in ms               default 500

Usage:
    from show2.conf import load_settings

    settings = load_settings()
    settings.vid, settings.pid
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

log = logging.getLogger(__name__)

# CP210x bridge used by the ODROID-SHOW2
DEFAULT_VID = 0x10C4
DEFAULT_PID = 0xEA60
DEFAULT_HANDSHAKE_TIMEOUT_MS = 500


def parse_usb_id(value: str) -> int:
    """Parse a VID/PID.  Always hex, with or without ``0x`` (``6001`` is 0x6001)."""
    value = value.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    ident = int(value, 16)
    if not 0 <= ident <= 0xFFFF:
        raise ValueError(f"USB ID must fit in 16 bits, got {value!r}")
    return ident


def parse_int(value: str) -> int:
    """Parse a decimal integer."""
    return int(value.strip(), 10)


@dataclass
class Settings:
    vid: int = DEFAULT_VID
    pid: int = DEFAULT_PID
    interface: Optional[int] = None
    timeout_ms: int = DEFAULT_HANDSHAKE_TIMEOUT_MS


def _env_value(env: Mapping[str, str], name: str,
               parse: Callable[[str], int] = parse_int) -> Optional[int]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return parse(raw)
    except ValueError:
        raise ValueError(f"{name}={raw!r} is not valid") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from *env* (defaults to ``os.environ``)."""
    env = os.environ if env is None else env
    settings = Settings()

    vid = _env_value(env, 'SHOW2_VID', parse_usb_id)
    if vid is not None:
        settings.vid = vid
    pid = _env_value(env, 'SHOW2_PID', parse_usb_id)
    if pid is not None:
        settings.pid = pid
    settings.interface = _env_value(env, 'SHOW2_INTERFACE')
    timeout = _env_value(env, 'SHOW2_TIMEOUT_MS')
    if timeout is not None:
        if timeout < 0:
            raise ValueError(f"SHOW2_TIMEOUT_MS must be >= 0, got {timeout}")
        settings.timeout_ms = timeout

    log.debug("Settings: %s", settings)
    return settings
