"""Resolve a stable per-machine identifier used in key derivation."""

import logging
import os
import platform
import re
import subprocess
from pathlib import Path

log = logging.getLogger(__name__)

UNKNOWN_DEVICE = "unknown-device"

LINUX_MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _run(*cmd: str) -> str:
    out = subprocess.run(
        list(cmd),
        capture_output=True,
        text=True,
        timeout=10,
        creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, "CREATE_NO_WINDOW") else 0,
    )
    return out.stdout


def _resolve_mac() -> str:
    output = _run("ioreg", "-rd1", "-c", "IOPlatformExpertDevice")
    match = re.search(r'"IOPlatformUUID" = "([^"]+)"', output)
    if not match:
        raise RuntimeError("IOPlatformUUID not found")
    return match.group(1)


def _resolve_windows() -> str:
    output = _run("reg", "query", r"HKLM\SOFTWARE\Microsoft\Cryptography", "/v", "MachineGuid")
    match = re.search(r"MachineGuid\s+REG_SZ\s+([\w-]+)", output)
    if not match:
        raise RuntimeError("MachineGuid not found")
    return match.group(1)


def _resolve_linux() -> str:
    for candidate in LINUX_MACHINE_ID_PATHS:
        path = Path(candidate)
        if path.exists():
            value = path.read_text(encoding="utf-8").strip()
            if value:
                return value
    raise RuntimeError("machine-id not found")


def resolve_device_id() -> str:
    """
    Machine identifier: IOPlatformUUID (macOS), MachineGuid (Windows) or
    machine-id (Linux). ENVSYNC_DEVICE_ID overrides. Falls back to
    "unknown-device" so the client still works, though content then is only
    decryptable on other machines that also fell back.
    """
    override = os.environ.get("ENVSYNC_DEVICE_ID", "").strip()
    if override:
        return override
    system = platform.system()
    try:
        if system == "Darwin":
            return _resolve_mac()
        if system == "Windows":
            return _resolve_windows()
        return _resolve_linux()
    except (OSError, RuntimeError, subprocess.SubprocessError) as e:
        log.warning("Failed to resolve device id: %s", e)
        return UNKNOWN_DEVICE
