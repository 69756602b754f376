"""Find the host's address on a network device using ``ip`` or ``ifconfig``."""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass

__all__ = ["IfconfigIPFinder", "ip_address", "ifconfig"]

_IP_ADDRESS_RE = re.compile(r"inet[^\d]+([\d\.]+)/")
_IFCONFIG_RE = re.compile(r"inet[^\d]+([\d\.]+)\s")


def _locate(name: str) -> str:
    """Prefer the copy in /sbin, which is often not on a user's PATH."""
    sbin = f"/sbin/{name}"
    if os.path.exists(sbin):
        return sbin
    found = shutil.which(name)
    if found is None:
        raise FileNotFoundError(f'executable file "{name}" not found in $PATH')
    return found


def _run(args: list[str]) -> str:
    # LANG=C keeps the output in the expected form; an existing LANG wins.
    env = {"LANG": "C", **os.environ}
    completed = subprocess.run(
        args, capture_output=True, text=True, env=env, check=True
    )
    return completed.stdout


def ip_address(device: str) -> str:
    """The IPv4 address of ``device`` as reported by ``ip address show``."""
    output = _run([_locate("ip"), "address", "show", "dev", device])
    match = _IP_ADDRESS_RE.search(output)
    if match is None:
        raise LookupError(
            f"error finding a usable IP address in `ip address show dev {device}` output"
        )
    return match.group(1)


def ifconfig(device: str) -> str:
    """The IPv4 address of ``device`` as reported by ``ifconfig``."""
    output = _run([_locate("ifconfig"), device])
    match = _IFCONFIG_RE.search(output)
    if match is None:
        raise LookupError("ip address not found in ifconfig output")
    return match.group(1)


@dataclass
class IfconfigIPFinder:
    """Finds the host address on ``device``, trying ``ip`` before ``ifconfig``."""

    device: str

    def host_ip(self) -> str:
        try:
            address = ip_address(self.device)
        except (OSError, subprocess.SubprocessError, LookupError):
            address = ""
        if not address:
            return ifconfig(self.device)
        return address