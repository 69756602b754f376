"""License check for installations that are older than the free release."""

from __future__ import annotations

import glob as _glob
from typing import Callable

__all__ = ["LICENSE_GLOB", "LicenseRequiredError", "check_license"]

LICENSE_GLOB = "/etc/vmware/license-ws-*"


class LicenseRequiredError(Exception):
    """The installed version is older than the first one free of licenses."""

    def __init__(self, message: str = "installed version requires a license"):
        super().__init__(message)


def check_license(
    verify_version: Callable[[str], object],
    glob: Callable[[str], list[str]] = _glob.glob,
    no_license_version: str = "",
) -> list[str]:
    """Make sure a license is present when the installed version needs one.

    ``verify_version`` is called with ``no_license_version`` and raises
    :class:`LicenseRequiredError` when the installed version is older; any
    other exception it raises is passed on. Returns the license files found,
    or an empty list when no license is needed.
    """
    try:
        verify_version(no_license_version)
    except LicenseRequiredError:
        pass
    else:
        return []

    try:
        matches = list(glob(LICENSE_GLOB))
    except OSError as exc:
        raise OSError(f"error finding license file: {exc}") from exc
    if not matches:
        raise FileNotFoundError("no license found")
    return matches