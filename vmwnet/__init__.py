"""Parsers for desktop hypervisor networking configuration and lease files,
with helpers for export settings, host interface addresses and license checks."""

__version__ = "0.1.0"