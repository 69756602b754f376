"""Settings for exporting a finished virtual machine."""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = [
    "EXPORT_FORMAT_OVF",
    "EXPORT_FORMAT_OVA",
    "EXPORT_FORMAT_VMX",
    "ALLOWED_EXPORT_FORMATS",
    "ExportConfig",
]

EXPORT_FORMAT_OVF = "ovf"
EXPORT_FORMAT_OVA = "ova"
EXPORT_FORMAT_VMX = "vmx"

ALLOWED_EXPORT_FORMATS = (EXPORT_FORMAT_OVF, EXPORT_FORMAT_OVA, EXPORT_FORMAT_VMX)


@dataclass
class ExportConfig:
    """How, and whether, the built virtual machine is exported.

    ``format`` is one of ``ovf``, ``ova`` or ``vmx``; left empty, the
    caller picks the default for its kind of hypervisor.
    """

    format: str = ""
    ovftool_options: list[str] = field(default_factory=list)
    skip_export: bool = False
    keep_registered: bool = False
    skip_compaction: bool = False

    def prepare(self) -> list[ValueError]:
        """Check the settings and return every problem found."""
        errors: list[ValueError] = []
        if self.format and self.format not in ALLOWED_EXPORT_FORMATS:
            errors.append(
                ValueError(
                    f"invalid 'format' type specified: {self.format}; "
                    f"must be one of {', '.join(ALLOWED_EXPORT_FORMATS)}"
                )
            )
        return errors