"""Structured decompilation report helpers."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List


@dataclass
class DecompileReport:
    """Summarises a single decompilation run for maintainers."""

    module: str = ""
    bytecode_version: int = 0
    function_count: int = 0
    native_count: int = 0
    printed_count: int = 0
    unstructured: List[str] = field(default_factory=list)
    failures: Dict[str, List[str]] = field(default_factory=dict)
    lints: Dict[str, List[str]] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_text(self) -> str:
        """Format the report as a human-readable summary."""

        lines: List[str] = []
        lines.append(f"Module: {self.module} (bytecode version {self.bytecode_version})")
        lines.append(
            f"Functions: {self.function_count} total, {self.printed_count} printed, "
            f"{self.native_count} native, {self.failed_count} failed"
        )
        if self.unstructured:
            lines.append("Unstructured: " + ", ".join(self.unstructured))
        if self.failures:
            lines.append("Failures:")
            for name, messages in sorted(self.failures.items()):
                lines.extend(f"  - {name}: {message}" for message in messages)
        if self.lints:
            lines.append("Lints:")
            for name, messages in sorted(self.lints.items()):
                lines.extend(f"  - {name}: {message}" for message in messages)
        lines.append(f"Duration: {self.duration:.3f}s")
        return "\n".join(lines)

    def to_json(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation."""

        data = asdict(self)
        data["failed_count"] = self.failed_count
        data["duration"] = round(self.duration, 6)
        return data


__all__ = ["DecompileReport"]
