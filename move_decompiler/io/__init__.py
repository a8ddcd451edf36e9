"""Input helpers for the decompiler."""

from importlib import import_module
from typing import Any

__all__ = ["load_module", "module_from_dict", "parse_type"]


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in __all__:
        module = import_module(".loader", __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
