"""Decompiler for compiled Move bytecode modules."""

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

_LAZY = {
    "decompile_module": ".pipeline",
    "DecompileResult": ".pipeline",
    "load_module": ".io.loader",
    "module_from_dict": ".io.loader",
}

__all__ = ["__version__", *_LAZY]


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in _LAZY:
        module = import_module(_LAZY[name], __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
