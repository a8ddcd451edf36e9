"""Lifting pipeline: CFG recovery, stackless translation and structuring."""

from .acquires import AcquiresSet, compute_acquires
from .cfg import CFG, build_cfg
from .runner import FunctionResult, FunctionState, decompile_function
from .stackless import translate_function
from .structurer import StructuredBody, structure_function

__all__ = [
    "AcquiresSet",
    "CFG",
    "FunctionResult",
    "FunctionState",
    "StructuredBody",
    "build_cfg",
    "compute_acquires",
    "decompile_function",
    "structure_function",
    "translate_function",
]
