"""Infer the ``acquires`` annotation of a function from its instructions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple

from ..bytecode.model import CompiledModule, FunctionDef
from ..bytecode.opcodes import GLOBAL_STORAGE_OPCODES, Opcode
from ..bytecode.types import Ability

__all__ = ["AcquiresSet", "compute_acquires"]

_GENERIC = {
    Opcode.EXISTS_GENERIC,
    Opcode.MUT_BORROW_GLOBAL_GENERIC,
    Opcode.IMM_BORROW_GLOBAL_GENERIC,
    Opcode.MOVE_FROM_GENERIC,
    Opcode.MOVE_TO_GENERIC,
}


@dataclass(frozen=True)
class AcquiresSet:
    """Struct definitions touched in global storage, in first-use order."""

    structs: Tuple[int, ...] = ()

    def __iter__(self) -> Iterator[int]:
        return iter(self.structs)

    def __len__(self) -> int:
        return len(self.structs)

    def __contains__(self, def_index: object) -> bool:
        return def_index in self.structs

    def names(self, module: CompiledModule) -> List[str]:
        return [module.struct_name(index) for index in self.structs]


def compute_acquires(module: CompiledModule, fdef: FunctionDef) -> AcquiresSet:
    """Collect key structs used by global-storage instructions in ``fdef``.

    Only the function's own instructions are scanned; callees are not
    followed.  Native functions acquire nothing.
    """

    if fdef.code is None:
        return AcquiresSet()
    seen: List[int] = []
    for instr in fdef.code.instructions:
        if instr.opcode not in GLOBAL_STORAGE_OPCODES:
            continue
        def_index = instr.operand
        if instr.opcode in _GENERIC:
            def_index, _ = module.struct_instantiation(instr.operand)
        if Ability.KEY not in module.struct_handle_for_def(def_index).abilities:
            continue
        if def_index not in seen:
            seen.append(def_index)
    return AcquiresSet(tuple(seen))
