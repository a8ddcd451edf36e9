"""Move bytecode opcodes and their operand-stack effects."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable, Dict, Tuple, Union

from ..exceptions import UnsupportedInstruction

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .model import CompiledModule, Instruction

__all__ = [
    "Opcode",
    "StackEffect",
    "STACK_EFFECTS",
    "stack_effect",
    "BRANCH_OPCODES",
    "TERMINATOR_OPCODES",
    "LOAD_LITERAL_WIDTHS",
    "CAST_WIDTHS",
    "BINARY_OPERATORS",
    "GLOBAL_STORAGE_OPCODES",
    "LOCAL_WRITING_OPCODES",
]


class Opcode(enum.Enum):
    POP = "Pop"
    RET = "Ret"
    BR_TRUE = "BrTrue"
    BR_FALSE = "BrFalse"
    BRANCH = "Branch"
    LD_U8 = "LdU8"
    LD_U16 = "LdU16"
    LD_U32 = "LdU32"
    LD_U64 = "LdU64"
    LD_U128 = "LdU128"
    LD_U256 = "LdU256"
    CAST_U8 = "CastU8"
    CAST_U16 = "CastU16"
    CAST_U32 = "CastU32"
    CAST_U64 = "CastU64"
    CAST_U128 = "CastU128"
    CAST_U256 = "CastU256"
    LD_CONST = "LdConst"
    LD_TRUE = "LdTrue"
    LD_FALSE = "LdFalse"
    COPY_LOC = "CopyLoc"
    MOVE_LOC = "MoveLoc"
    ST_LOC = "StLoc"
    MUT_BORROW_LOC = "MutBorrowLoc"
    IMM_BORROW_LOC = "ImmBorrowLoc"
    MUT_BORROW_FIELD = "MutBorrowField"
    MUT_BORROW_FIELD_GENERIC = "MutBorrowFieldGeneric"
    IMM_BORROW_FIELD = "ImmBorrowField"
    IMM_BORROW_FIELD_GENERIC = "ImmBorrowFieldGeneric"
    CALL = "Call"
    CALL_GENERIC = "CallGeneric"
    PACK = "Pack"
    PACK_GENERIC = "PackGeneric"
    UNPACK = "Unpack"
    UNPACK_GENERIC = "UnpackGeneric"
    READ_REF = "ReadRef"
    WRITE_REF = "WriteRef"
    FREEZE_REF = "FreezeRef"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    MOD = "Mod"
    DIV = "Div"
    BIT_OR = "BitOr"
    BIT_AND = "BitAnd"
    XOR = "Xor"
    OR = "Or"
    AND = "And"
    NOT = "Not"
    EQ = "Eq"
    NEQ = "Neq"
    LT = "Lt"
    GT = "Gt"
    LE = "Le"
    GE = "Ge"
    SHL = "Shl"
    SHR = "Shr"
    ABORT = "Abort"
    NOP = "Nop"
    EXISTS = "Exists"
    EXISTS_GENERIC = "ExistsGeneric"
    MUT_BORROW_GLOBAL = "MutBorrowGlobal"
    MUT_BORROW_GLOBAL_GENERIC = "MutBorrowGlobalGeneric"
    IMM_BORROW_GLOBAL = "ImmBorrowGlobal"
    IMM_BORROW_GLOBAL_GENERIC = "ImmBorrowGlobalGeneric"
    MOVE_FROM = "MoveFrom"
    MOVE_FROM_GENERIC = "MoveFromGeneric"
    MOVE_TO = "MoveTo"
    MOVE_TO_GENERIC = "MoveToGeneric"
    VEC_PACK = "VecPack"
    VEC_LEN = "VecLen"
    VEC_IMM_BORROW = "VecImmBorrow"
    VEC_MUT_BORROW = "VecMutBorrow"
    VEC_PUSH_BACK = "VecPushBack"
    VEC_POP_BACK = "VecPopBack"
    VEC_UNPACK = "VecUnpack"
    VEC_SWAP = "VecSwap"
    # Bytecode version 7+ (enums and closures); recognised but not lifted.
    PACK_VARIANT = "PackVariant"
    UNPACK_VARIANT = "UnpackVariant"
    TEST_VARIANT = "TestVariant"
    PACK_CLOSURE = "PackClosure"
    CALL_CLOSURE = "CallClosure"

    @classmethod
    def from_name(cls, name: str) -> "Opcode":
        try:
            return cls(name)
        except ValueError:
            return cls[name.upper()]


Resolver = Callable[["CompiledModule", "Instruction"], Tuple[int, int]]
StackEffect = Union[Tuple[int, int], Resolver]


def _call_effect(module: "CompiledModule", instr: "Instruction") -> Tuple[int, int]:
    handle_index = instr.operand
    if instr.opcode is Opcode.CALL_GENERIC:
        handle_index, _ = module.function_instantiation(instr.operand)
    handle = module.function_handles[handle_index]
    return len(module.signatures[handle.parameters]), len(module.signatures[handle.returns])


def _field_count(module: "CompiledModule", instr: "Instruction") -> int:
    def_index = instr.operand
    if instr.opcode in (Opcode.PACK_GENERIC, Opcode.UNPACK_GENERIC):
        def_index, _ = module.struct_instantiation(instr.operand)
    return len(module.struct_defs[def_index].fields or ())


def _pack_effect(module: "CompiledModule", instr: "Instruction") -> Tuple[int, int]:
    return _field_count(module, instr), 1


def _unpack_effect(module: "CompiledModule", instr: "Instruction") -> Tuple[int, int]:
    return 1, _field_count(module, instr)


def _vec_pack_effect(module: "CompiledModule", instr: "Instruction") -> Tuple[int, int]:
    return instr.operands[1], 1


def _vec_unpack_effect(module: "CompiledModule", instr: "Instruction") -> Tuple[int, int]:
    return 1, instr.operands[1]


STACK_EFFECTS: Dict[Opcode, StackEffect] = {
    Opcode.POP: (1, 0),
    Opcode.BR_TRUE: (1, 0),
    Opcode.BR_FALSE: (1, 0),
    Opcode.BRANCH: (0, 0),
    Opcode.LD_U8: (0, 1),
    Opcode.LD_U16: (0, 1),
    Opcode.LD_U32: (0, 1),
    Opcode.LD_U64: (0, 1),
    Opcode.LD_U128: (0, 1),
    Opcode.LD_U256: (0, 1),
    Opcode.CAST_U8: (1, 1),
    Opcode.CAST_U16: (1, 1),
    Opcode.CAST_U32: (1, 1),
    Opcode.CAST_U64: (1, 1),
    Opcode.CAST_U128: (1, 1),
    Opcode.CAST_U256: (1, 1),
    Opcode.LD_CONST: (0, 1),
    Opcode.LD_TRUE: (0, 1),
    Opcode.LD_FALSE: (0, 1),
    Opcode.COPY_LOC: (0, 1),
    Opcode.MOVE_LOC: (0, 1),
    Opcode.ST_LOC: (1, 0),
    Opcode.MUT_BORROW_LOC: (0, 1),
    Opcode.IMM_BORROW_LOC: (0, 1),
    Opcode.MUT_BORROW_FIELD: (1, 1),
    Opcode.MUT_BORROW_FIELD_GENERIC: (1, 1),
    Opcode.IMM_BORROW_FIELD: (1, 1),
    Opcode.IMM_BORROW_FIELD_GENERIC: (1, 1),
    Opcode.CALL: _call_effect,
    Opcode.CALL_GENERIC: _call_effect,
    Opcode.PACK: _pack_effect,
    Opcode.PACK_GENERIC: _pack_effect,
    Opcode.UNPACK: _unpack_effect,
    Opcode.UNPACK_GENERIC: _unpack_effect,
    Opcode.READ_REF: (1, 1),
    Opcode.WRITE_REF: (2, 0),
    Opcode.FREEZE_REF: (1, 1),
    Opcode.ADD: (2, 1),
    Opcode.SUB: (2, 1),
    Opcode.MUL: (2, 1),
    Opcode.MOD: (2, 1),
    Opcode.DIV: (2, 1),
    Opcode.BIT_OR: (2, 1),
    Opcode.BIT_AND: (2, 1),
    Opcode.XOR: (2, 1),
    Opcode.OR: (2, 1),
    Opcode.AND: (2, 1),
    Opcode.NOT: (1, 1),
    Opcode.EQ: (2, 1),
    Opcode.NEQ: (2, 1),
    Opcode.LT: (2, 1),
    Opcode.GT: (2, 1),
    Opcode.LE: (2, 1),
    Opcode.GE: (2, 1),
    Opcode.SHL: (2, 1),
    Opcode.SHR: (2, 1),
    Opcode.ABORT: (1, 0),
    Opcode.NOP: (0, 0),
    Opcode.EXISTS: (1, 1),
    Opcode.EXISTS_GENERIC: (1, 1),
    Opcode.MUT_BORROW_GLOBAL: (1, 1),
    Opcode.MUT_BORROW_GLOBAL_GENERIC: (1, 1),
    Opcode.IMM_BORROW_GLOBAL: (1, 1),
    Opcode.IMM_BORROW_GLOBAL_GENERIC: (1, 1),
    Opcode.MOVE_FROM: (1, 1),
    Opcode.MOVE_FROM_GENERIC: (1, 1),
    Opcode.MOVE_TO: (2, 0),
    Opcode.MOVE_TO_GENERIC: (2, 0),
    Opcode.VEC_PACK: _vec_pack_effect,
    Opcode.VEC_LEN: (1, 1),
    Opcode.VEC_IMM_BORROW: (2, 1),
    Opcode.VEC_MUT_BORROW: (2, 1),
    Opcode.VEC_PUSH_BACK: (2, 0),
    Opcode.VEC_POP_BACK: (1, 1),
    Opcode.VEC_UNPACK: _vec_unpack_effect,
    Opcode.VEC_SWAP: (3, 0),
}


def stack_effect(
    module: "CompiledModule",
    instr: "Instruction",
    *,
    function_returns: int = 0,
    offset: int | None = None,
) -> Tuple[int, int]:
    """Return ``(pops, pushes)`` for *instr*.

    ``Ret`` pops the enclosing function's result count, supplied through
    *function_returns*.  Opcodes without a table entry raise
    :class:`UnsupportedInstruction`.
    """

    if instr.opcode is Opcode.RET:
        return function_returns, 0
    entry = STACK_EFFECTS.get(instr.opcode)
    if entry is None:
        raise UnsupportedInstruction(instr.opcode.value, offset)
    if callable(entry):
        return entry(module, instr)
    return entry


BRANCH_OPCODES = frozenset({Opcode.BRANCH, Opcode.BR_TRUE, Opcode.BR_FALSE})
TERMINATOR_OPCODES = BRANCH_OPCODES | {Opcode.RET, Opcode.ABORT}

LOAD_LITERAL_WIDTHS = {
    Opcode.LD_U8: 8,
    Opcode.LD_U16: 16,
    Opcode.LD_U32: 32,
    Opcode.LD_U64: 64,
    Opcode.LD_U128: 128,
    Opcode.LD_U256: 256,
}

CAST_WIDTHS = {
    Opcode.CAST_U8: 8,
    Opcode.CAST_U16: 16,
    Opcode.CAST_U32: 32,
    Opcode.CAST_U64: 64,
    Opcode.CAST_U128: 128,
    Opcode.CAST_U256: 256,
}

BINARY_OPERATORS = {
    Opcode.ADD: "+",
    Opcode.SUB: "-",
    Opcode.MUL: "*",
    Opcode.MOD: "%",
    Opcode.DIV: "/",
    Opcode.BIT_OR: "|",
    Opcode.BIT_AND: "&",
    Opcode.XOR: "^",
    Opcode.OR: "||",
    Opcode.AND: "&&",
    Opcode.EQ: "==",
    Opcode.NEQ: "!=",
    Opcode.LT: "<",
    Opcode.GT: ">",
    Opcode.LE: "<=",
    Opcode.GE: ">=",
    Opcode.SHL: "<<",
    Opcode.SHR: ">>",
}

GLOBAL_STORAGE_OPCODES = frozenset(
    {
        Opcode.EXISTS,
        Opcode.EXISTS_GENERIC,
        Opcode.MUT_BORROW_GLOBAL,
        Opcode.MUT_BORROW_GLOBAL_GENERIC,
        Opcode.IMM_BORROW_GLOBAL,
        Opcode.IMM_BORROW_GLOBAL_GENERIC,
        Opcode.MOVE_FROM,
        Opcode.MOVE_FROM_GENERIC,
        Opcode.MOVE_TO,
        Opcode.MOVE_TO_GENERIC,
    }
)

# Instructions that may write a local slot through a mutable reference.
LOCAL_WRITING_OPCODES = frozenset(
    {
        Opcode.WRITE_REF,
        Opcode.CALL,
        Opcode.CALL_GENERIC,
        Opcode.VEC_PUSH_BACK,
        Opcode.VEC_POP_BACK,
        Opcode.VEC_SWAP,
    }
)
