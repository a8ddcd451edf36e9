"""Value-level semantics of non-control instructions.

Both reference interpreters funnel every instruction that is not control
flow or a plain local read/write through :func:`apply`, so they agree on
arithmetic, references, vectors and global storage by construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Protocol, Sequence, Tuple

from ..bytecode.model import CompiledModule, Instruction
from ..bytecode.opcodes import CAST_WIDTHS, LOAD_LITERAL_WIDTHS, Opcode
from ..bytecode.bcs import decode_constant
from ..bytecode.types import Type, substitute
from ..exceptions import VMAbort, VMError
from .values import (
    ARITHMETIC_ERROR,
    INDEX_OUT_OF_BOUNDS,
    Address,
    GlobalStorage,
    Integer,
    Ref,
    ResourceKey,
    Signer,
    StructValue,
    check_index,
    clone,
    from_constant,
)

__all__ = ["Frame", "Runtime", "apply", "HANDLERS"]


@dataclass
class Frame:
    """Locals and type arguments of one active function."""

    locals: List[Any]
    type_arguments: Tuple[Type, ...] = ()


class Runtime(Protocol):
    module: CompiledModule
    storage: GlobalStorage

    def call(self, handle_index: int, type_arguments: Tuple[Type, ...], args: List[Any]) -> List[Any]:
        ...


Handler = Callable[[Runtime, Frame, Instruction, Sequence[Any]], List[Any]]
HANDLERS: Dict[Opcode, Handler] = {}


def _handles(*opcodes: Opcode) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        for opcode in opcodes:
            HANDLERS[opcode] = func
        return func

    return register


def apply(runtime: Runtime, frame: Frame, instr: Instruction, args: Sequence[Any]) -> List[Any]:
    """Execute ``instr`` on ``args`` (push order) and return its results."""

    handler = HANDLERS.get(instr.opcode)
    if handler is None:
        raise VMError(f"no semantics for {instr.opcode.value}")
    return handler(runtime, frame, instr, args)


def _deref(value: Any) -> Any:
    return value.get() if isinstance(value, Ref) else value


# ---------------------------------------------------------------------------
# Loads and casts
# ---------------------------------------------------------------------------


@_handles(*LOAD_LITERAL_WIDTHS)
def _load_int(runtime, frame, instr, args):
    return [Integer(LOAD_LITERAL_WIDTHS[instr.opcode], instr.operand)]


@_handles(Opcode.LD_TRUE, Opcode.LD_FALSE)
def _load_bool(runtime, frame, instr, args):
    return [instr.opcode is Opcode.LD_TRUE]


@_handles(Opcode.LD_CONST)
def _load_const(runtime, frame, instr, args):
    constant = runtime.module.constants[instr.operand]
    return [from_constant(constant.type, decode_constant(constant.type, constant.data))]


@_handles(*CAST_WIDTHS)
def _cast(runtime, frame, instr, args):
    return [Integer(CAST_WIDTHS[instr.opcode], args[0].value)]


# ---------------------------------------------------------------------------
# Arithmetic, bitwise and comparison operators
# ---------------------------------------------------------------------------


@_handles(Opcode.ADD)
def _add(runtime, frame, instr, args):
    a, b = args
    return [Integer(a.bits, a.value + b.value)]


@_handles(Opcode.SUB)
def _sub(runtime, frame, instr, args):
    a, b = args
    return [Integer(a.bits, a.value - b.value)]


@_handles(Opcode.MUL)
def _mul(runtime, frame, instr, args):
    a, b = args
    return [Integer(a.bits, a.value * b.value)]


@_handles(Opcode.DIV, Opcode.MOD)
def _div(runtime, frame, instr, args):
    a, b = args
    if b.value == 0:
        raise VMAbort(ARITHMETIC_ERROR)
    if instr.opcode is Opcode.DIV:
        return [Integer(a.bits, a.value // b.value)]
    return [Integer(a.bits, a.value % b.value)]


@_handles(Opcode.BIT_OR, Opcode.BIT_AND, Opcode.XOR)
def _bitwise(runtime, frame, instr, args):
    a, b = args
    if instr.opcode is Opcode.BIT_OR:
        return [Integer(a.bits, a.value | b.value)]
    if instr.opcode is Opcode.BIT_AND:
        return [Integer(a.bits, a.value & b.value)]
    return [Integer(a.bits, a.value ^ b.value)]


@_handles(Opcode.SHL, Opcode.SHR)
def _shift(runtime, frame, instr, args):
    a, amount = args
    if amount.value >= a.bits:
        raise VMAbort(ARITHMETIC_ERROR)
    if instr.opcode is Opcode.SHL:
        return [Integer(a.bits, (a.value << amount.value) & ((1 << a.bits) - 1))]
    return [Integer(a.bits, a.value >> amount.value)]


@_handles(Opcode.OR, Opcode.AND)
def _logical(runtime, frame, instr, args):
    a, b = args
    return [a or b] if instr.opcode is Opcode.OR else [a and b]


@_handles(Opcode.NOT)
def _not(runtime, frame, instr, args):
    return [not args[0]]


@_handles(Opcode.EQ, Opcode.NEQ)
def _equality(runtime, frame, instr, args):
    equal = _deref(args[0]) == _deref(args[1])
    return [equal if instr.opcode is Opcode.EQ else not equal]


_ORDERING = {
    Opcode.LT: lambda a, b: a < b,
    Opcode.GT: lambda a, b: a > b,
    Opcode.LE: lambda a, b: a <= b,
    Opcode.GE: lambda a, b: a >= b,
}


@_handles(*_ORDERING)
def _compare(runtime, frame, instr, args):
    a, b = args
    return [_ORDERING[instr.opcode](a.value, b.value)]


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@_handles(Opcode.MUT_BORROW_LOC, Opcode.IMM_BORROW_LOC)
def _borrow_loc(runtime, frame, instr, args):
    return [Ref(frame.locals, instr.operand)]


@_handles(
    Opcode.MUT_BORROW_FIELD,
    Opcode.IMM_BORROW_FIELD,
    Opcode.MUT_BORROW_FIELD_GENERIC,
    Opcode.IMM_BORROW_FIELD_GENERIC,
)
def _borrow_field(runtime, frame, instr, args):
    handle_index = instr.operand
    if instr.opcode in (Opcode.MUT_BORROW_FIELD_GENERIC, Opcode.IMM_BORROW_FIELD_GENERIC):
        handle_index, _ = runtime.module.field_instantiation(instr.operand)
    field_index = runtime.module.field_handles[handle_index].field
    target: StructValue = args[0].get()
    return [Ref(target.fields, field_index)]


@_handles(Opcode.READ_REF)
def _read_ref(runtime, frame, instr, args):
    return [clone(args[0].get())]


@_handles(Opcode.WRITE_REF)
def _write_ref(runtime, frame, instr, args):
    value, ref = args
    ref.set(value)
    return []


@_handles(Opcode.FREEZE_REF)
def _freeze_ref(runtime, frame, instr, args):
    return [args[0]]


# ---------------------------------------------------------------------------
# Calls and structs
# ---------------------------------------------------------------------------


def _instantiate(frame: Frame, types: Sequence[Type]) -> Tuple[Type, ...]:
    return tuple(substitute(ty, frame.type_arguments) for ty in types)


@_handles(Opcode.CALL, Opcode.CALL_GENERIC)
def _call(runtime, frame, instr, args):
    handle_index = instr.operand
    type_args: Tuple[Type, ...] = ()
    if instr.opcode is Opcode.CALL_GENERIC:
        handle_index, types = runtime.module.function_instantiation(instr.operand)
        type_args = _instantiate(frame, types)
    return runtime.call(handle_index, type_args, list(args))


def _struct_target(runtime: Runtime, frame: Frame, instr: Instruction) -> Tuple[int, Tuple[Type, ...]]:
    if instr.opcode.value.endswith("Generic"):
        def_index, types = runtime.module.struct_instantiation(instr.operand)
        return def_index, _instantiate(frame, types)
    return instr.operand, ()


@_handles(Opcode.PACK, Opcode.PACK_GENERIC)
def _pack(runtime, frame, instr, args):
    def_index, type_args = _struct_target(runtime, frame, instr)
    return [StructValue(def_index, list(args), type_args)]


@_handles(Opcode.UNPACK, Opcode.UNPACK_GENERIC)
def _unpack(runtime, frame, instr, args):
    return list(args[0].fields)


# ---------------------------------------------------------------------------
# Global storage
# ---------------------------------------------------------------------------


def _resource_key(runtime: Runtime, frame: Frame, instr: Instruction, address: Any) -> ResourceKey:
    def_index, type_args = _struct_target(runtime, frame, instr)
    if isinstance(address, Ref):
        address = address.get()
    if isinstance(address, Signer):
        return def_index, type_args, address.address
    if isinstance(address, Address):
        return def_index, type_args, address.value
    raise VMError(f"expected an address, got {address!r}")


@_handles(Opcode.EXISTS, Opcode.EXISTS_GENERIC)
def _exists(runtime, frame, instr, args):
    return [runtime.storage.exists(_resource_key(runtime, frame, instr, args[0]))]


@_handles(
    Opcode.MUT_BORROW_GLOBAL,
    Opcode.MUT_BORROW_GLOBAL_GENERIC,
    Opcode.IMM_BORROW_GLOBAL,
    Opcode.IMM_BORROW_GLOBAL_GENERIC,
)
def _borrow_global(runtime, frame, instr, args):
    return [runtime.storage.borrow(_resource_key(runtime, frame, instr, args[0]))]


@_handles(Opcode.MOVE_FROM, Opcode.MOVE_FROM_GENERIC)
def _move_from(runtime, frame, instr, args):
    return [runtime.storage.move_from(_resource_key(runtime, frame, instr, args[0]))]


@_handles(Opcode.MOVE_TO, Opcode.MOVE_TO_GENERIC)
def _move_to(runtime, frame, instr, args):
    signer, value = args
    runtime.storage.move_to(_resource_key(runtime, frame, instr, signer), value)
    return []


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


@_handles(Opcode.VEC_PACK)
def _vec_pack(runtime, frame, instr, args):
    return [list(args)]


@_handles(Opcode.VEC_UNPACK)
def _vec_unpack(runtime, frame, instr, args):
    vector = args[0]
    if len(vector) != instr.operands[1]:
        raise VMAbort(INDEX_OUT_OF_BOUNDS)
    return list(vector)


@_handles(Opcode.VEC_LEN)
def _vec_len(runtime, frame, instr, args):
    return [Integer(64, len(args[0].get()))]


@_handles(Opcode.VEC_IMM_BORROW, Opcode.VEC_MUT_BORROW)
def _vec_borrow(runtime, frame, instr, args):
    ref, index = args
    vector = ref.get()
    check_index(vector, index.value)
    return [Ref(vector, index.value)]


@_handles(Opcode.VEC_PUSH_BACK)
def _vec_push_back(runtime, frame, instr, args):
    ref, value = args
    ref.get().append(value)
    return []


@_handles(Opcode.VEC_POP_BACK)
def _vec_pop_back(runtime, frame, instr, args):
    vector = args[0].get()
    if not vector:
        raise VMAbort(INDEX_OUT_OF_BOUNDS)
    return [vector.pop()]


@_handles(Opcode.VEC_SWAP)
def _vec_swap(runtime, frame, instr, args):
    ref, i, j = args
    vector = ref.get()
    check_index(vector, i.value)
    check_index(vector, j.value)
    vector[i.value], vector[j.value] = vector[j.value], vector[i.value]
    return []
