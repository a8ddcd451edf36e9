"""Loading compiled modules from their JSON table rendering.

The JSON document mirrors the binary module's pools one to one.  Types are
written as compact strings::

    bool  u8 .. u256  address  signer
    vector<u8>   &u64   &mut T0   #3   #3<u64, T1>

where ``T<n>`` is a type parameter and ``#<n>`` refers to struct handle ``n``.
Instructions are lists whose first element is the opcode name, for example
``["LdU64", 10]`` or ``["VecPack", 4, 2]``; a bare string is accepted for
operand-less opcodes.  Any structural problem raises :class:`LoadError`.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..bytecode.bcs import decode_constant
from ..bytecode.model import (
    CodeUnit,
    CompiledModule,
    Constant,
    FieldDef,
    FieldHandle,
    FieldInstantiation,
    FunctionDef,
    FunctionHandle,
    FunctionInstantiation,
    Instruction,
    ModuleHandle,
    StructDef,
    StructHandle,
    StructInstantiation,
    StructTypeParameter,
    Visibility,
)
from ..bytecode.opcodes import LOAD_LITERAL_WIDTHS, Opcode
from ..bytecode.types import (
    INTEGER_WIDTHS,
    PrimitiveType,
    ReferenceType,
    StructType,
    Type,
    TypeParameter,
    VectorType,
    abilities,
)
from ..exceptions import LoadError

LOGGER = logging.getLogger(__name__)

__all__ = ["load_module", "module_from_dict", "parse_type", "parse_address"]

_PRIMITIVES = set(INTEGER_WIDTHS) | {"bool", "address", "signer"}
_TOKEN = re.compile(r"\s*(&mut\b|&|<|>|,|#\d+|T\d+|[A-Za-z_][A-Za-z0-9_]*)")

# Which pool each operand of an opcode indexes into.  ``None`` marks operands
# that are not pool indices (jump offsets, literal values, element counts).
_OPERAND_POOLS: Dict[Opcode, Tuple[Optional[str], ...]] = {
    Opcode.BR_TRUE: (None,),
    Opcode.BR_FALSE: (None,),
    Opcode.BRANCH: (None,),
    Opcode.LD_CONST: ("constants",),
    Opcode.COPY_LOC: ("locals",),
    Opcode.MOVE_LOC: ("locals",),
    Opcode.ST_LOC: ("locals",),
    Opcode.MUT_BORROW_LOC: ("locals",),
    Opcode.IMM_BORROW_LOC: ("locals",),
    Opcode.MUT_BORROW_FIELD: ("field_handles",),
    Opcode.IMM_BORROW_FIELD: ("field_handles",),
    Opcode.MUT_BORROW_FIELD_GENERIC: ("field_instantiations",),
    Opcode.IMM_BORROW_FIELD_GENERIC: ("field_instantiations",),
    Opcode.CALL: ("function_handles",),
    Opcode.CALL_GENERIC: ("function_instantiations",),
    Opcode.PACK: ("struct_defs",),
    Opcode.UNPACK: ("struct_defs",),
    Opcode.PACK_GENERIC: ("struct_instantiations",),
    Opcode.UNPACK_GENERIC: ("struct_instantiations",),
    Opcode.EXISTS: ("struct_defs",),
    Opcode.MUT_BORROW_GLOBAL: ("struct_defs",),
    Opcode.IMM_BORROW_GLOBAL: ("struct_defs",),
    Opcode.MOVE_FROM: ("struct_defs",),
    Opcode.MOVE_TO: ("struct_defs",),
    Opcode.EXISTS_GENERIC: ("struct_instantiations",),
    Opcode.MUT_BORROW_GLOBAL_GENERIC: ("struct_instantiations",),
    Opcode.IMM_BORROW_GLOBAL_GENERIC: ("struct_instantiations",),
    Opcode.MOVE_FROM_GENERIC: ("struct_instantiations",),
    Opcode.MOVE_TO_GENERIC: ("struct_instantiations",),
    Opcode.VEC_PACK: ("signatures", None),
    Opcode.VEC_UNPACK: ("signatures", None),
    Opcode.VEC_LEN: ("signatures",),
    Opcode.VEC_IMM_BORROW: ("signatures",),
    Opcode.VEC_MUT_BORROW: ("signatures",),
    Opcode.VEC_PUSH_BACK: ("signatures",),
    Opcode.VEC_POP_BACK: ("signatures",),
    Opcode.VEC_SWAP: ("signatures",),
    **{op: (None,) for op in LOAD_LITERAL_WIDTHS},
}

_VARIANT_OPCODES = {
    Opcode.PACK_VARIANT,
    Opcode.UNPACK_VARIANT,
    Opcode.TEST_VARIANT,
    Opcode.PACK_CLOSURE,
    Opcode.CALL_CLOSURE,
}


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def parse_address(value: Any) -> int:
    """Return the integer account address for ``"0x1"``-style input."""

    if isinstance(value, bool):
        raise LoadError(f"invalid address {value!r}")
    if isinstance(value, int):
        address = value
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            address = int(text, 16)
        except ValueError as exc:
            raise LoadError(f"invalid address {value!r}") from exc
    else:
        raise LoadError(f"invalid address {value!r}")
    if address < 0 or address.bit_length() > 256:
        raise LoadError(f"address {value!r} out of range")
    return address


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str):
            try:
                return int(value, 0)
            except ValueError:
                pass
        raise LoadError(f"{what}: expected integer, got {value!r}")
    return value


def _list(payload: Mapping[str, Any], key: str) -> List[Any]:
    value = payload.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise LoadError(f"{key}: expected a list")
    return value


def _obj(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise LoadError(f"{what}: expected an object")
    return value


def _abilities(value: Any, what: str):
    try:
        return abilities(value or ())
    except ValueError as exc:
        raise LoadError(f"{what}: unknown ability in {value!r}") from exc


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class _TypeParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = self._tokenize(text)
        self.pos = 0

    def _tokenize(self, text: str) -> List[str]:
        tokens: List[str] = []
        index = 0
        stripped = text.rstrip()
        while index < len(stripped):
            match = _TOKEN.match(stripped, index)
            if not match:
                raise LoadError(f"cannot parse type {text!r}")
            tokens.append(match.group(1))
            index = match.end()
        return tokens

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            raise LoadError(f"unexpected end of type {self.text!r}")
        self.pos += 1
        return token

    def _expect(self, token: str) -> None:
        if self._next() != token:
            raise LoadError(f"expected {token!r} in type {self.text!r}")

    def parse(self) -> Type:
        ty = self._type()
        if self._peek() is not None:
            raise LoadError(f"trailing input in type {self.text!r}")
        return ty

    def _type(self) -> Type:
        token = self._next()
        if token in ("&", "&mut"):
            inner = self._type()
            if isinstance(inner, ReferenceType):
                raise LoadError(f"nested reference in type {self.text!r}")
            return ReferenceType(inner, mutable=token == "&mut")
        if token == "vector":
            self._expect("<")
            element = self._type()
            self._expect(">")
            return VectorType(element)
        if token.startswith("#"):
            handle = int(token[1:])
            args: Tuple[Type, ...] = ()
            if self._peek() == "<":
                args = self._arguments()
            return StructType(handle, args)
        if re.fullmatch(r"T\d+", token):
            return TypeParameter(int(token[1:]))
        if token in _PRIMITIVES:
            return PrimitiveType(token)
        raise LoadError(f"unknown type {token!r} in {self.text!r}")

    def _arguments(self) -> Tuple[Type, ...]:
        self._expect("<")
        args = [self._type()]
        while self._peek() == ",":
            self._next()
            args.append(self._type())
        self._expect(">")
        return tuple(args)


def parse_type(text: Any) -> Type:
    """Parse a compact type string such as ``"vector<#2<u64>>"``."""

    if not isinstance(text, str):
        raise LoadError(f"type must be a string, got {text!r}")
    return _TypeParser(text).parse()


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _module_handle(entry: Any) -> ModuleHandle:
    entry = _obj(entry, "module handle")
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise LoadError("module handle without a name")
    return ModuleHandle(parse_address(entry.get("address", 0)), name)


def _struct_handle(entry: Any) -> StructHandle:
    entry = _obj(entry, "struct handle")
    params = []
    for param in entry.get("type_parameters", []) or []:
        param = _obj(param, "struct type parameter")
        params.append(
            StructTypeParameter(
                constraints=_abilities(param.get("constraints"), "struct type parameter"),
                is_phantom=bool(param.get("phantom", False)),
            )
        )
    return StructHandle(
        module=_int(entry.get("module", 0), "struct handle module"),
        name=str(entry.get("name", "")),
        abilities=_abilities(entry.get("abilities"), "struct handle"),
        type_parameters=tuple(params),
    )


def _function_handle(entry: Any) -> FunctionHandle:
    entry = _obj(entry, "function handle")
    return FunctionHandle(
        module=_int(entry.get("module", 0), "function handle module"),
        name=str(entry.get("name", "")),
        parameters=_int(entry.get("parameters"), "function handle parameters"),
        returns=_int(entry.get("returns"), "function handle returns"),
        type_parameters=tuple(
            _abilities(constraints, "function type parameter")
            for constraints in entry.get("type_parameters", []) or []
        ),
    )


def _struct_def(entry: Any) -> StructDef:
    entry = _obj(entry, "struct definition")
    handle = _int(entry.get("handle"), "struct definition handle")
    raw_fields = entry.get("fields")
    if raw_fields is None or entry.get("native"):
        return StructDef(handle, None)
    if not isinstance(raw_fields, list):
        raise LoadError("struct definition fields must be a list")
    fields = []
    for raw in raw_fields:
        raw = _obj(raw, "field definition")
        fields.append(FieldDef(str(raw.get("name", "")), parse_type(raw.get("type"))))
    return StructDef(handle, tuple(fields))


def _instruction(raw: Any) -> Instruction:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not raw or not isinstance(raw[0], str):
        raise LoadError(f"malformed instruction {raw!r}")
    try:
        opcode = Opcode.from_name(raw[0])
    except KeyError as exc:
        raise LoadError(f"unknown opcode {raw[0]!r}") from exc
    operands = tuple(_int(value, f"{raw[0]} operand") for value in raw[1:])
    return Instruction(opcode, operands)


def _function_def(entry: Any) -> FunctionDef:
    entry = _obj(entry, "function definition")
    visibility_name = str(entry.get("visibility", "private")).lower()
    try:
        visibility = Visibility(visibility_name)
    except ValueError as exc:
        raise LoadError(f"unknown visibility {visibility_name!r}") from exc
    code = None
    raw_code = entry.get("code")
    if raw_code is not None and not entry.get("native"):
        raw_code = _obj(raw_code, "code unit")
        code = CodeUnit(
            locals=_int(raw_code.get("locals"), "code unit locals"),
            instructions=tuple(_instruction(raw) for raw in raw_code.get("instructions", [])),
        )
    return FunctionDef(
        function=_int(entry.get("function"), "function definition handle"),
        visibility=visibility,
        is_entry=bool(entry.get("is_entry", False)),
        acquires=tuple(_int(i, "acquires") for i in entry.get("acquires", []) or []),
        code=code,
    )


def _constant(entry: Any) -> Constant:
    entry = _obj(entry, "constant")
    ty = parse_type(entry.get("type"))
    raw = entry.get("data", "")
    try:
        data = bytes.fromhex(raw) if isinstance(raw, str) else bytes(raw)
    except (TypeError, ValueError) as exc:
        raise LoadError(f"constant data is not hex: {raw!r}") from exc
    decode_constant(ty, data)
    return Constant(ty, data)


def _instantiations(payload: Mapping[str, Any], key: str, first: str, cls):
    result = []
    for entry in _list(payload, key):
        entry = _obj(entry, key)
        result.append(
            cls(
                _int(entry.get(first), f"{key} {first}"),
                _int(entry.get("type_parameters"), f"{key} type_parameters"),
            )
        )
    return tuple(result)


# ---------------------------------------------------------------------------
# Cross-reference validation
# ---------------------------------------------------------------------------


def _check_index(value: int, pool: Sequence[Any], what: str) -> None:
    if not 0 <= value < len(pool):
        raise LoadError(f"{what} index {value} out of range (pool size {len(pool)})")


def _check_type(ty: Type, module: CompiledModule, what: str) -> None:
    if isinstance(ty, StructType):
        _check_index(ty.handle, module.struct_handles, f"{what} struct handle")
        for arg in ty.type_arguments:
            _check_type(arg, module, what)
    elif isinstance(ty, VectorType):
        _check_type(ty.element, module, what)
    elif isinstance(ty, ReferenceType):
        _check_type(ty.inner, module, what)


def _validate(module: CompiledModule) -> None:
    for handle in module.struct_handles:
        _check_index(handle.module, module.module_handles, f"struct {handle.name} module")
    for handle in module.function_handles:
        _check_index(handle.module, module.module_handles, f"function {handle.name} module")
        _check_index(handle.parameters, module.signatures, f"function {handle.name} parameters")
        _check_index(handle.returns, module.signatures, f"function {handle.name} returns")
    for signature in module.signatures:
        for ty in signature:
            _check_type(ty, module, "signature")
    for sdef in module.struct_defs:
        _check_index(sdef.handle, module.struct_handles, "struct definition handle")
        for fdef in sdef.fields or ():
            _check_type(fdef.type, module, f"field {fdef.name}")
    for fh in module.field_handles:
        _check_index(fh.owner, module.struct_defs, "field handle owner")
        _check_index(fh.field, module.struct_defs[fh.owner].fields or (), "field handle field")
    pools = {
        "struct_instantiations": (module.struct_instantiations, module.struct_defs),
        "function_instantiations": (module.function_instantiations, module.function_handles),
        "field_instantiations": (module.field_instantiations, module.field_handles),
    }
    for key, (entries, target) in pools.items():
        for inst in entries:
            _check_index(_first_field(inst), target, key)
            _check_index(inst.type_parameters, module.signatures, f"{key} type parameters")
    for fdef in module.function_defs:
        _check_index(fdef.function, module.function_handles, "function definition handle")
        for index in fdef.acquires:
            _check_index(index, module.struct_defs, "acquires")
        if fdef.code is not None:
            _check_index(fdef.code.locals, module.signatures, "code unit locals")
            _validate_code(module, fdef)


def _first_field(inst: Any) -> int:
    if isinstance(inst, StructInstantiation):
        return inst.definition
    return inst.handle


def _validate_code(module: CompiledModule, fdef: FunctionDef) -> None:
    name = module.function_name(fdef)
    local_count = len(module.local_types(fdef))
    for offset, instr in enumerate(fdef.code.instructions):
        where = f"{name}@{offset} {instr.opcode.value}"
        if instr.opcode in _VARIANT_OPCODES:
            continue
        pools = _OPERAND_POOLS.get(instr.opcode, ())
        if len(instr.operands) != len(pools):
            raise LoadError(f"{where}: expected {len(pools)} operands, got {len(instr.operands)}")
        for value, pool_name in zip(instr.operands, pools):
            if pool_name is None:
                continue
            if pool_name == "locals":
                if not 0 <= value < local_count:
                    raise LoadError(f"{where}: local {value} out of range")
                continue
            _check_index(value, getattr(module, pool_name), where)
        width = LOAD_LITERAL_WIDTHS.get(instr.opcode)
        if width is not None and not 0 <= instr.operand < (1 << width):
            raise LoadError(f"{where}: literal {instr.operand} does not fit u{width}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def module_from_dict(payload: Mapping[str, Any]) -> CompiledModule:
    """Build a :class:`CompiledModule` from its JSON table rendering.

    When ``module_handles`` is omitted, top-level ``address`` and ``name`` keys
    describe the module itself.
    """

    payload = _obj(payload, "module")
    handles = [_module_handle(entry) for entry in _list(payload, "module_handles")]
    if not handles:
        if "name" not in payload:
            raise LoadError("module has neither module_handles nor a name")
        handles = [_module_handle({"address": payload.get("address", 0), "name": payload["name"]})]

    signatures = []
    for signature in _list(payload, "signatures"):
        if not isinstance(signature, list):
            raise LoadError("signature must be a list of types")
        signatures.append(tuple(parse_type(item) for item in signature))

    module = CompiledModule(
        version=_int(payload.get("version", 6), "version"),
        module_handles=tuple(handles),
        struct_handles=tuple(_struct_handle(e) for e in _list(payload, "struct_handles")),
        field_handles=tuple(
            FieldHandle(_int(_obj(e, "field handle").get("owner"), "field owner"), _int(e.get("field"), "field"))
            for e in _list(payload, "field_handles")
        ),
        function_handles=tuple(_function_handle(e) for e in _list(payload, "function_handles")),
        struct_defs=tuple(_struct_def(e) for e in _list(payload, "struct_defs")),
        function_defs=tuple(_function_def(e) for e in _list(payload, "function_defs")),
        signatures=tuple(signatures),
        constants=tuple(_constant(e) for e in _list(payload, "constants")),
        address_identifiers=tuple(parse_address(a) for a in _list(payload, "address_identifiers")),
        struct_instantiations=_instantiations(payload, "struct_instantiations", "definition", StructInstantiation),
        function_instantiations=_instantiations(payload, "function_instantiations", "handle", FunctionInstantiation),
        field_instantiations=_instantiations(payload, "field_instantiations", "handle", FieldInstantiation),
        friends=tuple(_module_handle(e) for e in _list(payload, "friends")),
    )
    _validate(module)
    LOGGER.debug(
        "Loaded module %s with %d structs and %d functions",
        module.name,
        len(module.struct_defs),
        len(module.function_defs),
    )
    return module


def load_module(path: Path | str) -> CompiledModule:
    """Read and build the module stored as JSON at ``path``."""

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"cannot read {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LoadError(f"{path} is not valid JSON: {exc}") from exc
    LOGGER.info("Loading module description from %s", path)
    return module_from_dict(payload)
