"""Test configuration ensuring the project source tree is importable."""

from __future__ import annotations

import copy
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
if str(TESTS) not in sys.path:
    sys.path.insert(1, str(TESTS))

from move_decompiler.io.loader import module_from_dict  # noqa: E402


class ModuleBuilder:
    """Assemble the JSON table rendering of a module for tests.

    Struct handles and definitions are created together, so ``#<n>`` in a
    type string is the struct declared ``n``-th unless external handles were
    added first.
    """

    def __init__(self, name: str = "m", address: str = "0x1", version: int = 6) -> None:
        self.payload: Dict[str, Any] = {
            "version": version,
            "module_handles": [{"address": address, "name": name}],
            "struct_handles": [],
            "field_handles": [],
            "function_handles": [],
            "struct_defs": [],
            "function_defs": [],
            "signatures": [],
            "constants": [],
            "struct_instantiations": [],
            "function_instantiations": [],
            "field_instantiations": [],
            "friends": [],
        }

    # -- pools -------------------------------------------------------------

    def signature(self, types: Sequence[str]) -> int:
        types = list(types)
        signatures = self.payload["signatures"]
        if types in signatures:
            return signatures.index(types)
        signatures.append(types)
        return len(signatures) - 1

    def module_handle(self, address: str, name: str) -> int:
        self.payload["module_handles"].append({"address": address, "name": name})
        return len(self.payload["module_handles"]) - 1

    def constant(self, type_: str, data_hex: str) -> int:
        self.payload["constants"].append({"type": type_, "data": data_hex})
        return len(self.payload["constants"]) - 1

    def friend(self, address: str, name: str) -> None:
        self.payload["friends"].append({"address": address, "name": name})

    # -- structs -----------------------------------------------------------

    def struct_handle(
        self,
        name: str,
        *,
        module: int = 0,
        abilities: Sequence[str] = (),
        type_parameters: Sequence[Dict[str, Any]] = (),
    ) -> int:
        self.payload["struct_handles"].append(
            {
                "module": module,
                "name": name,
                "abilities": list(abilities),
                "type_parameters": list(type_parameters),
            }
        )
        return len(self.payload["struct_handles"]) - 1

    def struct(
        self,
        name: str,
        fields: Optional[Sequence[Sequence[str]]],
        *,
        abilities: Sequence[str] = (),
        type_parameters: Sequence[Dict[str, Any]] = (),
    ) -> int:
        """Declare a struct; returns its definition index."""

        handle = self.struct_handle(name, abilities=abilities, type_parameters=type_parameters)
        entry: Dict[str, Any] = {"handle": handle}
        if fields is None:
            entry["native"] = True
        else:
            entry["fields"] = [{"name": n, "type": t} for n, t in fields]
        self.payload["struct_defs"].append(entry)
        return len(self.payload["struct_defs"]) - 1

    def field_handle(self, owner: int, field: int) -> int:
        self.payload["field_handles"].append({"owner": owner, "field": field})
        return len(self.payload["field_handles"]) - 1

    def struct_instantiation(self, definition: int, types: Sequence[str]) -> int:
        self.payload["struct_instantiations"].append(
            {"definition": definition, "type_parameters": self.signature(types)}
        )
        return len(self.payload["struct_instantiations"]) - 1

    def function_instantiation(self, handle: int, types: Sequence[str]) -> int:
        self.payload["function_instantiations"].append(
            {"handle": handle, "type_parameters": self.signature(types)}
        )
        return len(self.payload["function_instantiations"]) - 1

    # -- functions ---------------------------------------------------------

    def function_handle(
        self,
        name: str,
        params: Sequence[str] = (),
        returns: Sequence[str] = (),
        *,
        module: int = 0,
        type_parameters: Sequence[Sequence[str]] = (),
    ) -> int:
        self.payload["function_handles"].append(
            {
                "module": module,
                "name": name,
                "parameters": self.signature(params),
                "returns": self.signature(returns),
                "type_parameters": [list(c) for c in type_parameters],
            }
        )
        return len(self.payload["function_handles"]) - 1

    def function(
        self,
        name: str,
        params: Sequence[str] = (),
        returns: Sequence[str] = (),
        *,
        locals: Sequence[str] = (),
        code: Optional[List[Any]] = None,
        visibility: str = "public",
        is_entry: bool = False,
        native: bool = False,
        type_parameters: Sequence[Sequence[str]] = (),
        acquires: Sequence[int] = (),
    ) -> int:
        """Declare a function definition; returns its handle index."""

        handle = self.function_handle(name, params, returns, type_parameters=type_parameters)
        entry: Dict[str, Any] = {
            "function": handle,
            "visibility": visibility,
            "is_entry": is_entry,
            "acquires": list(acquires),
        }
        if native:
            entry["code"] = None
        else:
            entry["code"] = {"locals": self.signature(locals), "instructions": list(code or [])}
        self.payload["function_defs"].append(entry)
        return handle

    # -- output ------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.payload)

    def build(self):
        return module_from_dict(self.to_dict())

    def write(self, path: Path) -> Path:
        path.write_text(json.dumps(self.payload, indent=2), encoding="utf-8")
        return path


SUM_LOOP = [
    ["LdU64", 0],
    ["StLoc", 1],
    ["LdU64", 0],
    ["StLoc", 2],
    ["CopyLoc", 1],
    ["CopyLoc", 0],
    "Lt",
    ["BrFalse", 17],
    ["MoveLoc", 2],
    ["CopyLoc", 1],
    "Add",
    ["StLoc", 2],
    ["MoveLoc", 1],
    ["LdU64", 1],
    "Add",
    ["StLoc", 1],
    ["Branch", 4],
    ["MoveLoc", 2],
    "Ret",
]

U128_STEP = 10**20
U256_STEP = 10**60

# widths(n: u64): (u8, u128, u256) adds a literal of each width per iteration.
WIDTHS_LOOP = [
    ["LdU8", 0],
    ["StLoc", 2],
    ["LdU128", 0],
    ["StLoc", 3],
    ["LdU256", 0],
    ["StLoc", 4],
    ["LdU64", 0],
    ["StLoc", 1],
    ["CopyLoc", 1],
    ["CopyLoc", 0],
    "Lt",
    ["BrFalse", 29],
    ["MoveLoc", 2],
    ["LdU8", 3],
    "Add",
    ["StLoc", 2],
    ["MoveLoc", 3],
    ["LdU128", U128_STEP],
    "Add",
    ["StLoc", 3],
    ["MoveLoc", 4],
    ["LdU256", U256_STEP],
    "Add",
    ["StLoc", 4],
    ["MoveLoc", 1],
    ["LdU64", 1],
    "Add",
    ["StLoc", 1],
    ["Branch", 8],
    ["MoveLoc", 2],
    ["MoveLoc", 3],
    ["MoveLoc", 4],
    "Ret",
]


def else_if_chain(arms: int) -> List[Any]:
    """``classify(u64): u64`` returning ``i`` for input ``i`` over ``arms`` tests."""

    code: List[Any] = []
    for value in range(arms):
        next_test = len(code) + 6
        code.extend([["CopyLoc", 0], ["LdU64", value], "Eq", ["BrFalse", next_test], ["LdU64", value], "Ret"])
    code.extend([["LdU64", arms], "Ret"])
    return code


MAX_BRANCH = [
    ["CopyLoc", 0],
    ["CopyLoc", 1],
    "Gt",
    ["BrFalse", 6],
    ["MoveLoc", 0],
    "Ret",
    ["MoveLoc", 1],
    "Ret",
]


def add_counter_struct(builder: ModuleBuilder) -> int:
    """``struct Counter has key { value: u64 }``; returns the definition index."""

    return builder.struct("Counter", [("value", "u64")], abilities=["key"])


@pytest.fixture
def builder() -> ModuleBuilder:
    return ModuleBuilder()


@pytest.fixture
def sum_module():
    b = ModuleBuilder()
    b.function("sum", ["u64"], ["u64"], locals=["u64", "u64"], code=SUM_LOOP)
    return b.build()


@pytest.fixture
def counter_module():
    """A module publishing, reading and bumping a ``Counter`` resource."""

    b = ModuleBuilder(name="counter")
    counter = add_counter_struct(b)
    value = b.field_handle(counter, 0)
    b.function(
        "publish",
        ["&signer", "u64"],
        [],
        code=[
            ["MoveLoc", 0],
            ["MoveLoc", 1],
            ["Pack", counter],
            ["MoveTo", counter],
            "Ret",
        ],
    )
    b.function(
        "get",
        ["address"],
        ["u64"],
        code=[
            ["CopyLoc", 0],
            ["ImmBorrowGlobal", counter],
            ["ImmBorrowField", value],
            "ReadRef",
            "Ret",
        ],
    )
    b.function(
        "bump",
        ["address"],
        [],
        locals=["&mut #0"],
        code=[
            ["CopyLoc", 0],
            ["Exists", counter],
            ["BrTrue", 5],
            ["LdU64", 7],
            "Abort",
            ["CopyLoc", 0],
            ["MutBorrowGlobal", counter],
            ["StLoc", 1],
            ["CopyLoc", 1],
            ["MutBorrowField", value],
            "ReadRef",
            ["LdU64", 1],
            "Add",
            ["MoveLoc", 1],
            ["MutBorrowField", value],
            "WriteRef",
            "Ret",
        ],
    )
    return b.build()
