from __future__ import annotations

import json

import pytest

from conftest import ModuleBuilder
from move_decompiler.bytecode.model import Visibility
from move_decompiler.bytecode.opcodes import Opcode
from move_decompiler.bytecode.types import (
    Ability,
    PrimitiveType,
    ReferenceType,
    StructType,
    TypeParameter,
    VectorType,
)
from move_decompiler.exceptions import LoadError
from move_decompiler.io import load_module, module_from_dict, parse_type


def test_parse_type_nested():
    ty = parse_type("&mut vector<#2<u64, T1>>")
    assert ty == ReferenceType(
        VectorType(StructType(2, (PrimitiveType("u64"), TypeParameter(1)))), mutable=True
    )


@pytest.mark.parametrize("text", ["vector<u8", "&&u8", "u7", "#x", "u64 u64", ""])
def test_parse_type_rejects_malformed(text):
    with pytest.raises(LoadError):
        parse_type(text)


def test_module_tables_are_loaded(builder: ModuleBuilder):
    counter = builder.struct("Counter", [("value", "u64")], abilities=["key", "store"])
    builder.function("get", ["address"], ["u64"], code=[["LdU64", 3], "Ret"], is_entry=True)
    builder.function("helper", [], [], code=["Ret"], visibility="friend")
    module = builder.build()

    assert module.name == "m"
    assert module.address == 1
    assert module.struct_name(counter) == "Counter"
    assert module.struct_handle_for_def(counter).abilities == {Ability.KEY, Ability.STORE}
    get, helper = module.function_defs
    assert get.is_entry and get.visibility is Visibility.PUBLIC
    assert helper.visibility is Visibility.FRIEND
    assert get.code.instructions[0].opcode is Opcode.LD_U64
    assert get.code.instructions[0].operand == 3
    assert module.parameters(get) == (PrimitiveType("address"),)


def test_module_name_without_handles():
    module = module_from_dict({"address": "0x2a", "name": "solo"})
    assert (module.address, module.name) == (0x2A, "solo")


def test_load_module_from_file(tmp_path, builder: ModuleBuilder):
    builder.function("f", code=["Ret"])
    module = load_module(builder.write(tmp_path / "m.json"))
    assert module.function_name(module.function_defs[0]) == "f"


def test_load_module_rejects_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(LoadError):
        load_module(path)


def test_load_module_missing_file(tmp_path):
    with pytest.raises(LoadError):
        load_module(tmp_path / "absent.json")


def _broken(mutate):
    b = ModuleBuilder()
    b.struct("S", [("x", "u8")])
    b.function("f", ["u64"], [], code=[["MoveLoc", 0], "Pop", "Ret"])
    payload = b.to_dict()
    mutate(payload)
    return payload


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p["function_defs"][0].update(function=9),
        lambda p: p["function_handles"][0].update(parameters=42),
        lambda p: p["struct_handles"][0].update(abilities=["fly"]),
        lambda p: p["function_defs"][0]["code"]["instructions"].insert(0, ["Explode"]),
        lambda p: p["function_defs"][0]["code"]["instructions"].insert(0, ["CopyLoc", 5]),
        lambda p: p["function_defs"][0]["code"]["instructions"].insert(0, ["LdU8", 256]),
        lambda p: p["function_defs"][0]["code"]["instructions"].insert(0, ["Pack"]),
        lambda p: p["function_defs"][0]["code"]["instructions"].insert(0, ["Pack", 3]),
        lambda p: p["constants"].append({"type": "u64", "data": "01"}),
        lambda p: p["signatures"].append(["#7"]),
        lambda p: p.update(struct_defs={"handle": 0}),
        lambda p: p.update(module_handles=[]) or p.pop("name", None),
    ],
)
def test_structural_problems_raise_load_error(mutate):
    with pytest.raises(LoadError):
        module_from_dict(_broken(mutate))


def test_variant_opcodes_load_without_operand_checks(builder: ModuleBuilder):
    builder.function("f", code=[["PackVariant", 0], "Ret"])
    module = builder.build()
    assert module.function_defs[0].code.instructions[0].opcode is Opcode.PACK_VARIANT


def test_large_literals_accept_strings(builder: ModuleBuilder):
    big = str(1 << 200)
    builder.function("f", [], ["u256"], code=[["LdU256", big], "Ret"])
    module = builder.build()
    assert module.function_defs[0].code.instructions[0].operand == 1 << 200


def test_json_round_trip_through_file(tmp_path, builder: ModuleBuilder):
    builder.constant("vector<u8>", "03010203")
    builder.function("f", [], ["vector<u8>"], code=[["LdConst", 0], "Ret"])
    path = tmp_path / "m.json"
    path.write_text(json.dumps(builder.to_dict()), encoding="utf-8")
    module = load_module(str(path))
    assert module.constants[0].data == bytes([3, 1, 2, 3])
