from __future__ import annotations

from conftest import ModuleBuilder, add_counter_struct
from move_decompiler.lifter.acquires import AcquiresSet, compute_acquires


def _acquires(module, index):
    return compute_acquires(module, module.function_defs[index])


def test_counter_functions(counter_module):
    publish, get, bump = (_acquires(counter_module, i) for i in range(3))
    assert publish.names(counter_module) == ["Counter"]
    assert get.names(counter_module) == ["Counter"]
    assert bump.names(counter_module) == ["Counter"]
    assert len(bump) == 1


def test_first_use_order_and_deduplication(builder: ModuleBuilder):
    first = add_counter_struct(builder)
    second = builder.struct("Vault", [("coins", "u64")], abilities=["key"])
    builder.function(
        "both",
        ["address"],
        ["bool"],
        code=[
            ["CopyLoc", 0],
            ["Exists", second],
            "Pop",
            ["CopyLoc", 0],
            ["Exists", first],
            "Pop",
            ["CopyLoc", 0],
            ["Exists", second],
            "Ret",
        ],
    )
    acquires = _acquires(builder.build(), 0)
    assert tuple(acquires) == (second, first)
    assert first in acquires


def test_generic_instantiations_resolve_to_definitions(builder: ModuleBuilder):
    boxed = builder.struct(
        "Box",
        [("item", "T0")],
        abilities=["key"],
        type_parameters=[{"constraints": ["store"]}],
    )
    inst = builder.struct_instantiation(boxed, ["u64"])
    builder.function(
        "take",
        ["address"],
        ["#0<u64>"],
        code=[["MoveLoc", 0], ["MoveFromGeneric", inst], "Ret"],
    )
    module = builder.build()
    assert _acquires(module, 0).names(module) == ["Box"]


def test_non_key_structs_and_plain_code_acquire_nothing(builder: ModuleBuilder):
    builder.function("noop", code=["Ret"])
    builder.function("ext", native=True)
    module = builder.build()
    assert _acquires(module, 0) == AcquiresSet()
    assert len(_acquires(module, 1)) == 0


def test_callees_are_not_followed(builder: ModuleBuilder):
    counter = add_counter_struct(builder)
    reader = builder.function(
        "read",
        ["address"],
        ["bool"],
        code=[["MoveLoc", 0], ["Exists", counter], "Ret"],
    )
    builder.function("outer", ["address"], ["bool"], code=[["MoveLoc", 0], ["Call", reader], "Ret"])
    module = builder.build()
    assert len(_acquires(module, 0)) == 1
    assert len(_acquires(module, 1)) == 0
