from __future__ import annotations

from textwrap import dedent

from conftest import U128_STEP, U256_STEP, WIDTHS_LOOP, ModuleBuilder, add_counter_struct
from move_decompiler.lifter.runner import FunctionState, decompile_function
from move_decompiler.pipeline import decompile_module
from move_decompiler.pretty.printer import SourcePrinter


def _render(module, **kwargs):
    results = [decompile_function(module, i) for i in range(len(module.function_defs))]
    return SourcePrinter(module, **kwargs).render_module(results), results


def test_counted_loop_module_text(sum_module):
    text, results = _render(sum_module)
    assert text == dedent(
        """\
        module 0x1::m {
            public fun sum(arg0: u64): u64 {
                let l1: u64;
                let l2: u64;
                l1 = 0u64;
                l2 = 0u64;
                loop {
                    let v0 = copy(l1) < copy(arg0);
                    if (!v0) break;
                    let v1 = move(l2) + copy(l1);
                    l2 = v1;
                    let v2 = move(l1) + 1u64;
                    l1 = v2;
                }
                return move(l2);
            }
        }
        // Decompiled from Move bytecode version 6
        """
    )
    assert results[0].state is FunctionState.PRINTED


def test_loop_body_keeps_literal_widths():
    b = ModuleBuilder()
    b.function(
        "widths", ["u64"], ["u8", "u128", "u256"], locals=["u64", "u8", "u128", "u256"], code=WIDTHS_LOOP
    )
    text, _ = _render(b.build())
    expected = dedent(
        """\
        module 0x1::m {
            public fun widths(arg0: u64): (u8, u128, u256) {
                let l1: u64;
                let l2: u8;
                let l3: u128;
                let l4: u256;
                l2 = 0u8;
                l3 = 0u128;
                l4 = 0u256;
                l1 = 0u64;
                loop {
                    let v0 = copy(l1) < copy(arg0);
                    if (!v0) break;
                    let v1 = move(l2) + 3u8;
                    l2 = v1;
                    let v2 = move(l3) + STEP128;
                    l3 = v2;
                    let v3 = move(l4) + STEP256;
                    l4 = v3;
                    let v4 = move(l1) + 1u64;
                    l1 = v4;
                }
                return (move(l2), move(l3), move(l4));
            }
        }
        // Decompiled from Move bytecode version 6
        """
    )
    expected = expected.replace("STEP128", f"{U128_STEP}u128").replace("STEP256", f"{U256_STEP}u256")
    assert text == expected
    assert "100000000000000000000u128" in text


def test_resource_module_text(counter_module):
    text, _ = _render(counter_module)
    assert text == dedent(
        """\
        module 0x1::counter {
            struct Counter has key {
                value: u64,
            }

            public fun bump(arg0: address) acquires Counter {
                let l1: &mut Counter;
                let v0 = exists<Counter>(copy(arg0));
                if (v0) {
                    let v1 = borrow_global_mut<Counter>(copy(arg0));
                    l1 = v1;
                    let v2 = &mut copy(l1).value;
                    let v3 = *v2;
                    let v4 = v3 + 1u64;
                    let v5 = &mut move(l1).value;
                    *v5 = v4;
                    return;
                } else {
                    abort 7u64;
                }
            }

            public fun get(arg0: address): u64 acquires Counter {
                let v0 = borrow_global<Counter>(copy(arg0));
                let v1 = &v0.value;
                let v2 = *v1;
                return v2;
            }

            public fun publish(arg0: &signer, arg1: u64) acquires Counter {
                let v0 = Counter { value: move(arg1) };
                move_to<Counter>(move(arg0), v0);
                return;
            }
        }
        // Decompiled from Move bytecode version 6
        """
    )


def test_signatures_and_declarations():
    b = ModuleBuilder(name="shapes", address="0xbeef", version=7)
    b.friend("0x1", "admin")
    b.struct("Handle", None, abilities=["store"])
    b.struct(
        "Pair",
        [("left", "T0"), ("right", "vector<T0>")],
        abilities=["drop", "copy"],
        type_parameters=[{"constraints": ["copy"]}],
    )
    b.function("hash", ["vector<u8>"], ["vector<u8>"], native=True)
    b.function(
        "id",
        ["T0"],
        ["T0"],
        code=[["MoveLoc", 0], "Ret"],
        visibility="friend",
        type_parameters=[["drop"]],
    )
    b.function("main", [], [], code=["Ret"], visibility="private", is_entry=True)
    text, _ = _render(b.build())
    lines = text.splitlines()
    assert lines[0] == "module 0xbeef::shapes {"
    assert "    friend 0x1::admin;" in lines
    assert "    native struct Handle has store;" in lines
    assert "    struct Pair<T0: copy> has copy, drop {" in lines
    assert "        right: vector<T0>," in lines
    assert "    native public fun hash(arg0: vector<u8>): vector<u8>;" in lines
    assert "    public(friend) fun id<T0: drop>(arg0: T0): T0 {" in lines
    assert "    entry fun main() {" in lines
    assert lines[-1] == "// Decompiled from Move bytecode version 7"


def test_expressions_cover_calls_casts_and_vectors():
    b = ModuleBuilder()
    other = b.module_handle("0x1", "vector_ext")
    ext = b.function_handle("len", ["&vector<u8>"], ["u64"], module=other)
    ident = b.function_handle("ident", ["T0"], ["T0"], type_parameters=[[]])
    inst = b.function_instantiation(ident, ["u8"])
    element = b.signature(["u8"])
    b.function(
        "mix",
        ["u64", "u8"],
        ["u8"],
        locals=["vector<u8>"],
        code=[
            ["CopyLoc", 1],
            ["LdU8", 2],
            ["VecPack", element, 2],
            ["StLoc", 2],
            ["ImmBorrowLoc", 2],
            ["Call", ext],
            "Pop",
            ["MutBorrowLoc", 2],
            ["VecPopBack", element],
            ["CallGeneric", inst],
            ["CopyLoc", 0],
            ["LdU8", 3],
            "Shr",
            "CastU8",
            "Add",
            "Ret",
        ],
    )
    text, results = _render(b.build())
    assert not results[0].failed
    assert "let v0 = vector<u8>[copy(arg1), 2u8];" in text
    assert "let _ = 0x1::vector_ext::len(v1);" in text
    assert "let v3 = vector::pop_back<u8>(v2);" in text
    assert "let v4 = ident<u8>(v3);" in text
    assert "let v5 = copy(arg0) >> 3u8;" in text
    assert "let v6 = (v5 as u8);" in text
    assert "let v7 = v4 + v6;" in text


def test_failed_functions_print_a_stub():
    b = ModuleBuilder()
    b.function("bad", code=[["PackVariant", 0], "Pop", "Ret"])
    b.function("good", code=["Ret"])
    result = decompile_module(b.build())
    assert "    public fun bad() {" in result.text
    assert (
        "        // decompilation failed: unsupported instruction PackVariant "
        "(function bad, offset 0)" in result.text
    )
    assert "        abort 0" in result.text
    assert "    public fun good() {" in result.text
    assert not result.ok


def test_unstructured_functions_print_labelled_blocks():
    b = ModuleBuilder()
    b.function(
        "tangle",
        ["bool"],
        [],
        code=[
            ["CopyLoc", 0],
            ["BrTrue", 4],
            ["LdFalse"],
            ["BrFalse", 4],
            ["CopyLoc", 0],
            ["BrTrue", 2],
            "Ret",
        ],
    )
    text, _ = _render(b.build(), emit_lints=True)
    assert "        // lint: control flow left unstructured: irreducible control flow" in text
    assert "        // control flow could not be structured: irreducible control flow" in text
    assert "        label b0:" in text
    assert "            if (copy(arg0)) goto b2 else goto b1;" in text
    assert "            return;" in text


def test_lints_are_hidden_by_default():
    b = ModuleBuilder()
    b.function("dead", code=[["Branch", 2], "Ret", "Ret"])
    text, results = _render(b.build())
    assert results[0].lints == ["unreachable code at offsets 1..1"]
    assert "lint" not in text
    text, _ = _render(b.build(), emit_lints=True)
    assert "        // lint: unreachable code at offsets 1..1" in text


def test_declared_acquires_kept_for_native_functions():
    b = ModuleBuilder()
    counter = add_counter_struct(b)
    b.function("peek", ["address"], ["u64"], native=True, acquires=[counter])
    text, _ = _render(b.build())
    assert "    native public fun peek(arg0: address): u64 acquires Counter;" in text
