"""Module-level source printer."""

from __future__ import annotations

import logging
from typing import List, Sequence

from ..bytecode.model import CompiledModule, FunctionDef, Visibility
from ..lifter.ir import Abort, Assign, Discard, Effect, Return, StoreLocal
from ..lifter.runner import FunctionResult, FunctionState
from ..lifter.structurer import Break, Continue, If, LabeledBlock, Loop, Sequential
from .statements import StatementRenderer, block_label
from .types import TypePrinter, format_abilities, format_address, local_name

LOG = logging.getLogger(__name__)

__all__ = ["SourcePrinter", "TRAILER"]

INDENT = "    "
TRAILER = "// Decompiled from Move bytecode version {version}"


class SourcePrinter:
    """Render a module's structs and decompiled functions as source text."""

    def __init__(self, module: CompiledModule, *, emit_lints: bool = False) -> None:
        self._module = module
        self._types = TypePrinter(module)
        self._emit_lints = emit_lints

    # ------------------------------------------------------------------
    # Module
    # ------------------------------------------------------------------

    def render_module(self, results: Sequence[FunctionResult]) -> str:
        """Return the full module text; marks printed functions ``PRINTED``."""

        module = self._module
        lines = [f"module {format_address(module.address)}::{module.name} {{"]
        sections: List[List[str]] = []
        if module.friends:
            sections.append(
                [f"friend {format_address(f.address)}::{f.name};" for f in module.friends]
            )
        for def_index in range(len(module.struct_defs)):
            sections.append(self.render_struct(def_index))
        ordered = sorted(results, key=lambda r: (r.name, r.index))
        for result in ordered:
            sections.append(self.render_function(result))

        for position, section in enumerate(sections):
            if position:
                lines.append("")
            lines.extend(INDENT + line if line else "" for line in section)
        lines.append("}")
        lines.append(TRAILER.format(version=module.version))
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Structs
    # ------------------------------------------------------------------

    def render_struct(self, def_index: int) -> List[str]:
        sdef = self._module.struct_defs[def_index]
        handle = self._module.struct_handles[sdef.handle]
        head = f"struct {handle.name}{self._types.struct_type_parameters(handle)}"
        if handle.abilities:
            head += f" has {format_abilities(handle.abilities)}"
        if sdef.is_native:
            return [f"native {head};"]
        lines = [head + " {"]
        for fdef in sdef.fields:
            lines.append(f"{INDENT}{fdef.name}: {self._types.type(fdef.type)},")
        lines.append("}")
        return lines

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def signature(self, fdef: FunctionDef, acquires: Sequence[int]) -> str:
        module = self._module
        handle = module.function_handle_for_def(fdef)
        params = module.parameters(fdef)
        prefix = {
            Visibility.PUBLIC: "public ",
            Visibility.FRIEND: "public(friend) ",
            Visibility.PRIVATE: "",
        }[fdef.visibility]
        if fdef.is_entry:
            prefix += "entry "
        if fdef.is_native:
            prefix = "native " + prefix
        args = ", ".join(
            f"{local_name(i, len(params))}: {self._types.type(ty)}" for i, ty in enumerate(params)
        )
        text = (
            f"{prefix}fun {handle.name}"
            f"{self._types.function_type_parameters(handle.type_parameters)}"
            f"({args}){self._types.return_types(module.returns(fdef))}"
        )
        if acquires:
            text += " acquires " + ", ".join(module.struct_name(i) for i in acquires)
        return text

    def render_function(self, result: FunctionResult) -> List[str]:
        fdef = self._module.function_defs[result.index]
        acquires = tuple(result.acquires) if fdef.code is not None else fdef.acquires
        header = self.signature(fdef, acquires)
        if fdef.is_native:
            result.advance(FunctionState.PRINTED)
            return [header + ";"]

        body: List[str] = []
        if self._emit_lints:
            body.extend(f"// lint: {lint}" for lint in result.lints)
        if result.failed or result.body is None:
            body.extend(f"// decompilation failed: {message}" for message in result.diagnostics)
            body.append("abort 0")
            return [header + " {"] + [INDENT + line for line in body] + ["}"]

        params = len(self._module.parameters(fdef))
        renderer = StatementRenderer(self._module, self._types, params)
        local_types = self._module.local_types(fdef)
        for slot in range(params, len(local_types)):
            body.append(f"let {local_name(slot, params)}: {self._types.type(local_types[slot])};")
        if not result.body.structured:
            body.append(f"// control flow could not be structured: {result.body.reason}")
        body.extend(self._render_sequence(result.body.root, renderer))
        result.advance(FunctionState.PRINTED)
        return [header + " {"] + [INDENT + line for line in body] + ["}"]

    # ------------------------------------------------------------------
    # Region tree
    # ------------------------------------------------------------------

    def _render_sequence(self, seq: Sequential, renderer: StatementRenderer) -> List[str]:
        lines: List[str] = []
        for item in seq.items:
            lines.extend(self._render_node(item, renderer))
        return lines

    def _block(self, seq: Sequential, renderer: StatementRenderer) -> List[str]:
        return [INDENT + line for line in self._render_sequence(seq, renderer)]

    def _render_node(self, node, renderer: StatementRenderer) -> List[str]:
        if isinstance(node, (Assign, StoreLocal, Effect, Discard)):
            return [renderer.statement(node)]
        if isinstance(node, (Return, Abort)):
            return [renderer.terminal(node)]
        if isinstance(node, Break):
            return [f"break '{node.label};" if node.labelled else "break;"]
        if isinstance(node, Continue):
            return [f"continue '{node.label};" if node.labelled else "continue;"]
        if isinstance(node, If):
            return self._render_if(node, renderer)
        if isinstance(node, Loop):
            return self._render_loop(node, renderer)
        if isinstance(node, LabeledBlock):
            lines = [f"label {block_label(node.block)}:"]
            lines.extend(INDENT + renderer.statement(stmt) for stmt in node.statements)
            lines.append(INDENT + renderer.terminal(node.terminator))
            return lines
        if isinstance(node, Sequential):
            return self._render_sequence(node, renderer)
        raise TypeError(f"cannot render {node!r}")

    def _render_if(self, node: If, renderer: StatementRenderer) -> List[str]:
        if not node.then.items and node.otherwise.items:
            cond = renderer.condition(node.condition, negated=True)
            return [f"if ({cond}) {{"] + self._block(node.otherwise, renderer) + ["}"]
        lines = [f"if ({renderer.condition(node.condition)}) {{"]
        lines.extend(self._block(node.then, renderer))
        if node.otherwise.items:
            lines.append("} else {")
            lines.extend(self._block(node.otherwise, renderer))
        lines.append("}")
        return lines

    def _render_loop(self, node: Loop, renderer: StatementRenderer) -> List[str]:
        label = f"'{node.label}: " if node.labelled else ""
        guard = node.guard
        if guard is not None and not guard.prelude:
            cond = renderer.condition(guard.condition, negated=guard.negated)
            return [f"{label}while ({cond}) {{"] + self._block(node.body, renderer) + ["}"]
        lines = [f"{label}loop {{"]
        if guard is not None:
            lines.extend(INDENT + line for line in renderer.lines(guard.prelude))
            exit_cond = renderer.condition(guard.condition, negated=not guard.negated)
            lines.append(f"{INDENT}if ({exit_cond}) break;")
        lines.extend(self._block(node.body, renderer))
        lines.append("}")
        return lines
