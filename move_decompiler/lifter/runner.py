"""Per-function pipeline with failure isolation.

Each function walks ``LOADING -> CFG_BUILT -> TRANSLATED -> STRUCTURED`` here;
the serial printing step moves it to ``PRINTED``.  Function-scoped errors stop
the walk in ``FAILED`` with a diagnostic instead of propagating.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..bytecode.model import CompiledModule, FunctionDef
from ..exceptions import FunctionDecompileError
from .acquires import AcquiresSet, compute_acquires
from .cfg import CFG, build_cfg
from .debug_dump import DecompilerDebugDump
from .ir import TranslatedFunction
from .stackless import translate_function
from .structurer import StructuredBody, structure_function

LOG = logging.getLogger(__name__)

__all__ = ["FunctionState", "FunctionResult", "decompile_function"]


class FunctionState(enum.Enum):
    LOADING = "loading"
    CFG_BUILT = "cfg_built"
    TRANSLATED = "translated"
    STRUCTURED = "structured"
    PRINTED = "printed"
    FAILED = "failed"


@dataclass
class FunctionResult:
    """Outcome of the per-function pipeline for one function definition."""

    index: int
    name: str
    state: FunctionState = FunctionState.LOADING
    cfg: Optional[CFG] = None
    translated: Optional[TranslatedFunction] = None
    body: Optional[StructuredBody] = None
    acquires: AcquiresSet = field(default_factory=AcquiresSet)
    diagnostics: List[str] = field(default_factory=list)
    lints: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.state is FunctionState.FAILED

    @property
    def native(self) -> bool:
        return self.cfg is None and not self.failed

    def advance(self, state: FunctionState) -> None:
        LOG.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state


def decompile_function(
    module: CompiledModule,
    index: int,
    *,
    debug_dump: Optional[DecompilerDebugDump] = None,
) -> FunctionResult:
    """Run CFG recovery, translation, structuring and acquires inference."""

    fdef: FunctionDef = module.function_defs[index]
    name = module.function_name(fdef)
    result = FunctionResult(index=index, name=name)
    trace = debug_dump.trace_logger() if debug_dump is not None else None

    result.acquires = compute_acquires(module, fdef)
    if fdef.code is None:
        result.advance(FunctionState.STRUCTURED)
        return result

    try:
        cfg = build_cfg(fdef.code.instructions)
        result.cfg = cfg
        result.lints.extend(cfg.lints)
        result.advance(FunctionState.CFG_BUILT)
        if trace is not None:
            trace.debug(
                "%s: %d blocks, %d loops, reducible=%s",
                name,
                len(cfg.blocks),
                len(cfg.loops),
                cfg.reducible,
            )
        if debug_dump is not None:
            debug_dump.dump_cfg(name, cfg)

        result.translated = translate_function(module, fdef, cfg)
        result.advance(FunctionState.TRANSLATED)
    except FunctionDecompileError as exc:
        exc.function = name
        result.diagnostics.append(str(exc))
        result.advance(FunctionState.FAILED)
        LOG.warning("Failed to decompile %s: %s", name, exc)
        if trace is not None:
            trace.debug("%s: failed: %s", name, exc)
        return result

    result.body = structure_function(cfg, result.translated)
    if not result.body.structured:
        result.lints.append(f"control flow left unstructured: {result.body.reason}")
    result.advance(FunctionState.STRUCTURED)
    if trace is not None:
        trace.debug("%s: structured=%s", name, result.body.structured)
    return result
