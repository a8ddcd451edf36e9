"""Module-level driver: parallel per-function pipelines, serial printing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, List, Optional

from .bytecode.model import CompiledModule
from .lifter.debug_dump import DecompilerDebugDump
from .lifter.runner import FunctionResult, FunctionState, decompile_function
from .pretty.printer import SourcePrinter
from .report import DecompileReport
from .utils import run_parallel

LOG = logging.getLogger(__name__)

__all__ = ["DecompileResult", "decompile_module"]


@dataclass
class DecompileResult:
    """Module text plus the per-function outcome summary."""

    text: str
    functions: List[FunctionResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def failures(self) -> Dict[str, List[str]]:
        return {r.name: list(r.diagnostics) for r in self.functions if r.failed}

    @property
    def lints(self) -> Dict[str, List[str]]:
        return {r.name: list(r.lints) for r in self.functions if r.lints}

    @property
    def ok(self) -> bool:
        return not self.failures

    def report(self, module: CompiledModule) -> DecompileReport:
        return DecompileReport(
            module=f"0x{module.address:x}::{module.name}",
            bytecode_version=module.version,
            function_count=len(self.functions),
            native_count=sum(1 for r in self.functions if r.native),
            printed_count=sum(1 for r in self.functions if r.state is FunctionState.PRINTED),
            unstructured=[r.name for r in self.functions if r.body is not None and not r.body.structured],
            failures=self.failures,
            lints=self.lints,
            duration=self.duration,
        )


def decompile_module(
    module: CompiledModule,
    *,
    jobs: int = 1,
    debug_dump: Optional[DecompilerDebugDump] = None,
    emit_lints: bool = False,
) -> DecompileResult:
    """Decompile every function of ``module`` and print the module.

    Function pipelines run on up to ``jobs`` worker threads; printing happens
    once, serially, in declaration and name order.  This never raises for a
    loaded module: function-scoped failures become stub bodies listed in
    :attr:`DecompileResult.failures`.
    """

    worker = partial(decompile_function, module, debug_dump=debug_dump)
    run = run_parallel(list(range(len(module.function_defs))), worker, jobs=jobs)
    results = run.results
    LOG.info(
        "Lifted %d functions of %s in %.3fs on %d workers (%d failed)",
        len(results),
        module.name,
        run.duration,
        run.workers,
        sum(1 for r in results if r.failed),
    )
    text = SourcePrinter(module, emit_lints=emit_lints).render_module(results)
    if debug_dump is not None:
        debug_dump.dump_text(module.name, "move", text)
    return DecompileResult(text=text, functions=results, duration=run.duration)
