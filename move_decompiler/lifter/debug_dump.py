"""Helpers for writing per-function debug artefacts to disk."""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Optional

import graphviz

from ..logging_config import close_debug_logger, configure_debug_file_logger
from ..utils import ensure_directory, write_text
from .cfg import CFG

__all__ = ["DecompilerDebugDump", "cfg_digraph"]

_EDGE_COLOURS = {"back": "red", "forward": "black", "cross": "gray40"}


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name) or "function"


def cfg_digraph(cfg: CFG, *, title: Optional[str] = None) -> graphviz.Digraph:
    """Return a :class:`graphviz.Digraph` describing ``cfg``.

    Loop headers are drawn double-bordered; back edges are red and the edges
    of a conditional are labelled ``T``/``F``.
    """

    graph = graphviz.Digraph(name=title or "cfg")
    graph.attr("node", shape="box", fontname="monospace")
    if title:
        graph.attr(label=title, labelloc="t")
    for block in cfg.blocks:
        lines = [f"b{block.id} [{block.start}..{block.end - 1}]"]
        lines.extend(f"{offset}: {instr}" for offset, instr in block.offsets())
        attrs = {"peripheries": "2"} if block.id in cfg.loops else {}
        graph.node(f"b{block.id}", "\\l".join(lines) + "\\l", **attrs)
    for block in cfg.blocks:
        term = block.terminator
        for succ in block.successors:
            attrs = {"color": _EDGE_COLOURS.get(block.edge_kinds.get(succ, "forward"), "black")}
            if term is not None and term.kind == "cond" and term.true_target != term.false_target:
                attrs["label"] = "T" if succ == term.true_target else "F"
            graph.edge(f"b{block.id}", f"b{succ}", **attrs)
    return graph


class DecompilerDebugDump:
    """Manage debug artefacts for a single decompiler run."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)
        ensure_directory(self.base_dir)
        self._trace_logger: Optional[logging.Logger] = None
        self._trace_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Artefacts
    # ------------------------------------------------------------------

    def dump_cfg(self, function: str, cfg: CFG) -> Path:
        """Write ``<function>.dot`` for ``cfg`` and return its path."""

        path = self.base_dir / f"{_safe_name(function)}.dot"
        write_text(path, cfg_digraph(cfg, title=function).source)
        return path

    def dump_text(self, function: str, suffix: str, text: str) -> Path:
        path = self.base_dir / f"{_safe_name(function)}.{suffix}"
        write_text(path, text)
        return path

    # ------------------------------------------------------------------
    # Trace logging
    # ------------------------------------------------------------------

    def trace_logger(self) -> logging.Logger:
        """Return a logger writing verbose traces to ``decompile_trace.log``."""

        with self._trace_lock:
            if self._trace_logger is None:
                log_path = self.base_dir / "decompile_trace.log"
                self._trace_logger = configure_debug_file_logger("move_decompiler.trace", log_path)
            return self._trace_logger

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close any loggers owned by this dump."""

        with self._trace_lock:
            if self._trace_logger is not None:
                close_debug_logger(self._trace_logger)
                self._trace_logger = None
