"""Recover loops and conditionals from a translated function's CFG.

Structuring is dominance based.  Natural loops become :class:`Loop` nodes whose
exits and back edges turn into :class:`Break` and :class:`Continue`; forward
conditionals become :class:`If` nodes joined at the branch's immediate
post-dominator.  Whenever a region cannot be expressed that way (irreducible
flow, a block that would have to be emitted twice, or nesting past
:data:`MAX_NESTING`) the whole function falls back to a flat list of
:class:`LabeledBlock` nodes connected by gotos, so
:func:`structure_function` always produces a result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple, Union

from .cfg import CFG, LoopInfo
from .ir import Abort, BlockTerminator, CondJump, Jump, Operand, Return, Statement, TranslatedFunction

LOG = logging.getLogger(__name__)

__all__ = [
    "Sequential",
    "Loop",
    "LoopGuard",
    "If",
    "Break",
    "Continue",
    "LabeledBlock",
    "MAX_NESTING",
    "Node",
    "StructuredBody",
    "ControlFlowStructurer",
    "structure_function",
]


@dataclass
class Sequential:
    items: List["Node"] = field(default_factory=list)


@dataclass
class LoopGuard:
    """Header test evaluated before each iteration.

    ``prelude`` holds the header's statements, which run before the test on
    every iteration.  The loop keeps going while ``condition`` holds, or while
    it does not hold when ``negated`` is set.
    """

    prelude: List[Statement]
    condition: Operand
    negated: bool = False


@dataclass
class Loop:
    header: int
    label: str
    body: Sequential
    guard: Optional[LoopGuard] = None
    labelled: bool = False


@dataclass
class If:
    condition: Operand
    then: Sequential
    otherwise: Sequential


@dataclass(frozen=True)
class Break:
    label: str
    labelled: bool = False


@dataclass(frozen=True)
class Continue:
    label: str
    labelled: bool = False


@dataclass
class LabeledBlock:
    block: int
    statements: List[Statement]
    terminator: BlockTerminator


Node = Union[Sequential, Loop, If, Break, Continue, LabeledBlock, Statement, Return, Abort]


@dataclass
class StructuredBody:
    """Result of structuring: a region tree, or the labelled-block fallback."""

    root: Sequential
    structured: bool = True
    reason: Optional[str] = None


class _Unstructurable(Exception):
    """Raised internally when a region cannot be expressed structurally."""


@dataclass(frozen=True)
class _LoopContext:
    header: int
    follow: Optional[int]
    label: str


_STOP = object()

# Deeper region trees are printed and interpreted recursively, so they go to
# the labelled-block fallback instead.
MAX_NESTING = 64


class ControlFlowStructurer:
    """Build a region tree for one function."""

    def __init__(self, cfg: CFG, translated: TranslatedFunction) -> None:
        self._cfg = cfg
        self._code = translated
        self._emitted: Set[int] = set()
        self._labelled: Set[str] = set()
        self._label_counter = 0
        self._depth = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def structure(self) -> StructuredBody:
        if not self._cfg.reducible:
            return self._fallback("irreducible control flow")
        try:
            root = self._emit_sequence(self._cfg.entry, None, ())
            missing = set(range(len(self._cfg.blocks))) - self._emitted
            if missing:
                raise _Unstructurable(f"blocks {sorted(missing)} were not placed")
        except _Unstructurable as exc:
            return self._fallback(str(exc))
        return StructuredBody(root=root)

    # ------------------------------------------------------------------
    # Region construction
    # ------------------------------------------------------------------

    def _claim(self, block_id: int) -> None:
        if block_id in self._emitted:
            raise _Unstructurable(f"block {block_id} would be emitted twice")
        self._emitted.add(block_id)

    def _check_level(self, block_id: int, loops: Tuple[_LoopContext, ...]) -> None:
        active = {ctx.header for ctx in loops}
        for info in self._cfg.loops_containing(block_id):
            if info.header != block_id and info.header not in active:
                raise _Unstructurable(f"block {block_id} entered from outside loop {info.header}")

    def _transfer(self, target: int, stop: Optional[int], loops: Tuple[_LoopContext, ...]):
        innermost = loops[-1] if loops else None
        for ctx in reversed(loops):
            labelled = ctx is not innermost
            if target == ctx.header:
                if labelled:
                    self._labelled.add(ctx.label)
                return Continue(ctx.label, labelled)
            if target == ctx.follow:
                if labelled:
                    self._labelled.add(ctx.label)
                return Break(ctx.label, labelled)
        if target == stop:
            return _STOP
        return None

    def _emit_sequence(
        self, start: Optional[int], stop: Optional[int], loops: Tuple[_LoopContext, ...]
    ) -> Sequential:
        self._depth += 1
        try:
            if self._depth > MAX_NESTING:
                raise _Unstructurable(f"regions nested deeper than {MAX_NESTING} levels")
            return self._emit_items(start, stop, loops)
        finally:
            self._depth -= 1

    def _emit_items(
        self, start: Optional[int], stop: Optional[int], loops: Tuple[_LoopContext, ...]
    ) -> Sequential:
        items: List[Node] = []
        target = start
        while target is not None:
            action = self._transfer(target, stop, loops)
            if action is _STOP:
                break
            if action is not None:
                items.append(action)
                break
            if target in self._cfg.loops:
                loop, follow = self._emit_loop(target, loops)
                items.append(loop)
                target = follow
                continue
            self._check_level(target, loops)
            self._claim(target)
            code = self._code.block(target)
            items.extend(code.statements)
            target = self._emit_terminator(target, code.terminator, stop, loops, items)
        return Sequential(items)

    def _emit_terminator(
        self,
        block_id: int,
        terminator: BlockTerminator,
        stop: Optional[int],
        loops: Tuple[_LoopContext, ...],
        items: List[Node],
    ) -> Optional[int]:
        if isinstance(terminator, (Return, Abort)):
            items.append(terminator)
            return None
        if isinstance(terminator, Jump):
            return terminator.target
        if terminator.true_target == terminator.false_target:
            return terminator.true_target
        join = self._join_for(block_id, stop, loops)
        then = self._emit_sequence(terminator.true_target, join, loops)
        otherwise = self._emit_sequence(terminator.false_target, join, loops)
        items.append(If(terminator.condition, then, otherwise))
        return join

    def _join_for(
        self, block_id: int, stop: Optional[int], loops: Tuple[_LoopContext, ...]
    ) -> Optional[int]:
        candidate = self._cfg.ipdom(block_id)
        if candidate is None or candidate == stop:
            return stop
        current = loops[-1].header if loops else None
        if candidate == current:
            return stop
        enclosing = [info for info in self._cfg.loops_containing(candidate) if info.header != candidate]
        level = enclosing[0].header if enclosing else None
        if level != current or not self._cfg.dominates(block_id, candidate):
            return stop
        return candidate

    def _choose_follow(self, info: LoopInfo) -> Optional[int]:
        if not info.exits:
            return None
        if len(info.exits) == 1:
            return next(iter(info.exits))
        header_term = self._code.block(info.header).terminator
        if isinstance(header_term, CondJump):
            for target in (header_term.true_target, header_term.false_target):
                if target in info.exits:
                    return target
        return max(info.exits, key=lambda b: self._cfg.block(b).start)

    def _emit_loop(self, header: int, loops: Tuple[_LoopContext, ...]) -> Tuple[Loop, Optional[int]]:
        info = self._cfg.loops[header]
        self._check_level(header, loops)
        self._claim(header)
        follow = self._choose_follow(info)
        label = f"l{self._label_counter}"
        self._label_counter += 1
        ctx = _LoopContext(header, follow, label)
        inner = loops + (ctx,)

        code = self._code.block(header)
        term = code.terminator
        guard: Optional[LoopGuard] = None
        if (
            isinstance(term, CondJump)
            and follow is not None
            and term.true_target != term.false_target
            and follow in (term.true_target, term.false_target)
        ):
            stay = term.false_target if follow == term.true_target else term.true_target
            guard = LoopGuard(list(code.statements), term.condition, negated=follow == term.true_target)
            body = self._emit_sequence(stay, None, inner)
        else:
            items: List[Node] = list(code.statements)
            nxt = self._emit_terminator(header, term, None, inner, items)
            if nxt is not None:
                items.extend(self._emit_sequence(nxt, None, inner).items)
            body = Sequential(items)

        if body.items and body.items[-1] == Continue(label, False):
            body.items.pop()
        return Loop(header, label, body, guard, labelled=label in self._labelled), follow

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def _fallback(self, reason: str) -> StructuredBody:
        LOG.info("Falling back to labelled blocks for %s: %s", self._code.name, reason)
        blocks = [
            LabeledBlock(code.block_id, list(code.statements), code.terminator)
            for code in self._code.blocks
        ]
        return StructuredBody(root=Sequential(list(blocks)), structured=False, reason=reason)


def structure_function(cfg: CFG, translated: TranslatedFunction) -> StructuredBody:
    """Structure ``translated``; never raises for well-formed input."""

    return ControlFlowStructurer(cfg, translated).structure()
