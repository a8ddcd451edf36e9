"""Control-flow graph construction for a single function's bytecode."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..bytecode.model import Instruction
from ..bytecode.opcodes import BRANCH_OPCODES, TERMINATOR_OPCODES, Opcode
from ..exceptions import InvalidControlFlow

LOG = logging.getLogger(__name__)

__all__ = [
    "Terminator",
    "BasicBlock",
    "LoopInfo",
    "CFG",
    "CFGBuilder",
    "build_cfg",
]


@dataclass
class Terminator:
    """Describes how control leaves a basic block.

    ``kind`` is one of ``jump``, ``cond``, ``return``, ``abort`` or
    ``fallthrough``.  Targets are block ids; a fall-through behaves as a jump to
    ``target``.
    """

    kind: str
    instruction_index: int
    true_target: Optional[int] = None
    false_target: Optional[int] = None
    target: Optional[int] = None

    @property
    def is_exit(self) -> bool:
        return self.kind in ("return", "abort")


@dataclass
class BasicBlock:
    """A maximal straight-line run of instructions; ``end`` is exclusive."""

    id: int
    start: int
    end: int
    instructions: List[Instruction]
    successors: List[int] = field(default_factory=list)
    predecessors: Set[int] = field(default_factory=set)
    terminator: Optional[Terminator] = None
    dominators: Set[int] = field(default_factory=set)
    postdominators: Optional[Set[int]] = None
    edge_kinds: Dict[int, str] = field(default_factory=dict)

    def offsets(self) -> Iterable[Tuple[int, Instruction]]:
        return zip(range(self.start, self.end), self.instructions)


@dataclass
class LoopInfo:
    """Metadata describing a natural loop discovered in the CFG."""

    header: int
    body: Set[int] = field(default_factory=set)
    latches: Set[int] = field(default_factory=set)
    exits: Set[int] = field(default_factory=set)
    back_edges: Set[Tuple[int, int]] = field(default_factory=set)

    def include_body(self, nodes: Iterable[int]) -> None:
        self.body.update(nodes)

    def add_back_edge(self, tail: int, head: int) -> None:
        self.back_edges.add((tail, head))
        self.latches.add(tail)


@dataclass
class CFG:
    """Control-flow graph of one function, entry block first."""

    blocks: List[BasicBlock]
    entry: int
    block_for_offset: Dict[int, int]
    loops: Dict[int, LoopInfo]
    reducible: bool = True
    lints: List[str] = field(default_factory=list)

    def block(self, block_id: int) -> BasicBlock:
        return self.blocks[block_id]

    def dominates(self, a: int, b: int) -> bool:
        return a in self.blocks[b].dominators

    def ipdom(self, block_id: int) -> Optional[int]:
        """Immediate post-dominator, or ``None`` for the virtual exit."""

        pdoms = self.blocks[block_id].postdominators
        if pdoms is None:
            return None
        strict = pdoms - {block_id}
        for candidate in strict:
            cand_pdoms = self.blocks[candidate].postdominators
            if cand_pdoms is not None and len(cand_pdoms) == len(strict):
                return candidate
        return None

    def loops_containing(self, block_id: int) -> List[LoopInfo]:
        """Loops whose body holds ``block_id``, innermost first."""

        found = [loop for loop in self.loops.values() if block_id in loop.body]
        found.sort(key=lambda loop: (len(loop.body), -loop.header))
        return found


class CFGBuilder:
    """Constructs a CFG with dominator, postdominator, and loop metadata."""

    def __init__(self, instructions: Sequence[Instruction]) -> None:
        self._instructions = tuple(instructions)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self) -> CFG:
        if not self._instructions:
            raise InvalidControlFlow("empty code unit", 0)
        starts = self._collect_block_starts()
        raw_blocks = self._create_blocks(starts)
        blocks, block_for_offset, lints = self._prune_unreachable(raw_blocks)
        self._link_successors(blocks, block_for_offset)
        self._compute_dominators(blocks)
        self._compute_postdominators(blocks)
        loops = self._discover_loops(blocks)
        self._classify_edges(blocks)
        reducible = self._is_reducible(blocks)
        for lint in lints:
            LOG.warning("%s", lint)
        return CFG(
            blocks=blocks,
            entry=0,
            block_for_offset=block_for_offset,
            loops=loops,
            reducible=reducible,
            lints=lints,
        )

    # ------------------------------------------------------------------
    # Block construction helpers
    # ------------------------------------------------------------------

    def _collect_block_starts(self) -> List[int]:
        count = len(self._instructions)
        starts: Set[int] = {0}
        for index, instr in enumerate(self._instructions):
            opcode = instr.opcode
            if opcode in BRANCH_OPCODES:
                target = instr.operand
                if not 0 <= target < count:
                    raise InvalidControlFlow(f"branch target {target} outside code", index)
                starts.add(target)
            if opcode in TERMINATOR_OPCODES:
                if index + 1 < count:
                    starts.add(index + 1)
        last = self._instructions[-1].opcode
        if last not in (Opcode.BRANCH, Opcode.RET, Opcode.ABORT):
            raise InvalidControlFlow("control falls off the end of the code", count - 1)
        return sorted(starts)

    def _create_blocks(self, starts: Sequence[int]) -> List[Tuple[int, int]]:
        bounds = list(starts) + [len(self._instructions)]
        return [(bounds[i], bounds[i + 1]) for i in range(len(starts))]

    def _raw_targets(self, start: int, end: int) -> List[int]:
        instr = self._instructions[end - 1]
        if instr.opcode is Opcode.BRANCH:
            return [instr.operand]
        if instr.opcode in (Opcode.BR_TRUE, Opcode.BR_FALSE):
            return [instr.operand, end]
        if instr.opcode in (Opcode.RET, Opcode.ABORT):
            return []
        return [end]

    def _prune_unreachable(
        self, raw_blocks: Sequence[Tuple[int, int]]
    ) -> Tuple[List[BasicBlock], Dict[int, int], List[str]]:
        by_start = {start: (start, end) for start, end in raw_blocks}
        reachable: Set[int] = set()
        worklist = [0]
        while worklist:
            start = worklist.pop()
            if start in reachable:
                continue
            reachable.add(start)
            worklist.extend(self._raw_targets(*by_start[start]))

        blocks: List[BasicBlock] = []
        block_for_offset: Dict[int, int] = {}
        lints: List[str] = []
        for start, end in raw_blocks:
            if start not in reachable:
                lints.append(f"unreachable code at offsets {start}..{end - 1}")
                continue
            block_id = len(blocks)
            blocks.append(
                BasicBlock(
                    id=block_id,
                    start=start,
                    end=end,
                    instructions=list(self._instructions[start:end]),
                )
            )
            block_for_offset[start] = block_id
        return blocks, block_for_offset, lints

    def _link_successors(self, blocks: List[BasicBlock], block_for_offset: Dict[int, int]) -> None:
        for block in blocks:
            block.terminator = self._terminator_for_block(block, block_for_offset)
            term = block.terminator
            if term.kind == "cond":
                targets = [term.true_target, term.false_target]
            elif term.target is not None:
                targets = [term.target]
            else:
                targets = []
            for target in targets:
                if target not in block.successors:
                    block.successors.append(target)
                blocks[target].predecessors.add(block.id)

    def _terminator_for_block(self, block: BasicBlock, block_for_offset: Dict[int, int]) -> Terminator:
        index = block.end - 1
        instr = self._instructions[index]
        opcode = instr.opcode
        if opcode is Opcode.BRANCH:
            return Terminator("jump", index, target=block_for_offset[instr.operand])
        if opcode is Opcode.BR_TRUE:
            return Terminator(
                "cond",
                index,
                true_target=block_for_offset[instr.operand],
                false_target=block_for_offset[block.end],
            )
        if opcode is Opcode.BR_FALSE:
            return Terminator(
                "cond",
                index,
                true_target=block_for_offset[block.end],
                false_target=block_for_offset[instr.operand],
            )
        if opcode is Opcode.RET:
            return Terminator("return", index)
        if opcode is Opcode.ABORT:
            return Terminator("abort", index)
        return Terminator("fallthrough", index, target=block_for_offset[block.end])

    # ------------------------------------------------------------------
    # Dominator and postdominator computation
    # ------------------------------------------------------------------

    def _compute_dominators(self, blocks: List[BasicBlock]) -> None:
        everything = set(range(len(blocks)))
        for block in blocks:
            block.dominators = set(everything)
        blocks[0].dominators = {0}
        changed = True
        while changed:
            changed = False
            for block in blocks[1:]:
                intersection = set(everything)
                for pred in block.predecessors:
                    intersection &= blocks[pred].dominators
                new_dom = {block.id} | intersection
                if new_dom != block.dominators:
                    block.dominators = new_dom
                    changed = True

    def _compute_postdominators(self, blocks: List[BasicBlock]) -> None:
        # Blocks that cannot reach a return or abort (infinite loops) have no
        # post-dominators; every other block is post-dominated with respect
        # to a virtual exit joining all exit blocks.
        exits = [block.id for block in blocks if block.terminator and block.terminator.is_exit]
        reaches_exit: Set[int] = set()
        worklist = list(exits)
        while worklist:
            node = worklist.pop()
            if node in reaches_exit:
                continue
            reaches_exit.add(node)
            worklist.extend(blocks[node].predecessors)

        for block in blocks:
            if block.id not in reaches_exit:
                block.postdominators = None
            elif block.id in exits:
                block.postdominators = {block.id}
            else:
                block.postdominators = set(reaches_exit)

        changed = True
        order = [block for block in reversed(blocks) if block.id in reaches_exit and block.id not in exits]
        while changed:
            changed = False
            for block in order:
                intersection = set(reaches_exit)
                for succ in block.successors:
                    succ_pdom = blocks[succ].postdominators
                    if succ_pdom is not None:
                        intersection &= succ_pdom
                new_postdom = {block.id} | intersection
                if new_postdom != block.postdominators:
                    block.postdominators = new_postdom
                    changed = True

    # ------------------------------------------------------------------
    # Loop discovery and edge classification
    # ------------------------------------------------------------------

    def _discover_loops(self, blocks: List[BasicBlock]) -> Dict[int, LoopInfo]:
        loops: Dict[int, LoopInfo] = {}
        for block in blocks:
            for succ in block.successors:
                if succ in block.dominators:
                    loop = loops.setdefault(succ, LoopInfo(header=succ))
                    loop.add_back_edge(block.id, succ)
                    loop.include_body(self._collect_natural_loop(blocks, succ, block.id))
        for loop in loops.values():
            loop.body.add(loop.header)
            for node in loop.body:
                for succ in blocks[node].successors:
                    if succ not in loop.body:
                        loop.exits.add(succ)
        return loops

    def _collect_natural_loop(self, blocks: Sequence[BasicBlock], header: int, latch: int) -> Set[int]:
        body: Set[int] = {header, latch}
        worklist = [latch] if latch != header else []
        while worklist:
            node = worklist.pop()
            for pred in blocks[node].predecessors:
                if pred not in body:
                    body.add(pred)
                    worklist.append(pred)
        return body

    def _classify_edges(self, blocks: List[BasicBlock]) -> None:
        for block in blocks:
            for succ in block.successors:
                if succ in block.dominators:
                    kind = "back"
                elif block.id in blocks[succ].dominators:
                    kind = "forward"
                else:
                    kind = "cross"
                block.edge_kinds[succ] = kind

    def _is_reducible(self, blocks: List[BasicBlock]) -> bool:
        # A graph is reducible when every retreating edge of a depth-first
        # walk targets a block that dominates its source.
        state: Dict[int, int] = {}
        stack: List[Tuple[int, int]] = [(0, 0)]
        state[0] = 1
        while stack:
            node, index = stack[-1]
            successors = blocks[node].successors
            if index < len(successors):
                stack[-1] = (node, index + 1)
                succ = successors[index]
                mark = state.get(succ, 0)
                if mark == 1 and succ not in blocks[node].dominators:
                    return False
                if mark == 0:
                    state[succ] = 1
                    stack.append((succ, 0))
            else:
                state[node] = 2
                stack.pop()
        return True


def build_cfg(instructions: Sequence[Instruction]) -> CFG:
    """Build the control-flow graph for one function's instruction list."""

    return CFGBuilder(instructions).build()
