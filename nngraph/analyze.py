"""Blob lifetime analysis and workspace offset planning."""

from __future__ import annotations

import bisect
import functools
from dataclasses import dataclass
from enum import IntEnum
from itertools import chain
from typing import Optional

from .mem import Internal, MemGraph

_NOWHERE = range(2**64 - 1, 2**64 - 1)


class Operation(IntEnum):
    ALLOC = 0
    FREE = 1


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Action:
    """Allocation or release of a blob at a node index."""

    i_node: int
    op: Operation
    blob: Internal

    def _key(self) -> tuple[int, int, int]:
        return (self.i_node, int(self.op), id(self.blob))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Action):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "Action") -> bool:
        if not isinstance(other, Action):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class BlobLifeTime:
    """The node interval, both ends included, during which a blob is alive."""

    blob: Internal
    start: int
    end: int

    def _key(self) -> tuple[int, int, int]:
        return (self.start, -self.end, id(self.blob))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlobLifeTime):
            return NotImplemented
        return self.blob is other.blob

    def __lt__(self, other: "BlobLifeTime") -> bool:
        if not isinstance(other, BlobLifeTime):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return id(self.blob)


@dataclass
class MemRangeMap:
    """The workspace span used and the byte range given to each blob."""

    range: range
    map: dict[Internal, range]


def blob_lifetime(graph: MemGraph) -> list[BlobLifeTime]:
    """Lifetimes of every internal blob; global inputs live from the first node,
    global outputs until past the last one."""
    topo = graph.graph.topo
    edges = graph.graph.edges
    spans: dict[Internal, list[int]] = {}

    def record(info: object, i_node: int) -> None:
        if not isinstance(info, Internal):
            return
        span = spans.get(info)
        if span is None:
            spans[info] = [i_node, i_node]
        else:
            span[0] = min(span[0], i_node)
            span[1] = max(span[1], i_node)

    for i in topo.global_inputs():
        record(edges[i].item, 0)
    for i in topo.global_outputs():
        record(edges[i].item, topo.n_node())
    for i_node, (ref, node) in enumerate(zip(topo, graph.graph.nodes)):
        if node.value.name == "empty":
            continue
        for edge in chain(ref.inputs, ref.outputs):
            record(edges[edge].item, i_node)

    return [BlobLifeTime(blob, start, end) for blob, (start, end) in spans.items()]


def to_actions(graph: MemGraph) -> list[Action]:
    """Allocation and release actions, sorted by node, then allocations first."""
    actions = []
    for lifetime in blob_lifetime(graph):
        actions.append(Action(lifetime.start, Operation.ALLOC, lifetime.blob))
        actions.append(Action(lifetime.end, Operation.FREE, lifetime.blob))
    actions.sort()
    return actions


class _OffsetCalculator:
    """Best-fit allocator over aligned areas that merges neighbours on release."""

    def __init__(self, alignment: int) -> None:
        if alignment <= 0:
            raise ValueError("alignment must be positive")
        self.alignment = alignment
        self.taken_start: Optional[int] = None
        self.taken_end = 0
        self.free_list: list[tuple[int, int]] = []  # (len, off), sorted
        self.heads: dict[int, int] = {}
        self.tails: dict[int, int] = {}

    def _aligned(self, length: int) -> int:
        return -(-length // self.alignment) * self.alignment

    def _insert(self, off: int, length: int) -> None:
        bisect.insort(self.free_list, (length, off))
        self.heads[off] = length
        self.tails[off + length] = length

    def _remove(self, off: int, length: int) -> None:
        index = bisect.bisect_left(self.free_list, (length, off))
        if index == len(self.free_list) or self.free_list[index] != (length, off):
            raise RuntimeError(f"free area {off}+{length} is missing")
        del self.free_list[index]

    def put(self, area: range) -> None:
        length = self._aligned(len(area))
        if length == 0:
            return
        head = area.start
        tail = head + length
        before = self.tails.pop(head, None)
        if before is not None:
            head -= before
            self._remove(head, before)
            if self.heads.pop(head, None) != before:
                raise RuntimeError("free list is inconsistent")
        after = self.heads.pop(tail, None)
        if after is not None:
            self._remove(tail, after)
            tail += after
            if self.tails.pop(tail, None) != after:
                raise RuntimeError("free list is inconsistent")
        self._insert(head, tail - head)

    def take(self, expect: int) -> Optional[range]:
        length = self._aligned(expect)
        if length == 0:
            return _NOWHERE
        index = bisect.bisect_left(self.free_list, (length, 0))
        if index == len(self.free_list):
            return None
        free_len, head = self.free_list.pop(index)
        del self.heads[head]
        del self.tails[head + free_len]
        if free_len > length:
            self._insert(head + length, free_len - length)
        tail = head + expect
        self.taken_start = head if self.taken_start is None else min(self.taken_start, head)
        self.taken_end = max(self.taken_end, tail)
        return range(head, tail)

    def taken_range(self) -> range:
        if self.taken_start is None:
            return range(0, 0)
        return range(self.taken_start, self.taken_end)


def mem_range_map(graph: MemGraph, max_size: int, alignment: int) -> MemRangeMap:
    """Give every internal blob a byte range within a workspace of ``max_size``."""
    calculator = _OffsetCalculator(alignment)
    calculator.put(range(0, max_size // alignment * alignment))

    ranges: dict[Internal, range] = {}
    for action in to_actions(graph):
        if action.op is Operation.ALLOC:
            area = calculator.take(action.blob.size)
            if area is None:
                raise MemoryError(
                    f"no free area of {action.blob.size} bytes in a workspace of {max_size}"
                )
            if action.blob in ranges:
                raise RuntimeError("blob allocated twice")
            ranges[action.blob] = area
        else:
            calculator.put(ranges[action.blob])
    return MemRangeMap(range=calculator.taken_range(), map=ranges)


def print_lifetime(lifetimes: list[BlobLifeTime]) -> None:
    """Print one line per blob: index, size and a bar over its node interval."""
    for i, lifetime in enumerate(lifetimes):
        if not isinstance(lifetime.blob, Internal):
            raise TypeError("only internal blobs have a lifetime")
        bar = " " * lifetime.start + "#" * (lifetime.end - lifetime.start + 1)
        print(f"{i:>3} {lifetime.blob.size:6} {bar}")