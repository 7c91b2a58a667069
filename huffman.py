"""
Построение дерева Хаффмана.

Считает частоты байтов, заполняет очередь с приоритетом листьями (по одному
на символ) и объединяет два самых редких узла, пока не останется одно дерево.
Узлы хранятся в плоском списке и ссылаются на потомков по индексу.
"""

import heapq
from collections import Counter
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple


READ_BLOCK_SIZE = 64 * 1024


@dataclass
class HuffmanNode:
    frequency: int
    symbol: Optional[int] = None
    left: Optional[int] = None
    right: Optional[int] = None

    def __post_init__(self):
        has_children = self.left is not None and self.right is not None

        if self.symbol is not None:
            if self.left is not None or self.right is not None:
                raise ValueError("Leaf node cannot have children")
            if not 0 <= self.symbol <= 255:
                raise ValueError(f"Symbol out of byte range: {self.symbol}")
        elif not has_children:
            raise ValueError("Internal node must have exactly two children")

    @property
    def is_leaf(self) -> bool:
        return self.symbol is not None


class HuffmanCode:
    """
    Bit path from the root to a leaf.

    Pushed on descent and popped on backtrack while walking the tree, so at a
    leaf the current value is exactly that leaf's code. The newest bit is the
    least significant one.
    """

    def __init__(self, bits: int = 0, length: int = 0):
        self._bits = bits
        self._length = length

    @property
    def bits(self) -> int:
        return self._bits

    @property
    def length(self) -> int:
        return self._length

    def push_bit(self, bit: bool):
        self._bits = (self._bits << 1) | (1 if bit else 0)
        self._length += 1

    def pop_bit(self) -> bool:
        if self._length == 0:
            raise IndexError("pop from empty code")

        popped = self._bits & 1 == 1
        self._bits >>= 1
        self._length -= 1
        return popped

    def copy(self) -> 'HuffmanCode':
        return HuffmanCode(self._bits, self._length)

    def to_string(self) -> str:
        if self._length == 0:
            return ''
        return format(self._bits, f'0{self._length}b')

    def __len__(self):
        return self._length

    def __eq__(self, other):
        if not isinstance(other, HuffmanCode):
            return NotImplemented
        return self._bits == other._bits and self._length == other._length

    def __repr__(self):
        return f"HuffmanCode('{self.to_string()}')"


class HuffmanForest:
    """Node arena plus a min-heap of the nodes not yet merged."""

    def __init__(self):
        self.nodes: List[HuffmanNode] = []
        self._heap: List[Tuple[int, int, int]] = []
        self._sequence = 0

    def push(self, node: HuffmanNode) -> int:
        index = len(self.nodes)
        self.nodes.append(node)
        # Equal frequencies pop in insertion order.
        heapq.heappush(self._heap, (node.frequency, self._sequence, index))
        self._sequence += 1
        return index

    def pop(self) -> int:
        return heapq.heappop(self._heap)[2]

    def __len__(self):
        return len(self._heap)


class HuffmanTree:
    def __init__(self, nodes: List[HuffmanNode], root: int):
        self.nodes = nodes
        self.root = root

    def node(self, index: int) -> HuffmanNode:
        return self.nodes[index]

    @property
    def root_node(self) -> HuffmanNode:
        return self.nodes[self.root]

    @property
    def frequency(self) -> int:
        return self.root_node.frequency

    def is_leaf(self, index: int) -> bool:
        return self.nodes[index].is_leaf

    def walk(self) -> Iterator[Tuple[int, int]]:
        """Yields ``(index, depth)`` for every reachable node, pre-order."""
        stack = [(self.root, 0)]

        while stack:
            index, depth = stack.pop()
            yield index, depth

            node = self.nodes[index]
            if node.right is not None:
                stack.append((node.right, depth + 1))
            if node.left is not None:
                stack.append((node.left, depth + 1))

    def symbols(self) -> List[int]:
        return sorted(self.nodes[index].symbol
                      for index, _ in self.walk() if self.is_leaf(index))

    def depth(self) -> int:
        return max(depth for _, depth in self.walk())


def collect_frequencies(stream: BinaryIO) -> Dict[int, int]:
    """Counts every byte from the current stream position to EOF."""
    frequencies = Counter()

    while True:
        block = stream.read(READ_BLOCK_SIZE)
        if not block:
            break
        frequencies.update(block)

    return frequencies


def seed_forest(frequencies: Dict[int, int]) -> HuffmanForest:
    forest = HuffmanForest()

    for symbol in sorted(frequencies):
        frequency = frequencies[symbol]
        if frequency > 0:
            forest.push(HuffmanNode(frequency=frequency, symbol=symbol))

    return forest


def build(forest: HuffmanForest) -> Optional[HuffmanTree]:
    if len(forest) == 0:
        return None

    while len(forest) > 1:
        right = forest.pop()
        left = forest.pop()

        frequency = forest.nodes[left].frequency + forest.nodes[right].frequency
        forest.push(HuffmanNode(frequency=frequency, left=left, right=right))

    return HuffmanTree(forest.nodes, forest.pop())


def build_tree(frequencies: Dict[int, int]) -> Optional[HuffmanTree]:
    return build(seed_forest(frequencies))
