"""
Кодирование и декодирование Хаффмана.

Коды строятся один раз для дерева и используются для всех блоков. Каждый
вызов ``encode`` даёт самостоятельный блок: упакованные байты и точное число
значащих битов. Биты после ``bit_length`` в последнем байте - выравнивание.
"""

from collections import Counter
from typing import Dict, NamedTuple, Optional, Tuple, Union

from bitops import bit_at
from huffman import HuffmanCode, HuffmanTree, build_tree


class CompressedBlock(NamedTuple):
    data: bytes
    bit_length: int


_ENTER = 0
_LEAVE = 1


def derive_codes(tree: HuffmanTree) -> Dict[int, HuffmanCode]:
    codes: Dict[int, HuffmanCode] = {}

    root = tree.root_node
    if root.is_leaf:
        # A lone symbol still needs one bit per occurrence.
        codes[root.symbol] = HuffmanCode(0, 1)
        return codes

    current_code = HuffmanCode()
    stack = [(_ENTER, tree.root, None)]

    while stack:
        action, index, bit = stack.pop()

        if action == _LEAVE:
            current_code.pop_bit()
            continue

        if bit is not None:
            current_code.push_bit(bit)
            stack.append((_LEAVE, index, bit))

        node = tree.node(index)
        if node.is_leaf:
            codes[node.symbol] = current_code.copy()
            continue

        stack.append((_ENTER, node.right, True))
        stack.append((_ENTER, node.left, False))

    return codes


def encode(data: bytes, codes: Dict[int, HuffmanCode]) -> CompressedBlock:
    result = bytearray()
    total_length = 0

    for byte in data:
        code = codes.get(byte)
        if code is None:
            raise KeyError(f"No code for byte 0x{byte:02x}: it was not counted when the tree was built")

        remaining = code.length
        while remaining:
            free_bits = len(result) * 8 - total_length
            if free_bits == 0:
                result.append(0)
                free_bits = 8

            taken = min(free_bits, remaining)
            remaining -= taken

            piece = (code.bits >> remaining) & ((1 << taken) - 1)
            result[-1] |= piece << (free_bits - taken)
            total_length += taken

    return CompressedBlock(bytes(result), total_length)


def decode(block: Union[CompressedBlock, Tuple[bytes, int]], tree: HuffmanTree) -> bytes:
    data, bit_length = block

    if bit_length < 0:
        raise ValueError(f"Negative bit length: {bit_length}")

    output = bytearray()
    root = tree.root_node
    current = tree.root

    for index in range(bit_length):
        bit = bit_at(data, index)
        if bit is None:
            raise ValueError(f"Bit {index} is outside of a {len(data)}-byte stream")

        if root.is_leaf:
            if bit:
                raise ValueError(f"Corrupted stream: no right branch at bit {index}")
            output.append(root.symbol)
            continue

        node = tree.node(current)
        child = node.right if bit else node.left
        if child is None:
            raise ValueError(f"Corrupted tree: node {current} has no {'right' if bit else 'left'} child")

        current = child
        reached = tree.node(current)
        if reached.is_leaf:
            output.append(reached.symbol)
            current = tree.root

    return bytes(output)


class HuffmanCompressor:
    def __init__(self, tree: HuffmanTree):
        self.tree = tree
        self.codes = derive_codes(tree)

    @classmethod
    def from_frequencies(cls, frequencies: Dict[int, int]) -> Optional['HuffmanCompressor']:
        tree = build_tree(frequencies)
        if tree is None:
            return None
        return cls(tree)

    @classmethod
    def from_data(cls, data: bytes) -> Optional['HuffmanCompressor']:
        return cls.from_frequencies(Counter(data))

    def compress(self, data: bytes) -> CompressedBlock:
        return encode(data, self.codes)

    def decompress(self, block: Union[CompressedBlock, Tuple[bytes, int]]) -> bytes:
        return decode(block, self.tree)

    def code_table(self) -> Dict[int, str]:
        return {symbol: code.to_string() for symbol, code in sorted(self.codes.items())}
