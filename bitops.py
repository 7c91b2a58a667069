"""
Побитовый доступ к байтовым буферам.

Биты нумеруются от старшего к младшему: бит 0 буфера - старший бит
байта 0, бит 8 - старший бит байта 1 и так далее.
"""

from typing import Optional


def is_bit_set(byte: int, bit_num: int) -> Optional[bool]:
    if bit_num < 0 or bit_num >= 8:
        return None

    mask = 0b10000000 >> bit_num
    return byte & mask > 0


def bit_at(buffer: bytes, bit_index: int) -> Optional[bool]:
    """Returns the bit at ``bit_index`` or None when it is out of range."""
    if bit_index < 0 or bit_index >= len(buffer) * 8:
        return None

    return is_bit_set(buffer[bit_index // 8], bit_index % 8)


def format_bits(buffer: bytes, bit_length: Optional[int] = None) -> str:
    groups = [format(byte, '08b') for byte in buffer]

    if bit_length is not None and groups:
        tail = bit_length - (len(groups) - 1) * 8
        if 0 < tail < 8:
            groups[-1] = groups[-1][:tail]

    return ' '.join(groups)
