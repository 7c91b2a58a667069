"""
Определяет структуру файла архива и методы чтения/записи.

В архиве хранится таблица частот, а не само дерево: построение дерева
детерминировано, поэтому при чтении получается то же дерево, что и при записи.
Блоки хранятся раздельно, так как каждый дополнен до целого байта.
"""

import io
import struct
import zlib
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


ARCHIVE_MAGIC = b'HUFF'
ARCHIVE_VERSION = 1
HEADER_SIZE = 16
MAX_CHUNK_SIZE = 0xFFFFFFFF

METADATA = struct.Struct('<QIIH')
SYMBOL_ENTRY = struct.Struct('<BQ')
CHUNK_COUNT = struct.Struct('<I')
CHUNK_HEADER = struct.Struct('<QI')


@dataclass
class ChunkEntry:
    bit_length: int
    data: bytes


@dataclass
class Archive:
    original_size: int
    crc32: int
    chunk_size: int
    frequencies: Dict[int, int] = field(default_factory=dict)
    chunks: List[ChunkEntry] = field(default_factory=list)

    @property
    def compressed_size(self) -> int:
        return sum(len(chunk.data) for chunk in self.chunks)


class ArchiveHeader:
    def __init__(self):
        self.magic = ARCHIVE_MAGIC
        self.version = ARCHIVE_VERSION
        self.flags = 0
        self.reserved = b'\x00' * 10

    def serialize(self) -> bytes:
        output = io.BytesIO()
        output.write(self.magic)
        output.write(struct.pack('<B', self.version))
        output.write(struct.pack('<B', self.flags))
        output.write(self.reserved)
        return output.getvalue()

    @staticmethod
    def deserialize(data: bytes) -> 'ArchiveHeader':
        if len(data) < HEADER_SIZE:
            raise ValueError("Invalid archive header")

        header = ArchiveHeader()

        if data[0:4] != ARCHIVE_MAGIC:
            raise ValueError("Invalid archive magic")

        version = data[4]
        if version != ARCHIVE_VERSION:
            raise ValueError(f"Unsupported version: {version}")

        header.flags = data[5]
        header.reserved = data[6:HEADER_SIZE]

        return header


class ArchiveFormat:
    @staticmethod
    def create_archive(archive: Archive) -> bytes:
        output = io.BytesIO()

        output.write(ArchiveHeader().serialize())

        symbols = sorted(symbol for symbol, frequency in archive.frequencies.items() if frequency > 0)
        output.write(METADATA.pack(archive.original_size, archive.crc32,
                                   archive.chunk_size, len(symbols)))

        for symbol in symbols:
            output.write(SYMBOL_ENTRY.pack(symbol, archive.frequencies[symbol]))

        output.write(CHUNK_COUNT.pack(len(archive.chunks)))

        for chunk in archive.chunks:
            ArchiveFormat._write_chunk(output, chunk)

        return output.getvalue()

    @staticmethod
    def _write_chunk(output: io.BytesIO, chunk: ChunkEntry):
        if len(chunk.data) != expected_byte_length(chunk.bit_length):
            raise ValueError(f"Chunk of {len(chunk.data)} bytes cannot hold exactly {chunk.bit_length} bits")

        output.write(CHUNK_HEADER.pack(chunk.bit_length, len(chunk.data)))
        output.write(chunk.data)

    @staticmethod
    def read_archive(data: bytes) -> Archive:
        ArchiveHeader.deserialize(data[:HEADER_SIZE])
        pos = HEADER_SIZE

        if pos + METADATA.size > len(data):
            raise ValueError("Corrupted archive: cannot read metadata")

        original_size, crc32, chunk_size, symbol_count = METADATA.unpack_from(data, pos)
        pos += METADATA.size

        if symbol_count > 256:
            raise ValueError(f"Corrupted archive: {symbol_count} symbols in frequency table")

        frequencies = {}
        for _ in range(symbol_count):
            if pos + SYMBOL_ENTRY.size > len(data):
                raise ValueError("Corrupted archive: truncated frequency table")

            symbol, frequency = SYMBOL_ENTRY.unpack_from(data, pos)
            pos += SYMBOL_ENTRY.size

            if symbol in frequencies or frequency == 0:
                raise ValueError(f"Corrupted archive: bad frequency entry for byte 0x{symbol:02x}")
            frequencies[symbol] = frequency

        if pos + CHUNK_COUNT.size > len(data):
            raise ValueError("Corrupted archive: cannot read chunk count")

        chunk_count = CHUNK_COUNT.unpack_from(data, pos)[0]
        pos += CHUNK_COUNT.size

        chunks = []
        for _ in range(chunk_count):
            chunk, pos = ArchiveFormat._read_chunk(data, pos)
            chunks.append(chunk)

        if pos != len(data):
            raise ValueError(f"Corrupted archive: {len(data) - pos} trailing bytes")

        return Archive(
            original_size=original_size,
            crc32=crc32,
            chunk_size=chunk_size,
            frequencies=frequencies,
            chunks=chunks
        )

    @staticmethod
    def _read_chunk(data: bytes, pos: int) -> Tuple[ChunkEntry, int]:
        if pos + CHUNK_HEADER.size > len(data):
            raise ValueError("Corrupted chunk: cannot read chunk header")

        bit_length, byte_length = CHUNK_HEADER.unpack_from(data, pos)
        pos += CHUNK_HEADER.size

        if byte_length != expected_byte_length(bit_length):
            raise ValueError(f"Corrupted chunk: {byte_length} bytes declared for {bit_length} bits")

        if pos + byte_length > len(data):
            raise ValueError("Corrupted chunk: cannot read compressed data")

        chunk = ChunkEntry(bit_length=bit_length, data=data[pos:pos + byte_length])
        pos += byte_length

        return chunk, pos


def expected_byte_length(bit_length: int) -> int:
    return (bit_length + 7) // 8


def calculate_crc32(data: bytes, value: int = 0) -> int:
    return zlib.crc32(data, value) & 0xffffffff


def verify_integrity(archive: Archive, decompressed_data: bytes) -> bool:
    if len(decompressed_data) != archive.original_size:
        return False

    return calculate_crc32(decompressed_data) == archive.crc32
