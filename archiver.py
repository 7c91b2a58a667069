"""
Главный класс для сжатия и разжатия файлов.
"""

import io
import os
from typing import BinaryIO, Iterator

from bitops import format_bits
from compressor import CompressedBlock, HuffmanCompressor
from format import (Archive, ArchiveFormat, ChunkEntry, MAX_CHUNK_SIZE, calculate_crc32,
                    verify_integrity)
from huffman import build_tree, collect_frequencies


DEFAULT_CHUNK_SIZE = 1024


def stream_length(stream: BinaryIO) -> int:
    old_pos = stream.tell()
    length = stream.seek(0, io.SEEK_END)
    stream.seek(old_pos)
    return length


def iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


class Archiver:
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, verbose: bool = False):
        if not 0 < chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"Chunk size must be between 1 and {MAX_CHUNK_SIZE}, got {chunk_size}")

        self.chunk_size = chunk_size
        self.verbose = verbose

    def compress_stream(self, stream: BinaryIO) -> Archive:
        """
        Reads the stream twice: once to count byte frequencies, then again
        from the same position in ``chunk_size`` windows. Every chunk is encoded
        against the one tree built from the whole stream.
        """
        start = stream.tell()
        frequencies = collect_frequencies(stream)
        compressor = HuffmanCompressor.from_frequencies(frequencies)

        archive = Archive(
            original_size=sum(frequencies.values()),
            crc32=0,
            chunk_size=self.chunk_size,
            frequencies=dict(frequencies)
        )

        if compressor is None:
            if self.verbose:
                print("Empty tree.")
            return archive

        stream.seek(start)

        crc = 0
        for chunk in iter_chunks(stream, self.chunk_size):
            block = compressor.compress(chunk)
            archive.chunks.append(ChunkEntry(bit_length=block.bit_length, data=block.data))
            crc = calculate_crc32(chunk, crc)

            if self.verbose:
                self.report_chunk(chunk, block, compressor)

        archive.crc32 = crc
        return archive

    def decompress_archive(self, archive: Archive) -> bytes:
        tree = build_tree(archive.frequencies)

        if tree is None:
            if archive.chunks or archive.original_size:
                raise ValueError("Corrupted archive: chunks present but frequency table is empty")
            return b''

        compressor = HuffmanCompressor(tree)
        output = bytearray()

        for chunk in archive.chunks:
            output += compressor.decompress(CompressedBlock(chunk.data, chunk.bit_length))

        data = bytes(output)
        if not verify_integrity(archive, data):
            raise ValueError("CRC32 mismatch: archive is corrupted")

        return data

    def report_chunk(self, chunk: bytes, block: CompressedBlock, compressor: HuffmanCompressor):
        print(">> Compressed stream >>")
        print(format_bits(block.data, block.bit_length))
        print("<< Compressed stream <<")

        print(">> Decompressed stream >>")
        print(compressor.decompress(block).decode('latin-1'))
        print("<< Decompressed stream <<\n")

        print(f"Message size: {len(chunk)} Compressed size: {len(block.data)}")

    def compress_file(self, input_path: str, output_path: str) -> Archive:
        print(f"Compressing {input_path}...", end="\n" if self.verbose else " ", flush=True)

        with open(input_path, 'rb') as f:
            size = stream_length(f)
            archive = self.compress_stream(f)

        archive_data = ArchiveFormat.create_archive(archive)

        with open(output_path, 'wb') as f:
            f.write(archive_data)

        ratio = (len(archive_data) / size * 100) if size > 0 else 0
        print(f"OK ({ratio:.1f}%)")
        print(f"Total: {size} -> {len(archive_data)} bytes in {len(archive.chunks)} chunks")

        return archive

    def decompress_file(self, input_path: str, output_path: str) -> int:
        if not os.path.isfile(input_path):
            raise FileNotFoundError(f"Archive {input_path} not found")

        print(f"Decompressing {input_path}...", end=" ", flush=True)

        with open(input_path, 'rb') as f:
            archive = ArchiveFormat.read_archive(f.read())

        data = self.decompress_archive(archive)

        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

        with open(output_path, 'wb') as f:
            f.write(data)

        print("OK")
        print(f"Restored {len(data)} bytes to {output_path}")

        return len(data)


def compress_bytes(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    archive = Archiver(chunk_size=chunk_size).compress_stream(io.BytesIO(data))
    return ArchiveFormat.create_archive(archive)


def decompress_bytes(data: bytes) -> bytes:
    return Archiver().decompress_archive(ArchiveFormat.read_archive(data))
