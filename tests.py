import unittest
import tempfile
import os
import sys
import io
import random
import shutil
from contextlib import redirect_stdout, redirect_stderr

from bitops import bit_at, is_bit_set, format_bits
from huffman import (HuffmanNode, HuffmanCode, HuffmanTree, collect_frequencies,
                     seed_forest, build, build_tree)
from compressor import CompressedBlock, HuffmanCompressor, derive_codes, encode, decode
from format import (Archive, ArchiveFormat, ArchiveHeader, ChunkEntry, calculate_crc32,
                    verify_integrity, HEADER_SIZE)
from archiver import Archiver, compress_bytes, decompress_bytes, iter_chunks, stream_length
import main


# A:2 B:2 C:2 D:3 F:5 E:11
SAMPLE = b"AABBCCDDDFFFFFEEEEEEEEEEE"
SAMPLE_FREQUENCIES = {ord('A'): 2, ord('B'): 2, ord('C'): 2, ord('D'): 3, ord('F'): 5, ord('E'): 11}


def sample_tree() -> HuffmanTree:
    return build(seed_forest(SAMPLE_FREQUENCIES))


def quiet():
    return redirect_stdout(io.StringIO())


class TestBitAccess(unittest.TestCase):
    def test_bit_set(self):
        byte = 0b10110101
        expected = [True, False, True, True, False, True, False, True]
        for bit_num, value in enumerate(expected):
            self.assertEqual(is_bit_set(byte, bit_num), value)

        self.assertIsNone(is_bit_set(byte, 8))
        self.assertIsNone(is_bit_set(byte, 42))

    def test_bit_at(self):
        stream = bytes([0b10000000, 0b00000001, 0b00000000, 0b10100001])

        self.assertTrue(bit_at(stream, 0))
        self.assertFalse(bit_at(stream, 7))
        self.assertFalse(bit_at(stream, 14))
        self.assertTrue(bit_at(stream, 15))
        self.assertTrue(bit_at(stream, 24))
        self.assertFalse(bit_at(stream, 25))
        self.assertTrue(bit_at(stream, 26))
        self.assertFalse(bit_at(stream, 27))
        self.assertTrue(bit_at(stream, 31))

    def test_out_of_range(self):
        for size in range(4):
            buffer = b'\xff' * size
            self.assertIsNone(bit_at(buffer, size * 8))
            self.assertIsNone(bit_at(buffer, size * 8 + 100))
            self.assertIsNone(bit_at(buffer, -1))

    def test_format_bits(self):
        self.assertEqual(format_bits(b'\x32\x6a\x00'), "00110010 01101010 00000000")
        self.assertEqual(format_bits(b'\x32\x6a\x00', 18), "00110010 01101010 00")
        self.assertEqual(format_bits(b'\x32', 8), "00110010")
        self.assertEqual(format_bits(b''), "")


class TestHuffmanCode(unittest.TestCase):
    def test_push_pop(self):
        code = HuffmanCode()
        pushed = [True, False, True, True, False, True, True, False]
        expected = [0b1, 0b10, 0b101, 0b1011, 0b10110, 0b101101, 0b1011011, 0b10110110]

        for length, (bit, bits) in enumerate(zip(pushed, expected), start=1):
            code.push_bit(bit)
            self.assertEqual(code.length, length)
            self.assertEqual(code.bits, bits)

        for bit in reversed(pushed):
            self.assertEqual(code.pop_bit(), bit)

        self.assertEqual(code.length, 0)
        self.assertEqual(code.bits, 0)

    def test_longer_than_a_byte(self):
        code = HuffmanCode()
        for _ in range(20):
            code.push_bit(True)

        self.assertEqual(code.length, 20)
        self.assertEqual(code.bits, (1 << 20) - 1)
        self.assertEqual(code.to_string(), '1' * 20)

    def test_pop_empty(self):
        with self.assertRaises(IndexError):
            HuffmanCode().pop_bit()

    def test_copy_is_independent(self):
        code = HuffmanCode()
        code.push_bit(True)
        snapshot = code.copy()
        code.push_bit(False)

        self.assertEqual(snapshot, HuffmanCode(0b1, 1))
        self.assertEqual(code.to_string(), '10')

    def test_not_hashable(self):
        with self.assertRaises(TypeError):
            hash(HuffmanCode())


class TestTreeBuilder(unittest.TestCase):
    def test_collect_frequencies(self):
        frequencies = collect_frequencies(io.BytesIO(b"abracadabra"))
        self.assertEqual(dict(frequencies), {ord('a'): 5, ord('b'): 2, ord('r'): 2,
                                             ord('c'): 1, ord('d'): 1})

    def test_collect_frequencies_of_sample(self):
        self.assertEqual(dict(collect_frequencies(io.BytesIO(SAMPLE))), SAMPLE_FREQUENCIES)

    def test_collect_frequencies_read_error(self):
        class FailingStream(io.BytesIO):
            def read(self, size=-1):
                raise OSError("disk read failed")

        with self.assertRaises(OSError) as ctx:
            collect_frequencies(FailingStream(SAMPLE))
        self.assertEqual(str(ctx.exception), "disk read failed")

    def test_seed_forest(self):
        forest = seed_forest(SAMPLE_FREQUENCIES)
        self.assertEqual(len(forest), 6)
        self.assertTrue(all(node.is_leaf for node in forest.nodes))
        self.assertEqual([node.symbol for node in forest.nodes], sorted(SAMPLE_FREQUENCIES))

    def test_empty_forest(self):
        self.assertIsNone(build(seed_forest({})))
        self.assertIsNone(build_tree({}))

    def test_single_symbol(self):
        tree = build_tree({ord('x'): 7})
        self.assertTrue(tree.root_node.is_leaf)
        self.assertEqual(tree.root_node.symbol, ord('x'))
        self.assertEqual(tree.frequency, 7)

    def test_sample_shape(self):
        tree = sample_tree()
        root = tree.root_node

        self.assertEqual(root.frequency, 25)
        self.assertEqual(tree.node(root.right).symbol, ord('E'))
        self.assertEqual(tree.node(root.left).frequency, 14)
        self.assertEqual(tree.depth(), 4)
        self.assertEqual(tree.symbols(), sorted(SAMPLE_FREQUENCIES))

    def test_frequency_sum_invariant(self):
        random.seed(7)
        data = bytes(random.choice(b"the quick brown fox") for _ in range(2000))
        tree = build_tree(collect_frequencies(io.BytesIO(data)))

        self.assertEqual(tree.frequency, len(data))
        for index, _ in tree.walk():
            node = tree.node(index)
            if not node.is_leaf:
                self.assertEqual(node.frequency,
                                 tree.node(node.left).frequency + tree.node(node.right).frequency)

    def test_deterministic(self):
        first = derive_codes(build_tree(collect_frequencies(io.BytesIO(b"mississippi river"))))
        second = derive_codes(build_tree(collect_frequencies(io.BytesIO(b"mississippi river"))))
        self.assertEqual(first, second)

    def test_invalid_nodes(self):
        with self.assertRaises(ValueError):
            HuffmanNode(frequency=1)
        with self.assertRaises(ValueError):
            HuffmanNode(frequency=1, left=0)
        with self.assertRaises(ValueError):
            HuffmanNode(frequency=1, symbol=3, left=0, right=1)
        with self.assertRaises(ValueError):
            HuffmanNode(frequency=1, symbol=300)


class TestEncoder(unittest.TestCase):
    def test_sample_codes(self):
        codes = derive_codes(sample_tree())
        table = {chr(symbol): code.to_string() for symbol, code in codes.items()}

        self.assertEqual(table, {
            'E': '1',
            'F': '000',
            'B': '0010',
            'A': '0011',
            'D': '010',
            'C': '011',
        })

    def test_encode_sample(self):
        codes = derive_codes(sample_tree())
        block = encode(SAMPLE, codes)

        self.assertEqual(block, (bytes([0x33, 0x22, 0x6d, 0x24, 0x00, 0x03, 0xff, 0x80]), 57))

    def test_encode_spans_bytes(self):
        codes = derive_codes(sample_tree())
        self.assertEqual(encode(b"ABCDEF", codes), CompressedBlock(b'\x32\x6a\x00', 18))

    def test_bit_length_is_sum_of_codes(self):
        data = b"the rain in spain falls mainly on the plain"
        compressor = HuffmanCompressor.from_data(data)
        block = compressor.compress(data)

        self.assertEqual(block.bit_length, sum(compressor.codes[b].length for b in data))
        self.assertEqual(len(block.data), (block.bit_length + 7) // 8)

    def test_prefix_free(self):
        compressor = HuffmanCompressor.from_data(bytes(range(256)) + b"aaaabbbcc")
        codes = list(compressor.code_table().values())

        self.assertEqual(len(codes), 256)
        for i, first in enumerate(codes):
            for second in codes[i + 1:]:
                self.assertFalse(first.startswith(second))
                self.assertFalse(second.startswith(first))

    def test_unknown_symbol(self):
        codes = derive_codes(sample_tree())
        with self.assertRaises(KeyError):
            encode(b"AZ", codes)

    def test_empty_input(self):
        codes = derive_codes(sample_tree())
        self.assertEqual(encode(b"", codes), (b"", 0))

    def test_single_symbol(self):
        tree = build_tree({ord('A'): 4})
        codes = derive_codes(tree)

        self.assertEqual(codes, {ord('A'): HuffmanCode(0, 1)})
        self.assertEqual(encode(b"AAAA", codes), (b'\x00', 4))


class TestDecoder(unittest.TestCase):
    def test_decode_sample(self):
        block = (bytes([0x33, 0x22, 0x6d, 0x24, 0x00, 0x03, 0xff, 0x80]), 57)
        self.assertEqual(decode(block, sample_tree()), SAMPLE)

    def test_padding_ignored(self):
        block = CompressedBlock(b'\x32\x6a\x3f', 18)
        self.assertEqual(decode(block, sample_tree()), b"ABCDEF")

    def test_round_trip_text(self):
        data = b"It was the best of times, it was the worst of times." * 20
        compressor = HuffmanCompressor.from_data(data)
        self.assertEqual(compressor.decompress(compressor.compress(data)), data)

    def test_round_trip_random(self):
        random.seed(42)
        for size in (1, 2, 3, 100, 5000):
            data = bytes(random.getrandbits(8) for _ in range(size))
            compressor = HuffmanCompressor.from_data(data)
            self.assertEqual(compressor.decompress(compressor.compress(data)), data)

    def test_codes_longer_than_a_byte(self):
        frequencies = {symbol: 1 << max(symbol - 1, 0) for symbol in range(12)}
        data = b''.join(bytes([symbol]) * frequency for symbol, frequency in frequencies.items())
        compressor = HuffmanCompressor.from_frequencies(frequencies)

        self.assertEqual(max(code.length for code in compressor.codes.values()), 11)
        self.assertEqual(compressor.decompress(compressor.compress(data)), data)

    def test_single_symbol(self):
        compressor = HuffmanCompressor.from_data(b"zzzzzzzzzz")
        block = compressor.compress(b"zzzzzzzzzz")

        self.assertEqual(block.bit_length, 10)
        self.assertEqual(compressor.decompress(block), b"zzzzzzzzzz")

    def test_single_symbol_corrupted(self):
        tree = build_tree({ord('z'): 3})
        with self.assertRaises(ValueError):
            decode((b'\x80', 3), tree)

    def test_bit_length_beyond_buffer(self):
        with self.assertRaises(ValueError):
            decode((b'\x32', 9), sample_tree())

    def test_empty_block(self):
        self.assertEqual(decode((b'', 0), sample_tree()), b'')

    def test_no_compressor_for_empty_data(self):
        self.assertIsNone(HuffmanCompressor.from_data(b""))


class TestArchiveFormat(unittest.TestCase):
    def make_archive(self) -> Archive:
        compressor = HuffmanCompressor.from_frequencies(SAMPLE_FREQUENCIES)
        block = compressor.compress(SAMPLE)
        return Archive(
            original_size=len(SAMPLE),
            crc32=calculate_crc32(SAMPLE),
            chunk_size=1024,
            frequencies=dict(SAMPLE_FREQUENCIES),
            chunks=[ChunkEntry(bit_length=block.bit_length, data=block.data)]
        )

    def test_create_and_read_archive(self):
        archive = self.make_archive()
        read = ArchiveFormat.read_archive(ArchiveFormat.create_archive(archive))

        self.assertEqual(read, archive)
        self.assertEqual(read.compressed_size, 8)

    def test_header(self):
        header = ArchiveHeader().serialize()
        self.assertEqual(len(header), HEADER_SIZE)
        self.assertEqual(header[:4], b'HUFF')

    def test_bad_magic(self):
        data = bytearray(ArchiveFormat.create_archive(self.make_archive()))
        data[0:4] = b'LZHA'
        with self.assertRaises(ValueError):
            ArchiveFormat.read_archive(bytes(data))

    def test_unsupported_version(self):
        data = bytearray(ArchiveFormat.create_archive(self.make_archive()))
        data[4] = 99
        with self.assertRaises(ValueError):
            ArchiveFormat.read_archive(bytes(data))

    def test_truncated(self):
        data = ArchiveFormat.create_archive(self.make_archive())
        for size in (0, 10, HEADER_SIZE + 5, len(data) - 1):
            with self.assertRaises(ValueError):
                ArchiveFormat.read_archive(data[:size])

    def test_trailing_bytes(self):
        data = ArchiveFormat.create_archive(self.make_archive())
        with self.assertRaises(ValueError):
            ArchiveFormat.read_archive(data + b'\x00')

    def test_chunk_length_mismatch(self):
        archive = self.make_archive()
        archive.chunks[0].bit_length = 80
        with self.assertRaises(ValueError):
            ArchiveFormat.create_archive(archive)

    def test_crc32_verification(self):
        archive = self.make_archive()
        self.assertTrue(verify_integrity(archive, SAMPLE))
        self.assertFalse(verify_integrity(archive, SAMPLE[:-1]))
        self.assertFalse(verify_integrity(archive, SAMPLE[::-1]))


class TestArchiver(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.archiver = Archiver(chunk_size=16)

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def write(self, name: str, data: bytes) -> str:
        path = os.path.join(self.temp_dir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def test_stream_helpers(self):
        stream = io.BytesIO(b"0123456789")
        stream.read(3)
        self.assertEqual(stream_length(stream), 10)
        self.assertEqual(stream.tell(), 3)
        self.assertEqual(list(iter_chunks(stream, 4)), [b"3456", b"789"])

    def test_chunks_are_independent(self):
        data = b"Hello World! " * 8
        archive = self.archiver.compress_stream(io.BytesIO(data))

        self.assertEqual(len(archive.chunks), 7)
        self.assertEqual(archive.original_size, len(data))
        for chunk in archive.chunks:
            self.assertEqual(len(chunk.data), (chunk.bit_length + 7) // 8)

        compressor = HuffmanCompressor.from_frequencies(archive.frequencies)
        last = archive.chunks[-1]
        self.assertEqual(compressor.decompress((last.data, last.bit_length)), data[96:])

    def test_compress_decompress_file(self):
        archiver = Archiver()
        data = b"Content of file 1\n" * 50
        source = self.write("file1.txt", data)
        archive_path = os.path.join(self.temp_dir, "file1.huff")
        restored = os.path.join(self.temp_dir, "out", "file1.txt")

        with quiet():
            archive = archiver.compress_file(source, archive_path)
            written = archiver.decompress_file(archive_path, restored)

        self.assertLess(os.path.getsize(archive_path), len(data))
        self.assertEqual(archive.crc32, calculate_crc32(data))
        self.assertEqual(written, len(data))
        with open(restored, 'rb') as f:
            self.assertEqual(f.read(), data)

    def test_empty_file(self):
        source = self.write("empty.bin", b"")
        archive_path = os.path.join(self.temp_dir, "empty.huff")
        restored = os.path.join(self.temp_dir, "empty.out")

        with quiet():
            archive = self.archiver.compress_file(source, archive_path)
            self.archiver.decompress_file(archive_path, restored)

        self.assertEqual(archive.chunks, [])
        self.assertEqual(archive.frequencies, {})
        with open(restored, 'rb') as f:
            self.assertEqual(f.read(), b"")

    def test_verbose_report(self):
        archiver = Archiver(chunk_size=1024, verbose=True)
        output = io.StringIO()
        with redirect_stdout(output):
            archiver.compress_stream(io.BytesIO(SAMPLE))

        report = output.getvalue()
        self.assertIn(">> Compressed stream >>", report)
        lines = report.splitlines()
        self.assertIn("00110011 00100010 01101101 00100100 00000000 00000011 11111111 1", lines)
        self.assertNotIn("10000000", report)
        self.assertIn(SAMPLE.decode('latin-1'), report)
        self.assertIn("Message size: 25 Compressed size: 8", report)

    def test_verbose_empty(self):
        output = io.StringIO()
        with redirect_stdout(output):
            Archiver(verbose=True).compress_stream(io.BytesIO(b""))
        self.assertIn("Empty tree.", output.getvalue())

    def test_corrupted_payload(self):
        data = bytearray(compress_bytes(b"This is a test" * 100, chunk_size=64))
        data[-2] ^= 0xff
        with self.assertRaises(ValueError):
            decompress_bytes(bytes(data))

    def test_bytes_round_trip(self):
        random.seed(1)
        for size in (0, 1, 17, 1024, 3000):
            data = bytes(random.getrandbits(8) for _ in range(size))
            self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_single_symbol_file(self):
        data = b'A' * (1024 * 3 + 5)
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            Archiver(chunk_size=0)
        with self.assertRaises(ValueError):
            Archiver(chunk_size=2 ** 32)

    def test_largest_chunk_size(self):
        archive = Archiver(chunk_size=0xFFFFFFFF).compress_stream(io.BytesIO(SAMPLE))
        data = ArchiveFormat.create_archive(archive)
        self.assertEqual(ArchiveFormat.read_archive(data).chunk_size, 0xFFFFFFFF)


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def run_main(self, *argv):
        with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()):
            main.main(list(argv))

    def test_round_trip(self):
        source = os.path.join(self.temp_dir, "in.txt")
        archive_path = os.path.join(self.temp_dir, "in.huff")
        restored = os.path.join(self.temp_dir, "restored.txt")
        with open(source, 'wb') as f:
            f.write(b"Lorem ipsum dolor sit amet " * 200)

        self.run_main('compress', source, archive_path, '--chunk-size', '100')
        self.run_main('decompress', archive_path, restored)

        with open(restored, 'rb') as f:
            self.assertEqual(f.read(), b"Lorem ipsum dolor sit amet " * 200)

    def test_unknown_mode(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main('squash', 'a', 'b')
        self.assertEqual(ctx.exception.code, 2)

    def test_wrong_arity(self):
        for argv in ([], ['compress'], ['compress', 'a'], ['compress', 'a', 'b', 'c']):
            with self.assertRaises(SystemExit) as ctx:
                self.run_main(*argv)
            self.assertEqual(ctx.exception.code, 2)

    def test_bad_chunk_size(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main('compress', 'a', 'b', '--chunk-size', '0')
        self.assertEqual(ctx.exception.code, 2)

    def test_chunk_size_too_large(self):
        source = os.path.join(self.temp_dir, "in.txt")
        with open(source, 'wb') as f:
            f.write(SAMPLE)

        with self.assertRaises(SystemExit) as ctx:
            self.run_main('compress', source, os.path.join(self.temp_dir, "out"),
                          '--chunk-size', str(2 ** 32))
        self.assertEqual(ctx.exception.code, 2)
        self.assertFalse(os.path.exists(os.path.join(self.temp_dir, "out")))

    def test_missing_input(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main('compress', os.path.join(self.temp_dir, "missing"),
                          os.path.join(self.temp_dir, "out"))
        self.assertEqual(ctx.exception.code, 1)


def run_tests():
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestBitAccess))
    suite.addTests(loader.loadTestsFromTestCase(TestHuffmanCode))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeBuilder))
    suite.addTests(loader.loadTestsFromTestCase(TestEncoder))
    suite.addTests(loader.loadTestsFromTestCase(TestDecoder))
    suite.addTests(loader.loadTestsFromTestCase(TestArchiveFormat))
    suite.addTests(loader.loadTestsFromTestCase(TestArchiver))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
