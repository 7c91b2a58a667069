"""
Командная строка для архиватора Хаффмана.
"""

import argparse
import sys
from archiver import Archiver, DEFAULT_CHUNK_SIZE
from format import MAX_CHUNK_SIZE


MODES = ('compress', 'decompress')


def positive_int(value: str) -> int:
    number = int(value)
    if not 0 < number <= MAX_CHUNK_SIZE:
        raise argparse.ArgumentTypeError(f"must be between 1 and {MAX_CHUNK_SIZE}, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='huffpack',
        description='Huffman file compressor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py compress notes.txt notes.huff
  python main.py compress notes.txt notes.huff --chunk-size 4096 -v
  python main.py decompress notes.huff notes.txt
        """
    )

    parser.add_argument('mode', choices=MODES, help='Operation')
    parser.add_argument('input', help='Input file')
    parser.add_argument('output', help='Output file')
    parser.add_argument('-c', '--chunk-size', type=positive_int, default=DEFAULT_CHUNK_SIZE,
                        help=f'Bytes per independently compressed chunk (default={DEFAULT_CHUNK_SIZE})')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Dump every compressed chunk and its decoding')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        print(f"Mode: {args.mode}\nInput: {args.input}\nOutput: {args.output}\n")

    archiver = Archiver(chunk_size=args.chunk_size, verbose=args.verbose)

    try:
        if args.mode == 'compress':
            archiver.compress_file(args.input, args.output)

        elif args.mode == 'decompress':
            archiver.decompress_file(args.input, args.output)

    except (OSError, ValueError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
