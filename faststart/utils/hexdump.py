#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################
from typing import Iterator, TextIO

def format_line(start: int, hex_line: list[str], ascii_line: list[str],
                width: int) -> str:
    if len(hex_line) < width:
        hex_line = hex_line + ['  '] * (width - len(hex_line))
    return '{:08x}: {}  {}'.format(start, ' '.join(hex_line), ''.join(ascii_line))

def hexdump_lines(data: bytes, max_length: int = 256, offset: int = 0,
                  width: int = 16) -> Iterator[str]:
    """
    Produces lines of "position: hex bytes  ascii" text. The position of each
    line is its offset within data.
    """
    end = min(len(data), offset + max_length)
    for start in range(offset, end, width):
        chunk = data[start:min(start + width, end)]
        hex_line = [f'{d:02x}' for d in chunk]
        ascii_line = [chr(d) if ord(' ') <= d <= ord('~') else '.' for d in chunk]
        yield format_line(start, hex_line, ascii_line, width)
    if end < len(data):
        yield '.......'

def hexdump_buffer(label: str, data: bytes, max_length: int = 256,
                   offset: int = 0, width: int = 16,
                   file: TextIO | None = None) -> None:
    print(f'==={label}===', file=file)
    for line in hexdump_lines(data, max_length=max_length, offset=offset, width=width):
        print(line, file=file)
    print('==={}==='.format('=' * len(label)), file=file)
