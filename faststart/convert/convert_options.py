#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################
import argparse
from dataclasses import dataclass
from os import environ
from pathlib import Path
import sys
from typing import Any

from faststart.mpeg.mp4 import Options

def env_flag(name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


@dataclass
class ConvertOptions:
    source: Path
    output: Path | None = None
    check: bool = False
    copy: bool = False
    delete_source: bool = False
    atomic_write: bool = True
    strict: bool = False
    max_box_size: int = sys.maxsize
    log_level: str = 'WARNING'
    verbose: bool = False

    def mp4_options(self) -> Options:
        return Options(
            debug=self.verbose,
            strict=self.strict,
            atomic_write=self.atomic_write,
            max_box_size=self.max_box_size)

    @staticmethod
    def parse_args(argv: list[str] | None) -> "ConvertOptions":
        """
        Command line arguments take precedence over the FASTSTART_* environment
        variables, which can also be provided in a .env file
        """
        ap = argparse.ArgumentParser(
            description='Move the moov box of an MP4 file in front of its media data')
        ap.add_argument('--output', '-o',
                        help='Output filename (default=<name>.out<ext> next to the input)')
        ap.add_argument('--check', action="store_true",
                        help='Report if the file can be made streamable, without converting it')
        ap.add_argument('--copy', action="store_true",
                        help='Copy the input to the output if it does not need converting')
        ap.add_argument('--delete-source', dest='delete_source', action="store_true",
                        help='Remove the input file after a successful conversion')
        ap.add_argument('--no-atomic', dest='atomic_write', action="store_false",
                        default=env_flag('FASTSTART_ATOMIC_WRITE', True),
                        help='Write directly to the output file, rather than a temporary file')
        ap.add_argument('--strict', action="store_true",
                        default=env_flag('FASTSTART_STRICT', False),
                        help='Reject boxes that contain unexpected data')
        ap.add_argument('--max-box-size', dest='max_box_size', type=int,
                        default=int(environ.get('FASTSTART_MAX_BOX_SIZE', sys.maxsize)),
                        help='Largest box size (in bytes) that will be accepted')
        ap.add_argument('--log-level', dest='log_level',
                        default=environ.get('FASTSTART_LOG_LEVEL', 'WARNING').upper(),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
        ap.add_argument('-v', '--verbose', help='Verbose mode', action="store_true")
        ap.add_argument('source', help='MP4 file to convert')
        args: argparse.Namespace = ap.parse_args(argv)
        co_args: dict[str, Any] = {**vars(args)}
        co_args["source"] = Path(args.source)
        if args.output is not None:
            co_args["output"] = Path(args.output)
        return ConvertOptions(**co_args)
