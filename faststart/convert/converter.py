#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################

#
# Post-processing for a video that has just been trimmed or exported: if the
# MP4 file is not streamable, re-write it so that its moov box comes before
# its media data.
#
# Example:
#
# python -m faststart -o clip-faststart.mp4 clip.mp4
#
# To only report whether a file needs converting:
#
# python -m faststart --check clip.mp4
#

from dataclasses import dataclass
from enum import Enum
import logging
from os import environ
from pathlib import Path
import shutil
import sys

from dotenv import load_dotenv

from faststart.mpeg.container import Mp4Container
from faststart.mpeg.exceptions import Mp4Exception
from faststart.utils.files import output_filename

from .convert_options import ConvertOptions

class ErrorCode(Enum):
    SEARCH_FAIL = 'ERR_SEARCH_FAIL'
    BAD_INPUT = 'ERR_BAD_INPUT'
    FAIL = 'ERR_FAIL'


class ConversionError(Exception):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class ConversionResult:
    source: Path
    output: Path | None
    converted: bool
    reason: str


class FastStartConverter:
    options: ConvertOptions

    def __init__(self, options: ConvertOptions) -> None:
        self.options = options
        self.log = logging.getLogger('faststart')

    def open(self, source: Path) -> Mp4Container:
        if not source.exists() or not source.is_file():
            raise ConversionError(
                ErrorCode.SEARCH_FAIL, f'Failed to locate the provided file "{source}"')
        try:
            return Mp4Container(source, options=self.options.mp4_options())
        except Mp4Exception as err:
            raise ConversionError(
                ErrorCode.BAD_INPUT, f'{source}: {err}') from err
        except OSError as err:
            raise ConversionError(ErrorCode.FAIL, f'{source}: {err}') from err

    def check(self, source: Path) -> dict[str, bool]:
        with self.open(source) as mp4:
            return {
                'has_compatible_brand': mp4.has_compatible_brand,
                'is_streamable': mp4.is_streamable,
                'can_be_made_streamable': mp4.can_be_made_streamable,
            }

    def convert(self, source: Path, dest: Path | None = None) -> ConversionResult:
        if dest is None:
            dest = output_filename(source)
        with self.open(source) as mp4:
            if not mp4.can_be_made_streamable:
                if mp4.has_compatible_brand:
                    reason = 'already streamable'
                else:
                    reason = 'incompatible brand'
                self.log.info('%s: not converted (%s)', source, reason)
                if not self.options.copy:
                    return ConversionResult(
                        source=source, output=None, converted=False, reason=reason)
                try:
                    shutil.copyfile(source, dest)
                except OSError as err:
                    raise ConversionError(ErrorCode.FAIL, f'{dest}: {err}') from err
                return ConversionResult(
                    source=source, output=dest, converted=False, reason=reason)
            try:
                mp4.make_streamable(dest)
            except (Mp4Exception, OSError) as err:
                raise ConversionError(
                    ErrorCode.FAIL, f'Failed to convert {source}: {err}') from err
        self.log.info('The MP4 file has been made streamable.')
        if self.options.delete_source and source.resolve() != dest.resolve():
            self.log.debug('Remove %s', source)
            source.unlink()
        return ConversionResult(
            source=source, output=dest, converted=True, reason='converted')

    @staticmethod
    def main(argv: list[str] | None = None) -> int:
        load_dotenv(environ.get('FASTSTART_SETTINGS', '.env'))
        logging.basicConfig()
        args: ConvertOptions = ConvertOptions.parse_args(argv)
        logging.getLogger().setLevel(args.log_level)
        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)
        fsc = FastStartConverter(args)
        try:
            if args.check:
                for name, value in fsc.check(args.source).items():
                    print(f'{name}: {value}')
                return 0
            result: ConversionResult = fsc.convert(args.source, args.output)
        except ConversionError as err:
            print(f'{err.code.value}: {err}', file=sys.stderr)
            return 1
        if result.output is not None:
            print(result.output)
        else:
            print(f'{args.source}: {result.reason}')
        return 0
