#############################################################################
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#
#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################

import binascii
import logging
from typing import Any, BinaryIO

from .int_codec import encode

class FieldWriter:
    def __init__(self, obj: Any, dest: BinaryIO, debug: bool = False) -> None:
        self.obj = obj
        if isinstance(dest, FieldWriter):
            dest = dest.dest
        self.dest = dest
        if debug:
            self.log = logging.getLogger('fio')
        elif hasattr(self.obj, 'options') and getattr(self.obj.options, 'debug', False):
            self.log = logging.getLogger('fio')
        else:
            self.log = None

    def write(self, size: int | str | None, field: str, value: Any = None) -> int:
        """
        Write one field. "size" is either a struct-like format ('B', 'H', '3I',
        'I', 'Q'), a byte count (value is truncated or zero padded) or None to
        write the value as-is.
        """
        if value is None:
            value = getattr(self.obj, field)
        if isinstance(size, str):
            value = encode(size, value)
        elif isinstance(size, int):
            padding = size - len(value)
            if padding > 0:
                value += b'\0' * padding
            elif padding < 0:
                value = value[:size]
        if self.log and self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                '%s: Write %s size=%s (%d) pos=%d value=0x%s',
                type(self.obj).__name__, field, str(size), len(value),
                self.dest.tell(), str(binascii.b2a_hex(value[:32]), 'ascii'))
        return self.dest.write(value)
