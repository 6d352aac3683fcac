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
from typing import BinaryIO

from faststart.mpeg.exceptions import MalformedInput

from .int_codec import decode
from .sizes import format_sizes

class FieldReader:
    __slots__ = ['name', 'src', 'kwargs', 'log']

    def __init__(self, name: str, src: BinaryIO, kwargs: dict,
                 debug: bool = False) -> None:
        self.name = name
        self.src = src
        self.kwargs = kwargs
        if debug:
            self.log = logging.getLogger('fio')
        else:
            self.log = None

    def read(self, size: int | str, field: str) -> None:
        self.kwargs[field] = self.get(size, field)

    def get(self, size: int | str, field: str) -> int | bytes:
        if isinstance(size, int):
            value = self.read_exactly(size, field)
            if self.log and self.log.isEnabledFor(logging.DEBUG):
                self.log.debug('%s: read %s size=%d pos=%d value=0x%s', self.name, field,
                               size, self.src.tell(), str(binascii.b2a_hex(value), 'ascii'))
            return value
        try:
            length = format_sizes[size]
        except KeyError:
            raise ValueError("unsupported size: " + size)
        value = decode(size, self.read_exactly(length, field))
        if self.log and self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                '%s: read %s size=%s pos=%d value=0x%x',
                self.name, field, size, self.src.tell(), value)
        return value

    def read_exactly(self, size: int, field: str) -> bytes:
        position = self.src.tell()
        value = self.src.read(size)
        if len(value) != size:
            raise MalformedInput(
                f'{self.name}: failed to read {field}, expected {size} bytes '
                f'but only {len(value)} available', position)
        return value

    def remaining(self) -> bytes:
        return self.src.read()
