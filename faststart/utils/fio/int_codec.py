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
import struct

from faststart.mpeg.exceptions import LengthMismatch, Overflow

from .sizes import format_sizes, max_values

def decode(fmt: str, data: bytes) -> int:
    """
    Interpret exactly format_sizes[fmt] bytes as a big endian unsigned integer
    """
    size = format_sizes[fmt]
    if len(data) != size:
        raise LengthMismatch(size, len(data))
    if fmt == '3I':
        return (data[0] << 16) + (data[1] << 8) + data[2]
    return struct.unpack('>' + fmt, data)[0]


def encode(fmt: str, value: int) -> bytes:
    if value < 0 or value > max_values[fmt]:
        raise Overflow(
            f'{value} cannot be stored in {format_sizes[fmt]} bytes', value)
    if fmt == '3I':
        return struct.pack('>I', value)[1:]
    return struct.pack('>' + fmt, value)


def decode24(data: bytes) -> int:
    return decode('3I', data)


def decode32(data: bytes) -> int:
    return decode('I', data)


def decode64(data: bytes) -> int:
    return decode('Q', data)


def encode24(value: int) -> bytes:
    return encode('3I', value)


def encode32(value: int) -> bytes:
    return encode('I', value)


def encode64(value: int) -> bytes:
    return encode('Q', value)
