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

class Mp4Exception(Exception):
    """
    Base class of all errors raised while parsing or rewriting an MP4 file
    """


class LengthMismatch(Mp4Exception, ValueError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f'Expected exactly {expected} bytes but got {actual} bytes')
        self.expected = expected
        self.actual = actual


class MalformedInput(Mp4Exception, ValueError):
    def __init__(self, msg: str, position: int | None = None) -> None:
        if position is not None:
            msg = f'{msg} (pos={position})'
        super().__init__(msg)
        self.position = position


class UnsupportedSize(Mp4Exception, ValueError):
    def __init__(self, atom_type: str, size: int, limit: int) -> None:
        super().__init__(
            f'Cannot read more than {limit} bytes, but the "{atom_type}" '
            f'atom is {size} bytes')
        self.atom_type = atom_type
        self.size = size
        self.limit = limit


class MissingChild(Mp4Exception, LookupError):
    def __init__(self, parent_type: str, child_type: str) -> None:
        super().__init__(
            f'"{parent_type}" box does not contain a "{child_type}" box')
        self.parent_type = parent_type
        self.child_type = child_type


class Overflow(Mp4Exception, OverflowError):
    def __init__(self, msg: str, value: int | None = None) -> None:
        super().__init__(msg)
        self.value = value


class InvalidLayout(Mp4Exception, ValueError):
    pass
