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

import io
import os
from pathlib import Path
import tempfile
from typing import BinaryIO

from . import streamable
from .mp4 import Mp4Atom, Options, make_options

class Mp4Container:
    """
    All of the top level boxes of one MP4 file.

    The source is read and every box is decoded when the container is
    created, so that a malformed file is rejected before any query. If the
    source is a filename, the container opens it; if it is a stream, the
    container takes ownership of it. In both cases the stream is closed by
    close(), or when leaving a "with" block.
    """

    def __init__(self, src: str | Path | BinaryIO,
                 options: Options | dict | None = None) -> None:
        self.options = make_options(options)
        self._src: BinaryIO | None = None
        if isinstance(src, (str, Path)):
            self.filename = Path(src)
            self._src = self.filename.open('rb')
        else:
            self.filename = None
            self._src = src
        try:
            self.options.log.debug('Parse %s', self.filename or 'stream')
            data = self._src.read()
            self.atoms: list[Mp4Atom] = Mp4Atom.load(io.BytesIO(data), options=self.options)
            for atom in self.atoms:
                atom.decode_all()
        except BaseException:
            self.close()
            raise

    def __enter__(self) -> "Mp4Container":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        if self._src is not None:
            src = self._src
            self._src = None
            src.close()

    @property
    def has_compatible_brand(self) -> bool:
        """
        True if the file has a brand that is known to be compatible
        """
        return streamable.has_compatible_brand(self.atoms)

    @property
    def is_streamable(self) -> bool:
        """
        True if the moov box comes before the mdat box
        """
        return streamable.is_streamable(self.atoms)

    @property
    def can_be_made_streamable(self) -> bool:
        return self.has_compatible_brand and not self.is_streamable

    def make_streamable(self, dest: str | Path | BinaryIO) -> None:
        if not isinstance(dest, (str, Path)):
            self.atoms = streamable.make_streamable(
                self.atoms, dest, log=self.options.log)
            return
        dest = Path(dest)
        if not self.options.atomic_write:
            buf = io.BytesIO()
            self.atoms = streamable.make_streamable(
                self.atoms, buf, log=self.options.log)
            with dest.open('wb') as out:
                out.write(buf.getvalue())
            return
        fd, tmp_name = tempfile.mkstemp(
            prefix=f'.{dest.name}.', suffix='.tmp', dir=dest.parent)
        try:
            with os.fdopen(fd, 'wb') as out:
                self.atoms = streamable.make_streamable(
                    self.atoms, out, log=self.options.log)
            os.replace(tmp_name, dest)
        except BaseException:
            os.unlink(tmp_name)
            raise
        self.options.log.debug('Wrote %s', dest)

    def dump(self) -> None:
        for atom in self.atoms:
            atom.dump()
