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

#
# A file is "streamable" (also known as "fast start") when its moov box comes
# before its mdat box. The moov box is the table of contents of the file; when
# it is at the end, a player has to download all of the media data before
# it can start playback.
#
# To move the moov box in front of the mdat box, every chunk offset in every
# track's sample table has to be increased by the size of the moov box,
# because all of the media samples move forward by exactly that amount.
#

import io
import logging
from typing import BinaryIO, Sequence

from .exceptions import InvalidLayout, Mp4Exception
from .mp4 import ChunkOffsetBox, FileTypeBox, MovieBox, Mp4Atom

COMPATIBLE_BRANDS: frozenset[str] = frozenset({'mp42', 'isom'})

HEADER_ATOMS: frozenset[str] = frozenset({'ftyp', 'moov'})

def index_of(atoms: Sequence[Mp4Atom], atom_type: str) -> int:
    """
    Index of the first atom of the given type, or -1 if not present
    """
    for idx, atom in enumerate(atoms):
        if atom.atom_type == atom_type:
            return idx
    return -1


def has_compatible_brand(atoms: Sequence[Mp4Atom]) -> bool:
    return any(
        isinstance(atom, FileTypeBox) and atom.is_compatible_with_any_of(COMPATIBLE_BRANDS)
        for atom in atoms)


def is_streamable(atoms: Sequence[Mp4Atom]) -> bool:
    # when moov or mdat is missing, this is still a plain comparison with -1
    return index_of(atoms, 'moov') < index_of(atoms, 'mdat')


def can_be_made_streamable(atoms: Sequence[Mp4Atom]) -> bool:
    return has_compatible_brand(atoms) and not is_streamable(atoms)


def check_layout(atoms: Sequence[Mp4Atom]) -> MovieBox:
    """
    Checks that the atoms contain exactly one moov and one mdat box, and that
    the moov box is the last box. Returns the moov box.
    """
    num_moov = sum(1 for a in atoms if a.atom_type == 'moov')
    num_mdat = sum(1 for a in atoms if a.atom_type == 'mdat')
    if num_moov != 1:
        raise InvalidLayout(f'Expected exactly one moov box, found {num_moov}')
    if num_mdat != 1:
        raise InvalidLayout(f'Expected exactly one mdat box, found {num_mdat}')
    movie_box = atoms[-1]
    if not isinstance(movie_box, MovieBox):
        raise InvalidLayout(
            f'Expected moov to be the last box, found "{movie_box.atom_type}"')
    return movie_box


def make_streamable(atoms: Sequence[Mp4Atom], dest: BinaryIO,
                    log: logging.Logger | None = None) -> list[Mp4Atom]:
    """
    Re-orders the atoms so that ftyp and moov come first, patching the chunk
    offsets of every track, then writes them to dest.
    Nothing is written to dest if any step fails, and the chunk offsets of
    every track are restored to their original values.
    """
    if log is None:
        log = logging.getLogger('mp4')
    movie_box = check_layout(atoms)
    moov_size = movie_box.size
    tables = [track.media.info.sample_table.chunk_offsets for track in movie_box.tracks]
    patched: list[ChunkOffsetBox] = []
    try:
        for idx, stco in enumerate(tables):
            log.debug('trak[%d]: add %d to %d "%s" chunk offsets',
                      idx, moov_size, len(stco.offsets), stco.atom_type)
            stco.add_global_offset(moov_size)
            patched.append(stco)
        # sorted() is stable, so the order within each group is preserved
        reordered = sorted(atoms, key=lambda atom: atom.atom_type not in HEADER_ATOMS)
        out = io.BytesIO()
        for atom in reordered:
            atom.encode(out)
        if movie_box.size != moov_size:
            raise InvalidLayout(
                f'moov box changed size from {moov_size} to {movie_box.size} bytes')
    except Mp4Exception:
        for stco in patched:
            stco.add_global_offset(-moov_size)
        raise
    data = out.getvalue()
    log.debug('Writing %d bytes: %s', len(data),
              ', '.join(a.atom_type for a in reordered))
    dest.write(data)
    return reordered
