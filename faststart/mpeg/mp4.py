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

import argparse
from dataclasses import dataclass, field
import io
import json
import logging
import sys
from typing import Any, BinaryIO, Optional

from faststart.utils.fio import FieldReader, FieldWriter, decode32
from faststart.utils.fio.sizes import max_values
from faststart.utils.hexdump import hexdump_buffer

from .exceptions import MalformedInput, MissingChild, Overflow, UnsupportedSize

@dataclass(slots=True, kw_only=True)
class Options:
    debug: bool = False
    strict: bool = False
    atomic_write: bool = True
    max_box_size: int = sys.maxsize
    log: logging.Logger = field(init=False)

    def __post_init__(self):
        self.log = logging.getLogger('mp4')


def make_options(options: Options | dict | None) -> Options:
    if options is None:
        return Options()
    if isinstance(options, dict):
        return Options(**options)
    return options


def fourcc(box_name: str):
    def func(cls):
        fourcc.BOXES[box_name] = cls
        return cls
    return func


fourcc.BOXES = {}  # map from fourcc code to Mp4Atom class

class Mp4Atom:
    """
    A length-prefixed, typed ISO BMFF record. The payload is kept as it was
    read; sub-classes decode fields from it on first use.
    """

    HEADER_SIZE = 8
    LARGE_HEADER_SIZE = 16

    def __init__(self, atom_type: str | bytes | None = None,
                 data: bytes = b'',
                 raw_size: int | None = None,
                 size: int | None = None,
                 position: int | None = None,
                 options: Options | dict | None = None) -> None:
        if atom_type is None:
            for k, v in fourcc.BOXES.items():
                if v == type(self):
                    atom_type = k
                    break
        if atom_type is None:
            raise KeyError('Missing atom_type')
        if not isinstance(atom_type, str):
            atom_type = str(atom_type, 'latin-1')
        if len(atom_type) != 4:
            raise ValueError(f'Invalid atom type "{atom_type}"')
        self.atom_type = atom_type
        self.data = data
        self.options = make_options(options)
        self.position = position
        if size is None:
            if raw_size == 1 or len(data) + self.HEADER_SIZE > max_values['I']:
                size = len(data) + self.LARGE_HEADER_SIZE
            else:
                size = len(data) + self.HEADER_SIZE
        if raw_size is None:
            raw_size = 1 if size > max_values['I'] else size
        self.raw_size = raw_size
        self.size = size
        self._fields: dict[str, Any] | None = None

    @property
    def header_size(self) -> int:
        if self.raw_size == 1:
            return self.LARGE_HEADER_SIZE
        return self.HEADER_SIZE

    def __repr__(self) -> str:
        return '{}(atom_type="{}",raw_size={:d},size={:d})'.format(
            type(self).__name__, self.atom_type, self.raw_size, self.size)

    def is_type(self, atom_type: str | bytes) -> bool:
        if isinstance(atom_type, bytes):
            atom_type = str(atom_type, 'latin-1')
        return self.atom_type == atom_type

    @classmethod
    def load(cls, src: BinaryIO,
             options: Options | dict | None = None) -> list["Mp4Atom"]:
        """
        Parse the given source to create MP4 atoms.
        :src: a readable (file) source
        :options: the mp4.Options to use, or a dictionary of option values
        """
        assert src is not None
        options = make_options(options)
        rv: list[Mp4Atom] = []
        while True:
            atom = cls.load_one(src, options=options)
            if atom is None:
                break
            rv.append(atom)
        return rv

    @classmethod
    def load_one(cls, src: BinaryIO,
                 options: Options | dict | None = None) -> Optional["Mp4Atom"]:
        """
        Read the next box from the source. Returns None at end of stream.
        """
        options = make_options(options)
        position = src.tell()
        hdr = src.read(4)
        if not hdr:
            options.log.debug("EOS at %d", position)
            return None
        if len(hdr) != 4:
            raise MalformedInput('Failed to read box length', position)
        raw_size = decode32(hdr)
        r = FieldReader('Mp4Atom', src, {}, debug=options.debug)
        atom_type = str(r.get(4, 'atom_type'), 'latin-1')
        if raw_size == 0:
            data = r.remaining()
            size = cls.HEADER_SIZE + len(data)
        elif raw_size == 1:
            size = r.get('Q', 'large_size')
            if size > options.max_box_size:
                raise UnsupportedSize(atom_type, size, options.max_box_size)
            if size < cls.LARGE_HEADER_SIZE:
                raise MalformedInput(
                    f'Invalid large size {size} for "{atom_type}" atom', position)
            data = r.read_exactly(size - cls.LARGE_HEADER_SIZE, 'data')
        else:
            if raw_size < cls.HEADER_SIZE:
                raise MalformedInput(
                    f'Invalid size {raw_size} for "{atom_type}" atom', position)
            size = raw_size
            data = r.read_exactly(size - cls.HEADER_SIZE, 'data')
        try:
            Box = fourcc.BOXES[atom_type]
        except KeyError:
            Box = UnknownBox
        options.log.debug('found atom "%s" type=%s pos=%d size=%d',
                          atom_type, Box.__name__, position, size)
        return Box(atom_type=atom_type, data=data, raw_size=raw_size, size=size,
                   position=position, options=options)

    def _decoded(self) -> dict[str, Any]:
        if self._fields is None:
            r = FieldReader(type(self).__name__, io.BytesIO(self.data), {},
                            debug=self.options.debug)
            self.parse_fields(r)
            self._fields = r.kwargs
        return self._fields

    def parse_fields(self, r: FieldReader) -> None:
        return

    def decode_all(self) -> None:
        """
        Decodes every field of this atom now, rather than on first use, so that
        any parse error is raised immediately
        """
        self._decoded()

    def encode(self, dest: BinaryIO | None = None) -> bytes | BinaryIO:
        out = dest
        if out is None:
            out = io.BytesIO()
        self.options.log.debug('%s: encode %s size=%d', self.atom_type,
                               type(self).__name__, self.size)
        self.encode_header(out)
        self.encode_fields(dest=out)
        if dest is None:
            return out.getvalue()
        return dest

    def encode_header(self, dest: BinaryIO) -> None:
        w = FieldWriter(self, dest)
        w.write('I', 'raw_size')
        w.write(4, 'atom_type', value=bytes(self.atom_type, 'latin-1'))
        if self.raw_size == 1:
            w.write('Q', 'size')

    def encode_fields(self, dest: BinaryIO) -> None:
        dest.write(self.data)

    def to_json(self) -> dict[str, Any]:
        rv = {
            'atom_type': self.atom_type,
            'position': self.position,
            'size': self.size,
        }
        if self.raw_size != self.size:
            rv['raw_size'] = self.raw_size
        return rv

    def dump(self, indent: str = '') -> None:
        position = self.position if self.position is not None else 0
        print('{}{}: {:d} -> {:d} [{:d} bytes]'.format(
            indent, self.atom_type, position, position + self.size, self.size))


class UnknownBox(Mp4Atom):
    """
    Any box that is preserved as opaque bytes
    """


@fourcc('pdin')
class ProgressiveDownloadInfoBox(UnknownBox):
    pass


@fourcc('mdat')
class MediaDataBox(UnknownBox):
    pass


@fourcc('free')
class FreeSpaceBox(UnknownBox):
    pass


@fourcc('ftyp')
class FileTypeBox(Mp4Atom):
    def parse_fields(self, r: FieldReader) -> None:
        r.kwargs['major_brand'] = str(r.get(4, 'major_brand'), 'latin-1')
        r.read('I', 'minor_version')
        brands = set()
        rest = r.remaining()
        for idx in range(0, len(rest) - 3, 4):
            brands.add(str(rest[idx:idx + 4], 'latin-1'))
        r.kwargs['compatible_brands'] = frozenset(brands)

    @property
    def major_brand(self) -> str:
        return self._decoded()['major_brand']

    @property
    def minor_version(self) -> int:
        return self._decoded()['minor_version']

    @property
    def compatible_brands(self) -> frozenset[str]:
        return self._decoded()['compatible_brands']

    def is_compatible_with_any_of(self, brands: set[str] | frozenset[str]) -> bool:
        return not self.compatible_brands.isdisjoint(brands)

    def to_json(self) -> dict[str, Any]:
        rv = super().to_json()
        rv['major_brand'] = self.major_brand
        rv['minor_version'] = self.minor_version
        rv['compatible_brands'] = sorted(self.compatible_brands)
        return rv


class FullBox(Mp4Atom):
    def parse_fields(self, r: FieldReader) -> None:
        r.read('B', 'version')
        r.read('3I', 'flags')

    @property
    def version(self) -> int:
        return self._decoded()['version']

    @property
    def flags(self) -> int:
        return self._decoded()['flags']

    def encode_fields(self, dest: BinaryIO) -> None:
        d = FieldWriter(self, dest)
        d.write('B', 'version')
        d.write('3I', 'flags')
        self.encode_box_fields(dest)

    def encode_box_fields(self, dest: BinaryIO) -> None:
        dest.write(self.data[4:])

    def to_json(self) -> dict[str, Any]:
        rv = super().to_json()
        rv['version'] = self.version
        rv['flags'] = self.flags
        return rv


class BoxWithChildren(Mp4Atom):
    """
    A container box. Its children are parsed from the payload the first time
    they are needed.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._children: list[Mp4Atom] | None = None

    @property
    def children(self) -> list[Mp4Atom]:
        if self._children is None:
            self.options.log.debug('%s: parse %d bytes of children',
                                   self.atom_type, len(self.data))
            self._children = Mp4Atom.load(io.BytesIO(self.data), options=self.options)
        return self._children

    def decode_all(self) -> None:
        for child in self.children:
            child.decode_all()

    def children_of_type(self, atom_type: str) -> list[Mp4Atom]:
        return [ch for ch in self.children if ch.atom_type == atom_type]

    def first_child(self, *atom_types: str) -> Mp4Atom:
        for ch in self.children:
            if ch.atom_type in atom_types:
                return ch
        raise MissingChild(self.atom_type, '/'.join(atom_types))

    def encode(self, dest: BinaryIO | None = None) -> bytes | BinaryIO:
        if self._children is None:
            # children never decoded, so the payload is unchanged
            return super().encode(dest)
        payload = io.BytesIO()
        for child in self._children:
            child.encode(payload)
        payload = payload.getvalue()
        if self.raw_size == 1 or len(payload) + self.HEADER_SIZE > max_values['I']:
            self.raw_size = 1
            self.size = len(payload) + self.LARGE_HEADER_SIZE
        else:
            self.size = len(payload) + self.HEADER_SIZE
            self.raw_size = self.size
        out = dest
        if out is None:
            out = io.BytesIO()
        self.options.log.debug('%s: encode %d children size=%d', self.atom_type,
                               len(self._children), self.size)
        self.encode_header(out)
        out.write(payload)
        if dest is None:
            return out.getvalue()
        return dest

    def to_json(self) -> dict[str, Any]:
        rv = super().to_json()
        rv['children'] = [ch.to_json() for ch in self.children]
        return rv

    def dump(self, indent: str = '') -> None:
        super().dump(indent)
        for c in self.children:
            c.dump(indent + '  ')


@fourcc('moov')
class MovieBox(BoxWithChildren):
    @property
    def tracks(self) -> list["TrackBox"]:
        return self.children_of_type('trak')


@fourcc('trak')
class TrackBox(BoxWithChildren):
    @property
    def media(self) -> "MediaBox":
        return self.first_child('mdia')


@fourcc('mdia')
class MediaBox(BoxWithChildren):
    @property
    def info(self) -> "MediaInformationBox":
        return self.first_child('minf')


@fourcc('minf')
class MediaInformationBox(BoxWithChildren):
    @property
    def sample_table(self) -> "SampleTableBox":
        return self.first_child('stbl')


@fourcc('stbl')
class SampleTableBox(BoxWithChildren):
    @property
    def chunk_offsets(self) -> "ChunkOffsetBox":
        return self.first_child('stco', 'co64')


class ChunkOffsetBox(FullBox):
    """
    Table of absolute file positions of every chunk of media samples.
    See section 8.7.5 of ISO/IEC 14496-12
    """
    OFFSET_FORMAT = 'I'

    def parse_fields(self, r: FieldReader) -> None:
        super().parse_fields(r)
        r.read('I', 'entry_count')
        r.kwargs['offsets'] = [
            r.get(self.OFFSET_FORMAT, 'offset') for _ in range(r.kwargs['entry_count'])]
        trailing = r.remaining()
        if trailing:
            msg = '{}: {:d} bytes after the last chunk offset will be discarded'.format(
                self.atom_type, len(trailing))
            self.options.log.warning(msg)
            if self.options.strict:
                raise MalformedInput(msg)

    @property
    def entry_count(self) -> int:
        return len(self.offsets)

    @property
    def offsets(self) -> list[int]:
        return self._decoded()['offsets']

    def add_global_offset(self, delta: int) -> None:
        offsets = self.offsets
        offsets[:] = [off + delta for off in offsets]

    def encode_box_fields(self, dest: BinaryIO) -> None:
        w = FieldWriter(self, dest)
        w.write('I', 'entry_count', value=len(self.offsets))
        for off in self.offsets:
            w.write(self.OFFSET_FORMAT, 'offset', value=off)

    def to_json(self) -> dict[str, Any]:
        rv = super().to_json()
        rv['entry_count'] = self.entry_count
        rv['offsets'] = list(self.offsets)
        return rv


@fourcc('stco')
class ChunkOffset32Box(ChunkOffsetBox):
    OFFSET_FORMAT = 'I'

    def add_global_offset(self, delta: int) -> None:
        # checked before modifying, so a failure leaves the table untouched
        offsets = self.offsets
        for off in offsets:
            value = off + delta
            if value < 0 or value > max_values['I']:
                raise Overflow(
                    f'{self.atom_type}: chunk offset {off} + {delta} cannot be '
                    'stored in 32 bits', value)
        super().add_global_offset(delta)


@fourcc('co64')
class ChunkOffset64Box(ChunkOffsetBox):
    OFFSET_FORMAT = 'Q'


class IsoParser:
    @staticmethod
    def walk_atoms(filename, options=None) -> list[Mp4Atom]:
        options = make_options(options)
        options.log.debug('Parse %s', filename)
        if not isinstance(filename, (str, bytes)) and hasattr(filename, 'read'):
            return Mp4Atom.load(filename, options=options)
        with open(filename, mode="rb") as src:
            return Mp4Atom.load(io.BytesIO(src.read()), options=options)

    @staticmethod
    def show_atom(atom: Mp4Atom, atom_types: set[str], as_json: bool,
                  count: int = 0, hex_length: int = 0) -> int:
        check_children = True
        if atom.atom_type in atom_types:
            if as_json:
                if count > 0:
                    print(',')
                print(json.dumps(atom.to_json(), sort_keys=True, indent=2))
            else:
                atom.dump()
                if hex_length > 0:
                    hexdump_buffer(atom.atom_type, atom.data, max_length=hex_length)
            check_children = False
            count += 1
        if check_children and isinstance(atom, BoxWithChildren):
            for child in atom.children:
                count = IsoParser.show_atom(
                    child, atom_types=atom_types, as_json=as_json, count=count,
                    hex_length=hex_length)
        return count

    @classmethod
    def main(cls, argv: list[str] | None = None) -> int:
        logging.basicConfig()
        ap = argparse.ArgumentParser(description='MP4 parser')
        ap.add_argument('-d', '--debug', action="store_true")
        ap.add_argument('--json', action="store_true")
        ap.add_argument(
            '-s', '--show', help='Show contents of specified atom')
        ap.add_argument(
            '-t', '--tree', action="store_true", help='Show atom tree')
        ap.add_argument(
            '--hex', type=int, default=0, metavar='LENGTH',
            help='Hex dump the first LENGTH bytes of the payload of each shown atom')
        ap.add_argument(
            'mp4file', help='Filename of MP4 file', nargs='+', default=None)
        args = ap.parse_args(argv)
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)
        options = Options(debug=args.debug)
        atom_types: set[str] = set()
        if args.show:
            atom_types = {name.strip() for name in args.show.split(',')}
        if args.json:
            print('[')
        count = 0
        for filename in args.mp4file:
            atoms = IsoParser.walk_atoms(filename, options=options)
            for atom in atoms:
                if args.tree:
                    atom.dump()
                if atom_types:
                    count = IsoParser.show_atom(
                        atom, atom_types=atom_types, as_json=args.json, count=count,
                        hex_length=args.hex)
        if args.json:
            print(']')
        return 0


if __name__ == "__main__":
    sys.exit(IsoParser.main())
