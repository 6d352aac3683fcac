#############################################################################
#
#  Project Name        :    MP4 fast-start converter
#
#  Author              :    Alex Ashley
#
#############################################################################

import io
import logging
from pathlib import Path
import sys
import unittest
from unittest.mock import patch

from pyfakefs.fake_filesystem_unittest import TestCase

from faststart.convert import (
    ConversionError, ConvertOptions, ErrorCode, FastStartConverter
)
from faststart.utils.files import output_filename

from .mixins.mixin import TestCaseMixin
from .mixins.mp4_fixtures import Mp4Fixture, ftyp_box, movie_box, pack_box, track_box

class OutputFilenameTests(unittest.TestCase):
    def test_output_filename(self) -> None:
        test_cases = [
            ('/media/clip.mp4', '/media/clip.out.mp4'),
            ('/media/clip.v2.m4v', '/media/clip.v2.out.m4v'),
            ('relative/clip.MP4', 'relative/clip.out.MP4'),
            ('/media/clip', '/media/clip.out'),
        ]
        for source, expected in test_cases:
            self.assertEqual(output_filename(Path(source)), Path(expected))


class FastStartConverterTests(TestCaseMixin, TestCase):
    def setUp(self) -> None:
        self.setUpPyfakefs()
        self.log_level = logging.getLogger().level
        self.fixture = Mp4Fixture(num_tracks=2)
        self.original = self.fixture.build()
        self.source = Path('/media/clip.mp4')
        self.fs.create_file(self.source, contents=self.original)

    def tearDown(self) -> None:
        logging.getLogger().setLevel(self.log_level)

    def create_converter(self, **kwargs) -> FastStartConverter:
        kwargs.setdefault('source', self.source)
        return FastStartConverter(ConvertOptions(**kwargs))

    def test_convert(self) -> None:
        fsc = self.create_converter()
        with self.assertLogs('faststart', level='INFO') as cm:
            result = fsc.convert(self.source)
        self.assertIn('The MP4 file has been made streamable.', cm.output[-1])
        self.assertTrue(result.converted)
        self.assertEqual(result.reason, 'converted')
        self.assertEqual(result.source, self.source)
        self.assertEqual(result.output, Path('/media/clip.out.mp4'))
        self.assertTrue(self.source.exists())
        self.assertChunksMatch(self.fixture, self.original, result.output.read_bytes())

    def test_convert_to_named_output(self) -> None:
        self.fs.create_dir('/output')
        dest = Path('/output/streamable.mp4')
        result = self.create_converter().convert(self.source, dest)
        self.assertEqual(result.output, dest)
        self.assertChunksMatch(self.fixture, self.original, dest.read_bytes())
        self.assertFalse(Path('/media/clip.out.mp4').exists())

    def test_delete_source(self) -> None:
        result = self.create_converter(delete_source=True).convert(self.source)
        self.assertTrue(result.converted)
        self.assertFalse(self.source.exists())
        self.assertTrue(result.output.exists())

    def test_file_not_found(self) -> None:
        self.fs.create_dir('/media/folder.mp4')
        fsc = self.create_converter()
        for name in ['/media/missing.mp4', '/media/folder.mp4']:
            with self.assertRaises(ConversionError) as ctx:
                fsc.convert(Path(name))
            self.assertEqual(ctx.exception.code, ErrorCode.SEARCH_FAIL)
            self.assertEqual(ctx.exception.code.value, 'ERR_SEARCH_FAIL')

    def test_bad_input(self) -> None:
        bad = Path('/media/bad.mp4')
        self.fs.create_file(bad, contents=b'\x00\x00\x00\x02junk')
        with self.assertRaises(ConversionError) as ctx:
            self.create_converter().convert(bad)
        self.assertEqual(ctx.exception.code, ErrorCode.BAD_INPUT)
        self.assertFalse(Path('/media/bad.out.mp4').exists())

    def test_truncated_file_type_box(self) -> None:
        data = pack_box('ftyp', b'isom\x00\x00') + pack_box('mdat', b'') + movie_box([])
        bad = Path('/media/ftyp.mp4')
        self.fs.create_file(bad, contents=data)
        fsc = self.create_converter()
        with self.assertRaises(ConversionError) as ctx:
            fsc.convert(bad)
        self.assertEqual(ctx.exception.code, ErrorCode.BAD_INPUT)
        with self.assertRaises(ConversionError) as ctx:
            fsc.check(bad)
        self.assertEqual(ctx.exception.code, ErrorCode.BAD_INPUT)
        self.assertFalse(Path('/media/ftyp.out.mp4').exists())

    def test_malformed_movie_box_child(self) -> None:
        moov = pack_box('moov', b'\x00\x00\x00\x40trak' + bytes(8))
        data = ftyp_box() + pack_box('mdat', b'') + moov
        bad = Path('/media/moov.mp4')
        self.fs.create_file(bad, contents=data)
        with self.assertRaises(ConversionError) as ctx:
            self.create_converter().convert(bad)
        self.assertEqual(ctx.exception.code, ErrorCode.BAD_INPUT)
        self.assertFalse(Path('/media/moov.out.mp4').exists())

    def test_main_malformed_input(self) -> None:
        self.fs.create_file(
            '/media/ftyp.mp4',
            contents=pack_box('ftyp', b'isom\x00\x00') + pack_box('mdat', b'') + movie_box([]))
        moov = pack_box('moov', b'\x00\x00\x00\x40trak' + bytes(8))
        self.fs.create_file(
            '/media/moov.mp4', contents=ftyp_box() + pack_box('mdat', b'') + moov)
        for name in ['/media/ftyp.mp4', '/media/moov.mp4']:
            for argv in [[name], ['--check', name]]:
                with patch.dict('faststart.convert.converter.environ', {}, clear=True):
                    with patch('sys.stderr', new_callable=io.StringIO) as stderr:
                        rv = FastStartConverter.main(argv)
                self.assertEqual(rv, 1, msg=repr(argv))
                self.assertTrue(
                    stderr.getvalue().startswith('ERR_BAD_INPUT: '), msg=stderr.getvalue())

    def test_conversion_failure(self) -> None:
        data = ftyp_box() + pack_box('mdat', b'') + movie_box([track_box([0xFFFFFFF0])])
        big = Path('/media/big.mp4')
        self.fs.create_file(big, contents=data)
        with self.assertRaises(ConversionError) as ctx:
            self.create_converter(delete_source=True).convert(big)
        self.assertEqual(ctx.exception.code, ErrorCode.FAIL)
        self.assertTrue(big.exists())
        self.assertFalse(Path('/media/big.out.mp4').exists())

    def test_already_streamable(self) -> None:
        fixture = Mp4Fixture(moov_first=True)
        source = Path('/media/fast.mp4')
        self.fs.create_file(source, contents=fixture.build())
        result = self.create_converter().convert(source)
        self.assertFalse(result.converted)
        self.assertEqual(result.reason, 'already streamable')
        self.assertIsNone(result.output)
        self.assertFalse(Path('/media/fast.out.mp4').exists())

        result = self.create_converter(copy=True).convert(source)
        self.assertFalse(result.converted)
        self.assertEqual(result.output, Path('/media/fast.out.mp4'))
        self.assertBuffersEqual(source.read_bytes(), result.output.read_bytes())

    def test_incompatible_brand(self) -> None:
        fixture = Mp4Fixture(major_brand='qt  ', brands=('qt  ',))
        source = Path('/media/movie.mov')
        self.fs.create_file(source, contents=fixture.build())
        result = self.create_converter(delete_source=True).convert(source)
        self.assertFalse(result.converted)
        self.assertEqual(result.reason, 'incompatible brand')
        self.assertIsNone(result.output)
        self.assertTrue(source.exists())

    def test_check(self) -> None:
        self.assertEqual(self.create_converter().check(self.source), {
            'has_compatible_brand': True,
            'is_streamable': False,
            'can_be_made_streamable': True,
        })

    def test_main(self) -> None:
        with patch.dict('faststart.convert.converter.environ', {}, clear=True):
            with patch('sys.stdout', new_callable=io.StringIO) as stdout:
                rv = FastStartConverter.main([str(self.source)])
        self.assertEqual(rv, 0)
        self.assertEqual(stdout.getvalue().strip(), '/media/clip.out.mp4')
        self.assertTrue(Path('/media/clip.out.mp4').exists())

    def test_main_with_output(self) -> None:
        with patch.dict('faststart.convert.converter.environ', {}, clear=True):
            with patch('sys.stdout', new_callable=io.StringIO) as stdout:
                rv = FastStartConverter.main(
                    ['-o', '/media/out.mp4', '--no-atomic', str(self.source)])
        self.assertEqual(rv, 0)
        self.assertEqual(stdout.getvalue().strip(), '/media/out.mp4')
        self.assertChunksMatch(
            self.fixture, self.original, Path('/media/out.mp4').read_bytes())

    def test_main_not_converted(self) -> None:
        self.fs.create_file('/media/fast.mp4', contents=Mp4Fixture(moov_first=True).build())
        with patch.dict('faststart.convert.converter.environ', {}, clear=True):
            with patch('sys.stdout', new_callable=io.StringIO) as stdout:
                rv = FastStartConverter.main(['/media/fast.mp4'])
        self.assertEqual(rv, 0)
        self.assertEqual(stdout.getvalue().strip(), '/media/fast.mp4: already streamable')

    def test_main_error(self) -> None:
        with patch.dict('faststart.convert.converter.environ', {}, clear=True):
            with patch('sys.stderr', new_callable=io.StringIO) as stderr:
                rv = FastStartConverter.main(['/media/missing.mp4'])
        self.assertEqual(rv, 1)
        self.assertTrue(stderr.getvalue().startswith('ERR_SEARCH_FAIL: '))

    def test_main_check(self) -> None:
        with patch.dict('faststart.convert.converter.environ', {}, clear=True):
            with patch('sys.stdout', new_callable=io.StringIO) as stdout:
                rv = FastStartConverter.main(['--check', str(self.source)])
        self.assertEqual(rv, 0)
        self.assertEqual(stdout.getvalue().splitlines(), [
            'has_compatible_brand: True',
            'is_streamable: False',
            'can_be_made_streamable: True',
        ])
        self.assertFalse(Path('/media/clip.out.mp4').exists())

    def test_main_settings_file(self) -> None:
        self.fs.create_file('/etc/faststart.env', contents='FASTSTART_LOG_LEVEL=error\n')
        config = {'FASTSTART_SETTINGS': '/etc/faststart.env'}
        with patch.dict('faststart.convert.converter.environ', config, clear=True):
            with patch('sys.stdout', new_callable=io.StringIO):
                rv = FastStartConverter.main([str(self.source)])
        self.assertEqual(rv, 0)
        self.assertEqual(logging.getLogger().level, logging.ERROR)


class ConvertOptionsTests(unittest.TestCase):
    @patch.dict('faststart.convert.convert_options.environ', {}, clear=True)
    def test_defaults(self) -> None:
        opts = ConvertOptions.parse_args(['clip.mp4'])
        self.assertEqual(opts.source, Path('clip.mp4'))
        self.assertIsNone(opts.output)
        self.assertFalse(opts.check)
        self.assertFalse(opts.copy)
        self.assertFalse(opts.delete_source)
        self.assertTrue(opts.atomic_write)
        self.assertFalse(opts.strict)
        self.assertEqual(opts.max_box_size, sys.maxsize)
        self.assertEqual(opts.log_level, 'WARNING')
        mp4_opts = opts.mp4_options()
        self.assertTrue(mp4_opts.atomic_write)
        self.assertFalse(mp4_opts.debug)

    def test_environment(self) -> None:
        config = {
            'FASTSTART_ATOMIC_WRITE': 'false',
            'FASTSTART_STRICT': 'yes',
            'FASTSTART_MAX_BOX_SIZE': '1000',
            'FASTSTART_LOG_LEVEL': 'debug',
        }
        with patch.dict('faststart.convert.convert_options.environ', config, clear=True):
            opts = ConvertOptions.parse_args(['clip.mp4'])
        self.assertFalse(opts.atomic_write)
        self.assertTrue(opts.strict)
        self.assertEqual(opts.max_box_size, 1000)
        self.assertEqual(opts.log_level, 'DEBUG')
        mp4_opts = opts.mp4_options()
        self.assertFalse(mp4_opts.atomic_write)
        self.assertTrue(mp4_opts.strict)
        self.assertEqual(mp4_opts.max_box_size, 1000)

    @patch.dict('faststart.convert.convert_options.environ', {}, clear=True)
    def test_command_line(self) -> None:
        opts = ConvertOptions.parse_args([
            '--output', 'out.mp4', '--copy', '--delete-source', '--no-atomic',
            '--strict', '--max-box-size', '4096', '--log-level', 'INFO', '-v',
            'clip.mp4'])
        self.assertEqual(opts.output, Path('out.mp4'))
        self.assertTrue(opts.copy)
        self.assertTrue(opts.delete_source)
        self.assertFalse(opts.atomic_write)
        self.assertTrue(opts.strict)
        self.assertEqual(opts.max_box_size, 4096)
        self.assertEqual(opts.log_level, 'INFO')
        self.assertTrue(opts.verbose)
        self.assertTrue(opts.mp4_options().debug)


if __name__ == "__main__":
    unittest.main()
