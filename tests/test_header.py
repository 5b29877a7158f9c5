#
#  machbind | tests
#  test_header.py
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#
import os
import sys
import tempfile
import unittest
from io import BytesIO

sys.path.insert(0, os.path.dirname(os.path.realpath(__file__)))

from fixtures import *

from machbind.exceptions import NotMachOException, MalformedMachOException
from machbind.macho import BackingFile, MachHeader
from machbind.loader import MachOImageLoader
from machbind.util import log, LogLevel

log.LOG_LEVEL = LogLevel.ERROR


class HeaderTestCase(unittest.TestCase):

    def setUp(self):
        enable_error_capture()

    def tearDown(self):
        disable_error_capture()

    def test_header_fields(self):
        header = MachHeader.from_buffer(BackingFile(scenario_image_bytes()))

        self.assertEqual(header.magic, MH_MAGIC_64)
        self.assertEqual(header.ncmds, 4)
        self.assertEqual(header.sizeofcmds, 72 + 152 + 24 + 80)
        self.assertEqual(header.cpu_type_name, 'ARM64')
        self.assertEqual(header.filetype_name, 'EXECUTE')
        self.assertIn('PIE', header.flag_names)
        self.assertIn('DYLDLINK', header.flag_names)
        self.assertNotIn('NOUNDEFS', header.flag_names)
        self.assertEqual(header.reserved, 0)
        self.assertEqual(header.serialize()['reserved'], 0)

    def test_unknown_cpu_and_filetype(self):
        builder = scenario_builder()
        builder.header_overrides = {'cpu_type': 0x1234, 'filetype': 0x77}
        header = MachHeader.from_buffer(BackingFile(builder.build()))

        self.assertEqual(header.cpu_type_name, 'UNKNOWN')
        self.assertEqual(header.filetype_name, 'UNKNOWN')

    def test_bad_magic(self):
        data = patch(scenario_image_bytes(), 0, 0xDEADBEEF)

        with self.assertRaises(NotMachOException) as context:
            MachHeader.from_buffer(BackingFile(data))

        self.assertEqual(context.exception.magic, 0xDEADBEEF)
        self.assertIn('Bad Magic', captured_errors())

    def test_other_magics_rejected(self):
        for magic in [MH_MAGIC, MH_CIGAM_64, FAT_MAGIC, FAT_CIGAM]:
            data = patch(scenario_image_bytes(), 0, magic)
            with self.assertRaises(NotMachOException):
                MachOImageLoader.load(BackingFile(data))

    def test_short_buffer(self):
        data = scenario_image_bytes()[:16]

        with self.assertRaises(NotMachOException):
            MachHeader.from_buffer(BackingFile(data))

        with self.assertRaises(NotMachOException):
            MachHeader.from_buffer(BackingFile(b''))

    def test_header_only(self):
        # a valid header with no load commands is a valid (if useless) image
        builder = MachOBuilder()
        builder.with_symtab = False
        builder.with_dysymtab = False
        image = MachOImageLoader.load(BackingFile(builder.build()))

        self.assertEqual(image.header.ncmds, 0)
        self.assertEqual(image.load_commands, [])
        self.assertFalse(image.bindings_resolved)


class BackingFileTestCase(unittest.TestCase):

    def setUp(self):
        enable_error_capture()

    def tearDown(self):
        disable_error_capture()

    def test_bounds(self):
        buffer = BackingFile(b'\x01\x02\x03\x04')

        self.assertTrue(buffer.in_bounds(0, 4))
        self.assertFalse(buffer.in_bounds(1, 4))
        self.assertFalse(buffer.in_bounds(-1, 1))
        self.assertEqual(buffer.read_uint(0, 4), 0x04030201)

        with self.assertRaises(MalformedMachOException):
            buffer.read_bytes(2, 4)

    def test_read_cstr_stops_at_end(self):
        buffer = BackingFile(b'abc\x00defgh')

        self.assertEqual(buffer.read_cstr(0), 'abc')
        self.assertEqual(buffer.read_cstr(4), 'defgh')
        self.assertEqual(buffer.read_cstr(4, 6), 'de')
        self.assertEqual(buffer.read_cstr(3), '')

    def test_load_struct_sets_offset(self):
        data = scenario_image_bytes()
        buffer = BackingFile(data)

        cmd = buffer.load_struct(SCENARIO_COMMAND_OFFSETS[1], segment_command_64)

        self.assertEqual(cmd.off, SCENARIO_COMMAND_OFFSETS[1])
        self.assertEqual(cmd.segname, '__DATA')
        self.assertEqual(cmd.raw, data[cmd.off:cmd.off + segment_command_64.size()])

    def test_from_bytesio(self):
        data = scenario_image_bytes()
        buffer = BackingFile.from_fp(BytesIO(data))

        self.assertEqual(buffer.size, len(data))
        self.assertEqual(buffer.read_bytes(0, len(data)), data)

    def test_from_file_mmap(self):
        data = scenario_image_bytes()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'scenario')
            with open(path, 'wb') as fp:
                fp.write(data)

            with open(path, 'rb') as fp:
                buffer = BackingFile.from_fp(fp)
                self.assertEqual(buffer.name, 'scenario')
                self.assertEqual(buffer.size, len(data))
                self.assertEqual(buffer.read_uint(0, 4), MH_MAGIC_64)
                buffer.close()

    def test_from_empty_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'empty')
            open(path, 'wb').close()

            with open(path, 'rb') as fp:
                buffer = BackingFile.from_fp(fp)

            self.assertEqual(buffer.size, 0)
            with self.assertRaises(NotMachOException):
                MachHeader.from_buffer(buffer)


if __name__ == '__main__':
    unittest.main()
