#
#  machbind | tests
#  test_binding.py
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.realpath(__file__)))

from fixtures import *

from machbind.binding import *
from machbind.exceptions import (IndirectIndexOutOfBoundsException, SymbolIndexOutOfBoundsException,
                                 NameOutOfBoundsException, MalformedMachOException)
from machbind.loader import MachOImageLoader
from machbind.macho import BackingFile
from machbind.util import ignore, opts


def load(data):
    return MachOImageLoader.load(BackingFile(data))


def binding_names(image):
    return [binding.name for binding in image.bindings]


class IndirectEntryTestCase(unittest.TestCase):

    def test_sentinels(self):
        self.assertEqual(decode_indirect_entry(INDIRECT_SYMBOL_LOCAL), IndirectEntry(IndirectEntryKind.LOCAL, None))
        self.assertEqual(decode_indirect_entry(INDIRECT_SYMBOL_ABS), IndirectEntry(IndirectEntryKind.ABS, None))
        self.assertEqual(decode_indirect_entry(INDIRECT_SYMBOL_LOCAL | INDIRECT_SYMBOL_ABS),
                         IndirectEntry(IndirectEntryKind.LOCAL_ABS, None))

    def test_symbol_index(self):
        self.assertEqual(decode_indirect_entry(0), IndirectEntry(IndirectEntryKind.SYMBOL, 0))
        self.assertEqual(decode_indirect_entry(5), IndirectEntry(IndirectEntryKind.SYMBOL, 5))
        # sentinel bits alone don't make a sentinel
        self.assertEqual(decode_indirect_entry(INDIRECT_SYMBOL_LOCAL | 1).kind, IndirectEntryKind.SYMBOL)

    def test_table_bounds(self):
        builder = scenario_builder()
        buffer = BackingFile(builder.build())
        table = IndirectSymbolTable(buffer, builder.offsets['indirectsymoff'], 2)

        self.assertEqual(len(table), 2)
        self.assertEqual([table.entry(0), table.entry(1)], [1, 2])
        with self.assertRaises(IndirectIndexOutOfBoundsException):
            table.entry(2)


class IndirectBindingResolverTestCase(unittest.TestCase):

    def setUp(self):
        enable_error_capture()

    def tearDown(self):
        disable_error_capture()
        ignore.MALFORMED = False
        opts.BINDING_SEGMENTS = ('__DATA', '__DATA_CONST')

    def test_resolves_slots_in_order(self):
        image = load(scenario_image_bytes())

        self.assertTrue(image.bindings_resolved)
        self.assertEqual(binding_names(image), ['_foo', '_bar'])
        self.assertEqual([binding.slot for binding in image.bindings], [0, 1])
        self.assertEqual([binding.address for binding in image.bindings], [0x100004000, 0x100004008])
        self.assertEqual([binding.symbol_index for binding in image.bindings], [1, 2])
        self.assertEqual(image.bindings[0].segment_name, '__DATA')
        self.assertEqual(image.bindings[0].section_name, '__nl_symbol_ptr')
        self.assertEqual(image.bindings[0].section_type, SectionType.S_NON_LAZY_SYMBOL_POINTERS)
        self.assertEqual(image.binding_failures, [])

    def test_local_sentinel_skipped(self):
        builder = scenario_builder()
        builder.indirect = [INDIRECT_SYMBOL_LOCAL, 2]
        image = load(builder.build())

        self.assertEqual(binding_names(image), ['_bar'])
        self.assertEqual(image.bindings[0].slot, 1)
        self.assertEqual(image.binding_failures, [])

    def test_all_sentinels_skipped(self):
        builder = scenario_builder()
        builder.indirect = [INDIRECT_SYMBOL_ABS, INDIRECT_SYMBOL_LOCAL | INDIRECT_SYMBOL_ABS]
        image = load(builder.build())

        self.assertTrue(image.bindings_resolved)
        self.assertEqual(image.bindings, [])
        self.assertEqual(image.binding_failures, [])

    def test_non_pointer_section_ignored(self):
        builder = MachOBuilder()
        builder.add_segment('__DATA', [SectionSpec('__data', SectionType.S_REGULAR, 16, 0, 0x4000),
                                       SectionSpec('__mod_init_func', SectionType.S_MOD_INIT_FUNC_POINTERS, 16, 0,
                                                   0x4010)])
        builder.add_symbol('_foo')
        builder.indirect = [0, 0]
        image = load(builder.build())

        self.assertTrue(image.bindings_resolved)
        self.assertEqual(image.bindings, [])

    def test_only_binding_segments(self):
        builder = scenario_builder()
        builder.add_segment('__OTHER', [SectionSpec('__got', SectionType.S_NON_LAZY_SYMBOL_POINTERS, 16, 0,
                                                    0x8000)])
        image = load(builder.build())

        self.assertEqual([binding.segment_name for binding in image.bindings], ['__DATA', '__DATA'])

        opts.BINDING_SEGMENTS = ('__DATA', '__OTHER')
        image = load(builder.build())
        self.assertEqual(binding_names(image), ['_foo', '_bar', '_foo', '_bar'])
        self.assertEqual(image.bindings[2].address, 0x8000)

    def test_sections_in_load_command_order(self):
        builder = MachOBuilder()
        builder.add_segment('__DATA_CONST', [SectionSpec('__got', SectionType.S_NON_LAZY_SYMBOL_POINTERS, 8, 0,
                                                         0x4000)])
        builder.add_segment('__DATA', [SectionSpec('__la_symbol_ptr', SectionType.S_LAZY_SYMBOL_POINTERS, 16, 1,
                                                   0x8000)])
        builder.add_symbol('_foo')
        builder.add_symbol('_bar')
        builder.indirect = [0, 1, 0]
        image = load(builder.build())

        self.assertEqual([(binding.section_name, binding.slot, binding.name) for binding in image.bindings],
                         [('__got', 0, '_foo'), ('__la_symbol_ptr', 0, '_bar'), ('__la_symbol_ptr', 1, '_foo')])
        self.assertEqual(image.bindings[1].section_type, SectionType.S_LAZY_SYMBOL_POINTERS)
        self.assertEqual(image.bindings[2].address, 0x8008)

    def test_indirect_index_out_of_bounds(self):
        builder = scenario_builder()
        # three slots, two indirect entries
        builder.segments[1][1][0] = builder.segments[1][1][0]._replace(size=24)
        image = load(builder.build())

        self.assertEqual(binding_names(image), ['_foo', '_bar'])
        self.assertEqual(len(image.binding_failures), 1)
        failure = image.binding_failures[0]
        self.assertEqual((failure.segment_name, failure.section_name, failure.slot), ('__DATA', '__nl_symbol_ptr', 2))
        self.assertEqual(failure.last_slot, 2)
        self.assertIsInstance(failure.reason, IndirectIndexOutOfBoundsException)

    def test_slots_past_indirect_table_share_one_failure(self):
        builder = scenario_builder()
        # far more slots than the indirect table has entries
        slot_count = 1 << 40
        builder.segments[1][1][0] = builder.segments[1][1][0]._replace(size=slot_count * 8)
        image = load(builder.build())

        self.assertEqual(binding_names(image), ['_foo', '_bar'])
        self.assertEqual(len(image.binding_failures), 1)
        failure = image.binding_failures[0]
        self.assertEqual((failure.slot, failure.last_slot), (2, slot_count - 1))
        self.assertIsInstance(failure.reason, IndirectIndexOutOfBoundsException)
        self.assertEqual(serialize_failure(failure)['last_slot'], slot_count - 1)

    def test_reserved1_past_indirect_table(self):
        builder = scenario_builder()
        builder.segments[1][1][0] = builder.segments[1][1][0]._replace(reserved1=7)
        image = load(builder.build())

        self.assertEqual(image.bindings, [])
        self.assertEqual(len(image.binding_failures), 1)
        self.assertEqual((image.binding_failures[0].slot, image.binding_failures[0].last_slot), (0, 1))

    def test_symbol_index_out_of_bounds(self):
        builder = scenario_builder()
        builder.indirect = [9, 2]
        image = load(builder.build())

        self.assertEqual(binding_names(image), ['_bar'])
        self.assertEqual(image.binding_failures[0].slot, 0)
        self.assertIsInstance(image.binding_failures[0].reason, SymbolIndexOutOfBoundsException)

    def test_name_out_of_bounds(self):
        builder = scenario_builder()
        builder.symbols[2][0] = len(builder.strings)
        image = load(builder.build())

        self.assertEqual(binding_names(image), ['_foo'])
        self.assertEqual(image.binding_failures[0].slot, 1)
        self.assertIsInstance(image.binding_failures[0].reason, NameOutOfBoundsException)

    def test_missing_dysymtab(self):
        builder = scenario_builder()
        builder.with_dysymtab = False
        image = load(builder.build())

        self.assertIsNone(image.dysymtab)
        self.assertIsNotNone(image.symbol_table)
        self.assertFalse(image.bindings_resolved)
        self.assertEqual(image.bindings, [])

    def test_missing_symtab(self):
        builder = scenario_builder()
        builder.with_symtab = False
        image = load(builder.build())

        self.assertIsNone(image.symbol_table)
        self.assertIsNotNone(image.dysymtab)
        self.assertFalse(image.bindings_resolved)
        self.assertEqual(image.bindings, [])

    def test_indirect_table_outside_file(self):
        builder = scenario_builder()
        builder.dysymtab_overrides = {'nindirectsyms': 0x100000}
        data = builder.build()

        with self.assertRaises(MalformedMachOException):
            load(data)

        ignore.MALFORMED = True
        image = load(data)
        self.assertFalse(image.bindings_resolved)
        self.assertEqual(image.bindings, [])

    def test_serialized_failures(self):
        builder = scenario_builder()
        builder.indirect = [1, 9]
        image = load(builder.build())

        self.assertEqual(serialize_failure(image.binding_failures[0])['reason'], 'SymbolIndexOutOfBounds')
        self.assertEqual(serialize_binding(image.bindings[0]),
                         {'segment': '__DATA', 'section': '__nl_symbol_ptr', 'type': 'S_NON_LAZY_SYMBOL_POINTERS',
                          'slot': 0, 'address': 0x100004000, 'symbol_index': 1, 'name': '_foo'})


if __name__ == '__main__':
    unittest.main()
