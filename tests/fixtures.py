#
#  machbind | tests
#  fixtures.py
#
#  In-memory Mach-O images for the test suite, assembled from the struct definitions.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#
import os
import sys
from collections import namedtuple

scriptdir = os.path.dirname(os.path.realpath(__file__))
sys.path.insert(0, f'{scriptdir}/../src')

from libmachbind.log import log, print_err
from libmachbind.structs import Struct
from machbind_macho import *

SectionSpec = namedtuple("SectionSpec", ["name", "flags", "size", "reserved1", "addr"])

error_buffer = ""


def error_remap(msg):
    global error_buffer
    error_buffer += msg + '\n'


def enable_error_capture():
    log.LOG_ERR = error_remap
    global error_buffer
    error_buffer = ""


def captured_errors():
    return error_buffer


def disable_error_capture():
    log.LOG_ERR = print_err


def patch(data: bytes, location: int, value: int, size=4) -> bytes:
    patched = bytearray(data)
    patched[location:location + size] = value.to_bytes(size, 'little')
    return bytes(patched)


class MachOBuilder:
    """
    Lays out a 64 bit Mach-O: header, segments, any extra commands, LC_SYMTAB, LC_DYSYMTAB, then the indirect
        symbol table, the nlist entries and the string table, back to back.

    Offsets of everything written are available after build() in .offsets
    """

    def __init__(self):
        self.segments = []
        self.other_commands = []

        self.strings = bytearray(b'\x00')
        self.symbols = []
        self.indirect = []

        self.with_symtab = True
        self.with_dysymtab = True

        self.symtab_overrides = {}
        self.dysymtab_overrides = {}
        self.header_overrides = {}

        self.offsets = {}

    def add_string(self, text: str) -> int:
        offset = len(self.strings)
        self.strings += text.encode('utf-8') + b'\x00'
        return offset

    def add_symbol(self, name=None, n_type=N_TYPE_VALUES.N_UNDF | N_EXT, n_sect=0, n_value=0, n_strx=None) -> int:
        if n_strx is None:
            n_strx = self.add_string(name) if name is not None else 0
        self.symbols.append([n_strx, n_type, n_sect, 0, n_value])
        return len(self.symbols) - 1

    def add_segment(self, name, sections=(), vmaddr=0, vmsize=0x4000, prot=VM_PROT.READ | VM_PROT.WRITE):
        self.segments.append((name, list(sections), vmaddr, vmsize, prot))

    def add_command(self, cmd, payload=b''):
        self.other_commands.append(Struct.create_with_values(load_command, [cmd, 8 + len(payload)]).raw + payload)

    @staticmethod
    def _segment_raw(name, sections, vmaddr, vmsize, prot) -> bytes:
        cmdsize = segment_command_64.size() + len(sections) * section_64.size()
        raw = Struct.create_with_values(segment_command_64, [LOAD_COMMAND.SEGMENT_64, cmdsize, name, vmaddr, vmsize,
                                                             0, vmsize, prot, prot, len(sections), 0]).raw
        for sect in sections:
            raw += Struct.create_with_values(section_64, [sect.name, name, sect.addr, sect.size, 0, 3, 0, 0,
                                                          sect.flags, sect.reserved1, 0, 0]).raw
        return raw

    def build(self) -> bytes:
        commands = [self._segment_raw(*segment) for segment in self.segments]
        commands += self.other_commands

        sizeofcmds = sum([len(cmd) for cmd in commands])
        sizeofcmds += symtab_command.size() if self.with_symtab else 0
        sizeofcmds += dysymtab_command.size() if self.with_dysymtab else 0

        indirectsymoff = mach_header_64.size() + sizeofcmds
        indirect_raw = b''.join([value.to_bytes(4, 'little') for value in self.indirect])
        symoff = indirectsymoff + len(indirect_raw)
        symbols_raw = b''.join([Struct.create_with_values(nlist_64, symbol).raw for symbol in self.symbols])
        stroff = symoff + len(symbols_raw)

        self.offsets = {'indirectsymoff': indirectsymoff, 'symoff': symoff, 'stroff': stroff}

        if self.with_symtab:
            values = {'cmd': LOAD_COMMAND.SYMTAB, 'cmdsize': symtab_command.size(), 'symoff': symoff,
                      'nsyms': len(self.symbols), 'stroff': stroff, 'strsize': len(self.strings)}
            values.update(self.symtab_overrides)
            commands.append(Struct.create_with_values(symtab_command, list(values.values())).raw)

        if self.with_dysymtab:
            values = {name: 0 for name in dysymtab_command.FIELDS}
            values.update({'cmd': LOAD_COMMAND.DYSYMTAB, 'cmdsize': dysymtab_command.size(),
                           'iundefsym': 0, 'nundefsym': len(self.symbols),
                           'indirectsymoff': indirectsymoff, 'nindirectsyms': len(self.indirect)})
            values.update(self.dysymtab_overrides)
            commands.append(Struct.create_with_values(dysymtab_command, list(values.values())).raw)

        header = {'magic': MH_MAGIC_64, 'cpu_type': CPUType.ARM64, 'cpu_subtype': 0,
                  'filetype': MH_FILETYPE.EXECUTE, 'ncmds': len(commands), 'sizeofcmds': sizeofcmds,
                  'flags': MH_FLAGS.DYLDLINK | MH_FLAGS.PIE, 'reserved': 0}
        header.update(self.header_overrides)

        raw = Struct.create_with_values(mach_header_64, list(header.values())).raw
        raw += b''.join(commands)
        return raw + indirect_raw + symbols_raw + bytes(self.strings)


def scenario_builder() -> MachOBuilder:
    """
    __TEXT with no sections, __DATA with a two slot __nl_symbol_ptr, LC_SYMTAB, LC_DYSYMTAB.

    Indirect table [1, 2]; symbol 1 is _foo and symbol 2 is _bar.
    """
    builder = MachOBuilder()
    builder.add_segment('__TEXT', vmaddr=0x100000000, prot=VM_PROT.READ | VM_PROT.EXECUTE)
    builder.add_segment('__DATA', [SectionSpec('__nl_symbol_ptr', SectionType.S_NON_LAZY_SYMBOL_POINTERS, 16, 0,
                                               0x100004000)], vmaddr=0x100004000)

    builder.add_symbol(n_strx=0, n_type=N_TYPE_VALUES.N_SECT, n_sect=1, n_value=0x100000f00)
    builder.add_symbol('_foo')
    builder.add_symbol('_bar')

    builder.indirect = [1, 2]
    return builder


def scenario_image_bytes() -> bytes:
    return scenario_builder().build()


# Offsets of the load commands in scenario_image_bytes()
SCENARIO_COMMAND_OFFSETS = [32, 32 + 72, 32 + 72 + 152, 32 + 72 + 152 + 24]
