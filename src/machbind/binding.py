#
#  machbind | machbind
#  binding.py
#
#  This file resolves which symbol each lazy/non-lazy pointer slot gets bound to, using the indirect symbol
#    table LC_DYSYMTAB points at.
#
#  Every slot of a symbol pointer section has one u32 in the indirect symbol table, starting at the section's
#    reserved1. Those entries are indexes into the symbol table, except for the LOCAL/ABS sentinels, which mark
#    slots the static linker already filled in.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from collections import namedtuple
from enum import Enum
from typing import List, Optional

from machbind_macho import *
from machbind.exceptions import (IndirectIndexOutOfBoundsException, SymbolIndexOutOfBoundsException,
                                 NameOutOfBoundsException)
from machbind.macho import BackingFile, Segment, Section
from machbind.symtab import SymbolTable, DynamicSymbolTable
from machbind.util import log, opts, macho_is_malformed


class IndirectEntryKind(Enum):
    SYMBOL = 0
    LOCAL = 1
    ABS = 2
    LOCAL_ABS = 3


IndirectEntry = namedtuple("IndirectEntry", ["kind", "symbol_index"])

ResolvedBinding = namedtuple("ResolvedBinding", ["segment_name", "section_name", "section_type", "slot", "address",
                                                 "symbol_index", "name"])

BindingFailure = namedtuple("BindingFailure", ["segment_name", "section_name", "slot", "reason", "last_slot"],
                            defaults=(None,))

_SENTINEL_KINDS = {
    INDIRECT_SYMBOL_LOCAL: IndirectEntryKind.LOCAL,
    INDIRECT_SYMBOL_ABS: IndirectEntryKind.ABS,
    INDIRECT_SYMBOL_LOCAL | INDIRECT_SYMBOL_ABS: IndirectEntryKind.LOCAL_ABS
}


def decode_indirect_entry(value: int) -> IndirectEntry:
    kind = _SENTINEL_KINDS.get(value)
    if kind is not None:
        return IndirectEntry(kind, None)
    return IndirectEntry(IndirectEntryKind.SYMBOL, value)


class IndirectSymbolTable:
    """
    The flat u32 array at dysymtab.indirectsymoff.
    """

    @classmethod
    def from_dysymtab(cls, buffer: BackingFile, dysymtab: DynamicSymbolTable) -> Optional['IndirectSymbolTable']:
        """
        Returns None when the table points outside the file and malformations are being ignored.
        """
        offset = dysymtab.indirectsymoff
        count = dysymtab.nindirectsyms
        if not buffer.in_bounds(offset, count * indirect_symbol_entry.size()):
            macho_is_malformed(f'Indirect symbol table at {hex(offset)} ({count} entries) is outside the file')
            return None
        return cls(buffer, offset, count)

    def __init__(self, buffer: BackingFile, offset: int, count: int):
        self.buffer = buffer
        self.offset = offset
        self.count = count

    def entry(self, index: int) -> int:
        if index < 0 or index >= self.count:
            raise IndirectIndexOutOfBoundsException(index, self.count)
        return self.buffer.read_uint(self.offset + index * indirect_symbol_entry.size(), indirect_symbol_entry.size())

    def __len__(self):
        return self.count


class IndirectBindingResolver:
    """
    Walks the symbol pointer sections of the binding segments in load command order.

    .bindings has one ResolvedBinding per slot bound to a symbol, in slot order
    .failures has one BindingFailure per slot that couldn't be resolved. Slots with no indirect entry at all
        share a single BindingFailure spanning slot..last_slot

    Slots whose entry is a LOCAL/ABS sentinel appear in neither.
    """

    def __init__(self, segments: List[Segment], symbol_table: SymbolTable, dysymtab: DynamicSymbolTable,
                 indirect_table: IndirectSymbolTable):
        self.segments = segments
        self.symbol_table = symbol_table
        self.dysymtab = dysymtab
        self.indirect_table = indirect_table

        self.bindings: List[ResolvedBinding] = []
        self.failures: List[BindingFailure] = []

        self._resolve()

    def _resolve(self):
        for segment in self.segments:
            if segment.name not in opts.BINDING_SEGMENTS:
                continue
            for section in segment.sections:
                if section.is_symbol_pointer_section:
                    self._resolve_section(section)

        log.info(f'Resolved {len(self.bindings)} pointer slots ({len(self.failures)} failed)')

    def _fail(self, section: Section, slot: int, ex: Exception, last_slot: int = None):
        if last_slot is None:
            last_slot = slot
        slots = f'slot {slot}' if last_slot == slot else f'slots {slot}-{last_slot}'
        log.warn(f'{section.segment_name},{section.name} {slots}: {ex}')
        self.failures.append(BindingFailure(section.segment_name, section.name, slot, ex, last_slot))

    def _resolve_section(self, section: Section):
        slot_count = section.size // POINTER_SIZE
        # slots past the end of the indirect table have no entry to read
        indexed_slots = min(slot_count, max(0, self.dysymtab.nindirectsyms - section.reserved1))
        log.debug(f'Resolving {slot_count} slots in {section.segment_name},{section.name}')

        for slot in range(indexed_slots):
            entry = decode_indirect_entry(self.indirect_table.entry(section.reserved1 + slot))

            if entry.kind != IndirectEntryKind.SYMBOL:
                log.debug_tm(f'{section.name} slot {slot}: {entry.kind.name}, skipping')
                continue

            try:
                symbol = self.symbol_table.symbol_at(entry.symbol_index)
                name = symbol.resolve_name()
            except (SymbolIndexOutOfBoundsException, NameOutOfBoundsException) as ex:
                self._fail(section, slot, ex)
                continue

            binding = ResolvedBinding(section.segment_name, section.name, section.type, slot,
                                      section.addr + slot * POINTER_SIZE, entry.symbol_index, name)
            log.debug_tm(str(binding))
            self.bindings.append(binding)

        if indexed_slots < slot_count:
            ex = IndirectIndexOutOfBoundsException(section.reserved1 + indexed_slots, self.dysymtab.nindirectsyms)
            self._fail(section, indexed_slots, ex, last_slot=slot_count - 1)


def serialize_binding(binding: ResolvedBinding):
    return {
        'segment': binding.segment_name,
        'section': binding.section_name,
        'type': binding.section_type.name if isinstance(binding.section_type, Enum) else binding.section_type,
        'slot': binding.slot,
        'address': binding.address,
        'symbol_index': binding.symbol_index,
        'name': binding.name
    }


def serialize_failure(failure: BindingFailure):
    return {
        'segment': failure.segment_name,
        'section': failure.section_name,
        'slot': failure.slot,
        'last_slot': failure.slot if failure.last_slot is None else failure.last_slot,
        'reason': type(failure.reason).__name__.replace('Exception', ''),
        'message': str(failure.reason)
    }
