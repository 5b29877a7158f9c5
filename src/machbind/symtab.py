#
#  machbind | machbind
#  symtab.py
#
#  This file contains the readers for LC_SYMTAB (symbols and their string table) and LC_DYSYMTAB.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from typing import List, Optional

from machbind_macho import *
from machbind.exceptions import NameOutOfBoundsException, SymbolIndexOutOfBoundsException
from machbind.macho import BackingFile
from machbind.util import log, macho_is_malformed

# Reported in place of a name that can't be read from the string table
INVALID_NAME = '<invalid>'


class StringTable:
    def __init__(self, buffer: BackingFile, stroff: int, strsize: int):
        self.buffer = buffer
        self.stroff = stroff
        self.strsize = strsize

    def lookup(self, str_index: int) -> str:
        if str_index >= self.strsize:
            raise NameOutOfBoundsException(str_index, self.strsize)
        return self.buffer.read_cstr(self.stroff + str_index, self.stroff + self.strsize)


class Symbol:
    """
    One nlist_64 entry.

    The name is looked up the first time .name is read. If the lookup fails .name is INVALID_NAME and .name_error
        holds the exception.
    """

    def __init__(self, index: int, entry: nlist_64, strings: StringTable):
        self.index = index
        self.entry = entry
        self.strings = strings

        self.str_index = entry.n_strx
        self.type = entry.n_type
        self.sect_index = entry.n_sect
        self.desc = entry.n_desc
        self.value = entry.n_value

        self.stab = bool(self.type & N_STAB)
        self.private_external = bool(self.type & N_PEXT)
        self.external = bool(self.type & N_EXT)

        self.types = []
        if not self.stab:
            type_masked = self.type & N_TYPE
            for value in N_TYPE_VALUES:
                if type_masked == value:
                    self.types.append(value.name)

        self.name_error: Optional[NameOutOfBoundsException] = None
        self._name = None

    @property
    def name(self) -> str:
        if self._name is None:
            try:
                self._name = self.strings.lookup(self.str_index)
            except NameOutOfBoundsException as ex:
                log.warn(f'Symbol {self.index}: {ex}')
                self.name_error = ex
                self._name = INVALID_NAME
        return self._name

    def resolve_name(self) -> str:
        """
        Like .name, but raises NameOutOfBoundsException instead of returning INVALID_NAME.
        """
        name = self.name
        if self.name_error is not None:
            raise self.name_error
        return name

    def __str__(self):
        return f'Symbol {self.index}: {self.name} ({hex(self.value)})'

    def serialize(self):
        return {
            'index': self.index,
            'name': self.name,
            'name_valid': self.name_error is None,
            'str_index': self.str_index,
            'type': self.type,
            'types': self.types,
            'stab': self.stab,
            'external': self.external,
            'private_external': self.private_external,
            'sect': self.sect_index,
            'desc': self.desc,
            'value': self.value
        }


class SymbolTable:
    """
    The symbol table declared by LC_SYMTAB.

    .table contains every symbol in table order
    .ext contains the external ones
    """

    @classmethod
    def from_command(cls, buffer: BackingFile, cmd: symtab_command) -> Optional['SymbolTable']:
        """
        Returns None when the table points outside the file and malformations are being ignored.
        """
        if not buffer.in_bounds(cmd.symoff, cmd.nsyms * nlist_64.size()):
            macho_is_malformed(f'Symbol table at {hex(cmd.symoff)} ({cmd.nsyms} entries) is outside the file')
            return None
        if not buffer.in_bounds(cmd.stroff, cmd.strsize):
            macho_is_malformed(f'String table at {hex(cmd.stroff)} ({hex(cmd.strsize)} bytes) is outside the file')
            return None
        return cls(buffer, cmd)

    def __init__(self, buffer: BackingFile, cmd: symtab_command):
        self.buffer = buffer
        self.cmd = cmd

        self.symoff = cmd.symoff
        self.nsyms = cmd.nsyms
        self.stroff = cmd.stroff
        self.strsize = cmd.strsize

        self.strings = StringTable(buffer, cmd.stroff, cmd.strsize)

        self.ext: List[Symbol] = []
        self.table: List[Symbol] = self._load_symbol_table()

    def _load_symbol_table(self) -> List[Symbol]:
        symbol_table = []
        read_address = self.cmd.symoff

        for i in range(0, self.cmd.nsyms):
            entry = self.buffer.load_struct(read_address + nlist_64.size() * i, nlist_64)
            symbol = Symbol(i, entry, self.strings)
            symbol_table.append(symbol)

            if symbol.external:
                self.ext.append(symbol)

            log.debug_tm(str(entry))

        log.info(f'Loaded {len(symbol_table)} symbols')
        return symbol_table

    def symbol_at(self, index: int) -> Symbol:
        if index >= self.nsyms:
            raise SymbolIndexOutOfBoundsException(index, self.nsyms)
        return self.table[index]

    def serialize(self):
        return {
            'symoff': self.symoff,
            'nsyms': self.nsyms,
            'stroff': self.stroff,
            'strsize': self.strsize,
            'symbols': [symbol.serialize() for symbol in self.table]
        }


class DynamicSymbolTable:
    """
    LC_DYSYMTAB, decoded as is. Only the indirect symbol table it points at is read (see binding.py).
    """

    FIELD_NAMES = [name for name in dysymtab_command.FIELDS if name not in ('cmd', 'cmdsize')]

    def __init__(self, cmd: dysymtab_command):
        self.cmd = cmd

        self.ilocalsym = cmd.ilocalsym
        self.nlocalsym = cmd.nlocalsym
        self.iextdefsym = cmd.iextdefsym
        self.nextdefsym = cmd.nextdefsym
        self.iundefsym = cmd.iundefsym
        self.nundefsym = cmd.nundefsym
        self.tocoff = cmd.tocoff
        self.ntoc = cmd.ntoc
        self.modtaboff = cmd.modtaboff
        self.nmodtab = cmd.nmodtab
        self.extrefsymoff = cmd.extrefsymoff
        self.nextrefsyms = cmd.nextrefsyms
        self.indirectsymoff = cmd.indirectsymoff
        self.nindirectsyms = cmd.nindirectsyms
        self.extreloff = cmd.extreloff
        self.nextrel = cmd.nextrel
        self.locreloff = cmd.locreloff
        self.nlocrel = cmd.nlocrel

    @property
    def local_symbols(self) -> range:
        return range(self.ilocalsym, self.ilocalsym + self.nlocalsym)

    @property
    def external_symbols(self) -> range:
        return range(self.iextdefsym, self.iextdefsym + self.nextdefsym)

    @property
    def undefined_symbols(self) -> range:
        return range(self.iundefsym, self.iundefsym + self.nundefsym)

    def serialize(self):
        return {name: getattr(self, name) for name in self.FIELD_NAMES}
