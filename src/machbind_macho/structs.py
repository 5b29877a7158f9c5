#
#  machbind | machbind_macho
#  structs.py
#
#  On-disk layouts of the 64 bit Mach-O records machbind reads.
#
#  the __init__ defs here are unnecessary and only required for IDEs to recognize and autocomplete
#   the struct attributes
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from libmachbind.structs import Struct, uint8_t, uint16_t, uint32_t, uint64_t, char_t


class mach_header_64(Struct):
    FIELDS = {
        'magic': uint32_t,
        'cpu_type': uint32_t,
        'cpu_subtype': uint32_t,
        'filetype': uint32_t,
        'ncmds': uint32_t,
        'sizeofcmds': uint32_t,
        'flags': uint32_t,
        'reserved': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.magic = 0
        self.cpu_type = 0
        self.cpu_subtype = 0
        self.filetype = 0
        self.ncmds = 0
        self.sizeofcmds = 0
        self.flags = 0
        self.reserved = 0


class load_command(Struct):
    """
    The 8 byte prefix shared by every load command.
    """
    FIELDS = {
        'cmd': uint32_t,
        'cmdsize': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.cmd = 0
        self.cmdsize = 0


class segment_command_64(Struct):
    FIELDS = {
        'cmd': uint32_t,
        'cmdsize': uint32_t,
        'segname': char_t[16],
        'vmaddr': uint64_t,
        'vmsize': uint64_t,
        'fileoff': uint64_t,
        'filesize': uint64_t,
        'maxprot': uint32_t,
        'initprot': uint32_t,
        'nsects': uint32_t,
        'flags': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.cmd = 0
        self.cmdsize = 0
        self.segname = ""
        self.vmaddr = 0
        self.vmsize = 0
        self.fileoff = 0
        self.filesize = 0
        self.maxprot = 0
        self.initprot = 0
        self.nsects = 0
        self.flags = 0


class section_64(Struct):
    FIELDS = {
        'sectname': char_t[16],
        'segname': char_t[16],
        'addr': uint64_t,
        'size': uint64_t,
        'offset': uint32_t,
        'align': uint32_t,
        'reloff': uint32_t,
        'nreloc': uint32_t,
        'flags': uint32_t,
        'reserved1': uint32_t,
        'reserved2': uint32_t,
        'reserved3': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.sectname = ""
        self.segname = ""
        self.addr = 0
        self.size = 0
        self.offset = 0
        self.align = 0
        self.reloff = 0
        self.nreloc = 0
        self.flags = 0
        self.reserved1 = 0
        self.reserved2 = 0
        self.reserved3 = 0


class symtab_command(Struct):
    FIELDS = {
        'cmd': uint32_t,
        'cmdsize': uint32_t,
        'symoff': uint32_t,
        'nsyms': uint32_t,
        'stroff': uint32_t,
        'strsize': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.cmd = 0
        self.cmdsize = 0
        self.symoff = 0
        self.nsyms = 0
        self.stroff = 0
        self.strsize = 0


class dysymtab_command(Struct):
    FIELDS = {
        'cmd': uint32_t,
        'cmdsize': uint32_t,
        'ilocalsym': uint32_t,
        'nlocalsym': uint32_t,
        'iextdefsym': uint32_t,
        'nextdefsym': uint32_t,
        'iundefsym': uint32_t,
        'nundefsym': uint32_t,
        'tocoff': uint32_t,
        'ntoc': uint32_t,
        'modtaboff': uint32_t,
        'nmodtab': uint32_t,
        'extrefsymoff': uint32_t,
        'nextrefsyms': uint32_t,
        'indirectsymoff': uint32_t,
        'nindirectsyms': uint32_t,
        'extreloff': uint32_t,
        'nextrel': uint32_t,
        'locreloff': uint32_t,
        'nlocrel': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.cmd = 0
        self.cmdsize = 0
        self.ilocalsym = 0
        self.nlocalsym = 0
        self.iextdefsym = 0
        self.nextdefsym = 0
        self.iundefsym = 0
        self.nundefsym = 0
        self.tocoff = 0
        self.ntoc = 0
        self.modtaboff = 0
        self.nmodtab = 0
        self.extrefsymoff = 0
        self.nextrefsyms = 0
        self.indirectsymoff = 0
        self.nindirectsyms = 0
        self.extreloff = 0
        self.nextrel = 0
        self.locreloff = 0
        self.nlocrel = 0


class nlist_64(Struct):
    FIELDS = {
        'n_strx': uint32_t,
        'n_type': uint8_t,
        'n_sect': uint8_t,
        'n_desc': uint16_t,
        'n_value': uint64_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.n_strx = 0
        self.n_type = 0
        self.n_sect = 0
        self.n_desc = 0
        self.n_value = 0


class indirect_symbol_entry(Struct):
    FIELDS = {
        'value': uint32_t
    }

    def __init__(self, byte_order="little"):
        super().__init__(byte_order=byte_order)
        self.value = 0
