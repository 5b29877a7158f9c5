#
#  machbind | machbind
#  macho.py
#
#  This file contains the bounds-checked backing buffer, the Mach-O header reader, and the Segment/Section model.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

import mmap
import os
from io import BytesIO
from typing import BinaryIO, List, Union

from machbind_macho import *
from machbind.exceptions import *
from machbind.util import log


class BackingFile:
    """
    Immutable view over the bytes of one image. Every read is bounds-checked.

    Holds either a read-only mmap or a bytes object; it is never written to.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview], name=''):
        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        self.file = data
        self.size = len(data)
        self.name = name

        self._cstring_cache = {}

    @classmethod
    def from_fp(cls, fp: Union[BinaryIO, BytesIO], use_mmaped_io=True) -> 'BackingFile':
        """
        Load a file object opened with 'rb'.

        :param fp: file object
        :param use_mmaped_io: map the file read-only instead of reading it in full. Falls back to a full read
                                when the file can't be mapped (BytesIO, empty files, ...)
        :return:
        """
        name = os.path.basename(fp.name) if hasattr(fp, 'name') and isinstance(fp.name, str) else ''

        if isinstance(fp, BytesIO):
            use_mmaped_io = False

        if use_mmaped_io:
            try:
                mapped = mmap.mmap(fp.fileno(), 0, access=mmap.ACCESS_READ)
                backing = cls(b'', name)
                backing.file = mapped
                backing.size = len(mapped)
                return backing
            except (ValueError, OSError, AttributeError):
                log.debug("mmap unavailable for this file, reading it instead")

        fp.seek(0)
        return cls(fp.read(), name)

    def in_bounds(self, location: int, count: int) -> bool:
        return location >= 0 and count >= 0 and location + count <= self.size

    def read_bytes(self, location: int, count: int) -> bytes:
        if not self.in_bounds(location, count):
            log.error(f'Read of {hex(count)} bytes at {hex(location)} is outside the file ({hex(self.size)} bytes)')
            raise MalformedMachOException(f'Read at {hex(location)}+{hex(count)} past end of file')
        return bytes(self.file[location:location + count])

    def read_uint(self, location: int, count: int, endian="little") -> int:
        return int.from_bytes(self.read_bytes(location, count), endian)

    def load_struct(self, location: int, struct_type, endian="little"):
        data = self.read_bytes(location, struct_type.size())

        struct = Struct.create_with_bytes(struct_type, data, endian)
        struct.off = location

        return struct

    def read_cstr(self, location: int, end: int = None) -> str:
        """
        Read a NUL terminated string starting at `location`, never scanning past `end` (defaults to the end of
            the file). An unterminated string runs to `end`.
        """
        end = self.size if end is None else min(end, self.size)

        if (location, end) in self._cstring_cache:
            return self._cstring_cache[(location, end)]

        if location < 0 or location > end:
            raise MalformedMachOException(f'String at {hex(location)} is outside its range (end {hex(end)})')

        terminator = self.file.find(b'\x00', location, end)
        if terminator == -1:
            terminator = end

        text = bytes(self.file[location:terminator]).decode('utf-8', errors='replace')
        self._cstring_cache[(location, end)] = text

        return text

    def close(self):
        if hasattr(self.file, 'close'):
            self.file.close()


class MachHeader:
    """
    Decoded mach_header_64. Construction is the single gate for the rest of the analysis: it fails with
        NotMachOException unless the buffer starts with a 64 bit little endian Mach-O header.
    """

    @classmethod
    def from_buffer(cls, buffer: BackingFile) -> 'MachHeader':
        if not buffer.in_bounds(0, mach_header_64.size()):
            log.error(f'File is {buffer.size} bytes, too small for a mach header')
            raise NotMachOException(f'File is too small ({buffer.size} bytes) to be a Mach-O')

        magic = buffer.read_uint(0, 4)
        if magic != MH_MAGIC_64:
            log.error(f'Bad Magic: {hex(magic)}')
            raise NotMachOException(f'Bad magic {hex(magic)}; not a 64 bit Mach-O', magic=magic)

        return cls(buffer.load_struct(0, mach_header_64))

    def __init__(self, dyld_header: mach_header_64):
        self.dyld_header = dyld_header

        self.magic = dyld_header.magic
        self.cpu_type = dyld_header.cpu_type
        self.cpu_subtype = dyld_header.cpu_subtype
        self.filetype = dyld_header.filetype
        self.ncmds = dyld_header.ncmds
        self.sizeofcmds = dyld_header.sizeofcmds
        self.flags = dyld_header.flags
        self.reserved = dyld_header.reserved

        self.flag_names: List[str] = [flag.name for flag in MH_FLAGS if self.flags & flag.value]

    @property
    def cpu_type_name(self) -> str:
        try:
            return CPUType(self.cpu_type).name
        except ValueError:
            return 'UNKNOWN'

    @property
    def filetype_name(self) -> str:
        try:
            return MH_FILETYPE(self.filetype).name
        except ValueError:
            return 'UNKNOWN'

    @property
    def commands_offset(self) -> int:
        return mach_header_64.size()

    def __str__(self):
        return f'Mach-O Header | CPU: {self.cpu_type_name} | File Type: {self.filetype_name} | ' \
               f'Flags: {self.flag_names} | Load Cmd Count: {self.ncmds}'

    def serialize(self):
        return {
            'magic': self.magic,
            'cpu_type': self.cpu_type,
            'cpu_type_name': self.cpu_type_name,
            'cpu_subtype': self.cpu_subtype,
            'filetype': self.filetype,
            'filetype_name': self.filetype_name,
            'ncmds': self.ncmds,
            'sizeofcmds': self.sizeofcmds,
            'flags': self.flags,
            'flag_names': self.flag_names,
            'reserved': self.reserved
        }


def protection_string(prot: int) -> str:
    return ''.join([char if prot & flag else '-' for char, flag in
                    (('r', VM_PROT.READ), ('w', VM_PROT.WRITE), ('x', VM_PROT.EXECUTE))])


class Section:
    """
    One section_64 record from a segment's trailing section array.

    For symbol pointer sections reserved1 is the index of the section's first slot in the indirect symbol table.
    """

    def __init__(self, segment_name, cmd: section_64, index=0):
        self.cmd = cmd
        self.index = index
        self.name = cmd.sectname
        self.segment_name = segment_name
        self.addr = cmd.addr
        self.size = cmd.size
        self.offset = cmd.offset
        self.align = cmd.align
        self.reloff = cmd.reloff
        self.nreloc = cmd.nreloc
        self.flags = cmd.flags
        self.reserved1 = cmd.reserved1
        self.reserved2 = cmd.reserved2
        self.reserved3 = cmd.reserved3

        type_value = self.flags & S_FLAGS_MASKS.SECTION_TYPE
        try:
            self.type: Union[SectionType, int] = SectionType(type_value)
        except ValueError:
            self.type = type_value

        self.attributes: List[str] = [attr.name for attr in SectionAttributes if self.flags & attr.value]

    @property
    def type_name(self) -> str:
        return self.type.name if isinstance(self.type, SectionType) else hex(self.type)

    @property
    def is_symbol_pointer_section(self) -> bool:
        return self.type in SYMBOL_POINTER_SECTION_TYPES

    def __str__(self):
        return f'Section {self.segment_name},{self.name} at {hex(self.addr)} ({self.type_name})'

    def serialize(self):
        return {
            'name': self.name,
            'segment_name': self.segment_name,
            'addr': self.addr,
            'size': self.size,
            'offset': self.offset,
            'align': self.align,
            'reloff': self.reloff,
            'nreloc': self.nreloc,
            'flags': self.flags,
            'type': self.type_name,
            'attributes': self.attributes,
            'reserved1': self.reserved1,
            'reserved2': self.reserved2,
            'reserved3': self.reserved3
        }


class Segment:
    """
    LC_SEGMENT_64 and its sections.

    The section array has no offset of its own; it starts right after the fixed part of segment_command_64, inside
        the command's cmdsize bytes.
    """

    @classmethod
    def from_command(cls, buffer: BackingFile, cmd: segment_command_64, index=0) -> 'Segment':
        sections_size = cmd.nsects * section_64.size()
        if segment_command_64.size() + sections_size > cmd.cmdsize:
            log.error(f'Segment {cmd.segname} declares {cmd.nsects} sections ({hex(sections_size)} bytes), '
                      f'which don\'t fit in its cmdsize {hex(cmd.cmdsize)}')
            raise TruncatedCommandException(f'Sections of segment {cmd.segname} overrun their load command',
                                            index=index, offset=cmd.off, cmdsize=cmd.cmdsize)

        sections = []
        ea = cmd.off + segment_command_64.size()

        for i in range(cmd.nsects):
            sect = buffer.load_struct(ea, section_64)
            sections.append(Section(cmd.segname, sect, i))
            log.debug_tm(str(sect))
            ea += section_64.size()

        return cls(cmd, sections)

    def __init__(self, cmd: segment_command_64, sections: List[Section]):
        self.cmd = cmd
        self.name = cmd.segname
        self.vm_address = cmd.vmaddr
        self.vm_size = cmd.vmsize
        self.file_address = cmd.fileoff
        self.file_size = cmd.filesize
        self.maxprot = cmd.maxprot
        self.initprot = cmd.initprot
        self.nsects = cmd.nsects
        self.flags = cmd.flags

        self.sections: List[Section] = sections

    @property
    def protection(self) -> str:
        """
        Initial and maximum protection, e.g. 'rw-/rw-'
        """
        return f'{protection_string(self.initprot)}/{protection_string(self.maxprot)}'

    def __str__(self):
        return f'Segment {self.name} at {hex(self.vm_address)}'

    def serialize(self):
        return {
            'name': self.name,
            'cmdsize': self.cmd.cmdsize,
            'vm_address': self.vm_address,
            'vm_size': self.vm_size,
            'file_address': self.file_address,
            'file_size': self.file_size,
            'maxprot': protection_string(self.maxprot),
            'initprot': protection_string(self.initprot),
            'protection': self.protection,
            'nsects': self.nsects,
            'flags': self.flags,
            'sections': [section.serialize() for section in self.sections]
        }
