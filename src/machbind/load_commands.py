#
#  machbind | machbind
#  load_commands.py
#
#  This file walks the load command list that follows the mach header and classifies each command.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from typing import Dict, Iterator, List, Type

from machbind_macho import *
from machbind.exceptions import TruncatedCommandException
from machbind.macho import BackingFile, MachHeader
from machbind.util import log, macho_is_malformed


class LoadCommand:
    """
    One walked load command: where it sits and what it declares its size to be.

    Subclasses with a STRUCT decode the full command; .cmd_struct holds it.
    """

    STRUCT = load_command

    def __init__(self, index: int, off: int, cmd_struct):
        self.index = index
        self.off = off
        self.cmd_struct = cmd_struct
        self.cmd = cmd_struct.cmd
        self.cmdsize = cmd_struct.cmdsize

    @property
    def name(self) -> str:
        try:
            return LOAD_COMMAND(self.cmd).name
        except ValueError:
            return 'UNKNOWN'

    def __str__(self):
        return f'{self.index}: {self.name} ({hex(self.cmd)}) at {hex(self.off)}, size {hex(self.cmdsize)}'

    def serialize(self):
        return {
            'index': self.index,
            'offset': self.off,
            'cmd': self.cmd,
            'name': self.name,
            'cmdsize': self.cmdsize
        }


class SegmentCommand(LoadCommand):
    STRUCT = segment_command_64


class SymtabCommand(LoadCommand):
    STRUCT = symtab_command


class DysymtabCommand(LoadCommand):
    STRUCT = dysymtab_command


class OtherCommand(LoadCommand):
    pass


LOAD_COMMAND_VARIANTS: Dict[int, Type[LoadCommand]] = {
    LOAD_COMMAND.SEGMENT_64: SegmentCommand,
    LOAD_COMMAND.SYMTAB: SymtabCommand,
    LOAD_COMMAND.DYSYMTAB: DysymtabCommand
}


class LoadCommandWalker:
    """
    Walks exactly `ncmds` commands starting right after the header.

    A command is checked against the buffer and the header's sizeofcmds before anything past its cmd/cmdsize
        prefix is decoded. A bad cmdsize ends the walk with TruncatedCommandException; the commands walked so far
        are carried on the exception.
    """

    def __init__(self, buffer: BackingFile, header: MachHeader):
        self.buffer = buffer
        self.header = header

        self.commands: List[LoadCommand] = []

    def _truncated(self, msg, index, offset, cmdsize):
        log.error(msg)
        return TruncatedCommandException(msg, index=index, offset=offset, cmdsize=cmdsize,
                                         commands=list(self.commands))

    def walk(self) -> Iterator[LoadCommand]:
        self.commands = []

        commands_start = self.header.commands_offset
        commands_end = commands_start + self.header.sizeofcmds
        cursor = commands_start

        for index in range(self.header.ncmds):
            if not self.buffer.in_bounds(cursor, load_command.size()):
                raise self._truncated(f'Load command {index} at {hex(cursor)} starts past the end of the file',
                                      index, cursor, 0)

            if cursor + load_command.size() > commands_end:
                raise self._truncated(f'Load command {index} at {hex(cursor)} starts past sizeofcmds '
                                      f'({hex(self.header.sizeofcmds)})', index, cursor, 0)

            prefix = self.buffer.load_struct(cursor, load_command)
            variant = LOAD_COMMAND_VARIANTS.get(prefix.cmd, OtherCommand)
            cmdsize = prefix.cmdsize

            if cmdsize < max(load_command.size(), variant.STRUCT.size()):
                raise self._truncated(f'Load command {index} ({hex(prefix.cmd)}) at {hex(cursor)} has invalid '
                                      f'cmdsize {hex(cmdsize)}', index, cursor, cmdsize)

            if cursor + cmdsize > self.buffer.size:
                raise self._truncated(f'Load command {index} at {hex(cursor)} with cmdsize {hex(cmdsize)} runs past '
                                      f'the end of the file ({hex(self.buffer.size)})', index, cursor, cmdsize)

            if cursor + cmdsize > commands_end:
                raise self._truncated(f'Load command {index} at {hex(cursor)} with cmdsize {hex(cmdsize)} runs past '
                                      f'sizeofcmds ({hex(self.header.sizeofcmds)})', index, cursor, cmdsize)

            cmd_struct = self.buffer.load_struct(cursor, variant.STRUCT)
            command = variant(index, cursor, cmd_struct)
            log.debug_tm(str(command))

            self.commands.append(command)
            yield command

            cursor += cmdsize

        if cursor - commands_start != self.header.sizeofcmds:
            log.warn(f'Load commands take up {hex(cursor - commands_start)} bytes, header says '
                     f'{hex(self.header.sizeofcmds)}')
            macho_is_malformed(f'Load command sizes add up to {hex(cursor - commands_start)}, '
                               f'sizeofcmds is {hex(self.header.sizeofcmds)}')


def load_commands(buffer: BackingFile, header: MachHeader) -> List[LoadCommand]:
    return list(LoadCommandWalker(buffer, header).walk())
