#
#  machbind | machbind
#  loader.py
#
#  This file drives one analysis: header, load commands, segments, symbol tables, then pointer slot binding.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from machbind.binding import IndirectSymbolTable, IndirectBindingResolver
from machbind.exceptions import TruncatedCommandException
from machbind.image import Image
from machbind.load_commands import load_commands, SegmentCommand, SymtabCommand, DysymtabCommand
from machbind.macho import BackingFile, MachHeader, Segment
from machbind.symtab import SymbolTable, DynamicSymbolTable
from machbind.util import log


class MachOImageLoader:
    """
    This class reads a buffer and builds the "Image" describing it.

    Loading never writes to the buffer and keeps no state between calls.
    """

    @classmethod
    def load(cls, buffer: BackingFile) -> Image:
        """
        Analyze the buffer

        :param buffer: Bytes of a 64 bit Mach-O
        :return: Processed image object
        :rtype: Image
        :raises NotMachOException: the buffer doesn't start with a 64 bit mach header
        :raises TruncatedCommandException: a load command's cmdsize is invalid
        :raises MalformedMachOException: a table points outside the file (unless ignore.MALFORMED is set)
        """
        log.info("Loading image")
        header = MachHeader.from_buffer(buffer)
        log.debug(str(header))

        image = Image(buffer, header)

        log.info("Processing Load Commands")
        image.load_commands = load_commands(buffer, header)
        log.info(f'registered {len(image.load_commands)} Load Commands')

        cls._parse_load_commands(image)

        log.info("Resolving Symbol Pointers")
        cls._resolve_bindings(image)

        return image

    @classmethod
    def _parse_load_commands(cls, image: Image) -> None:
        symtab_cmd = None
        dysymtab_cmd = None

        for cmd in image.load_commands:
            if isinstance(cmd, SegmentCommand):
                try:
                    segment = Segment.from_command(image.buffer, cmd.cmd_struct, cmd.index)
                except TruncatedCommandException as ex:
                    ex.commands = image.load_commands[:cmd.index]
                    raise
                log.info(f'Loaded Segment {segment.name}')
                image.segments.append(segment)

            elif isinstance(cmd, SymtabCommand):
                # the last LC_SYMTAB wins
                symtab_cmd = cmd

            elif isinstance(cmd, DysymtabCommand):
                dysymtab_cmd = cmd

        if symtab_cmd is not None:
            log.info("Loading Symbol Table")
            image.symbol_table = SymbolTable.from_command(image.buffer, symtab_cmd.cmd_struct)

        if dysymtab_cmd is not None:
            image.dysymtab = DynamicSymbolTable(dysymtab_cmd.cmd_struct)

    @classmethod
    def _resolve_bindings(cls, image: Image) -> None:
        if image.symbol_table is None or image.dysymtab is None:
            log.info("No symbol table or dynamic symbol table; skipping pointer slot resolution")
            return

        indirect_table = IndirectSymbolTable.from_dysymtab(image.buffer, image.dysymtab)
        if indirect_table is None:
            return

        resolver = IndirectBindingResolver(image.segments, image.symbol_table, image.dysymtab, indirect_table)

        image.bindings = resolver.bindings
        image.binding_failures = resolver.failures
        image.bindings_resolved = True
