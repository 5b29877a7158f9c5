#
#  machbind | machbind
#  image.py
#
#  The report object produced by one analysis run.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from typing import List, Optional

from machbind.binding import ResolvedBinding, BindingFailure, serialize_binding, serialize_failure
from machbind.load_commands import LoadCommand
from machbind.macho import BackingFile, MachHeader, Segment
from machbind.symtab import SymbolTable, DynamicSymbolTable


class Image:
    """
    This class represents the Mach-O Binary as a whole.

    This class on its own does not handle populating its fields; MachOImageLoader fills it in.

    :ivar BackingFile buffer: The bytes everything below was read from.
    :ivar MachHeader header: The mach_header_64
    :ivar List[LoadCommand] load_commands: Every load command, in file order
    :ivar List[Segment] segments: LC_SEGMENT_64 commands in file order, each with its sections
    :ivar Optional[SymbolTable] symbol_table: LC_SYMTAB contents, if the image has one
    :ivar Optional[DynamicSymbolTable] dysymtab: LC_DYSYMTAB contents, if the image has one
    :ivar List[ResolvedBinding] bindings: Pointer slots and the symbols they get bound to
    :ivar List[BindingFailure] binding_failures: Pointer slots that couldn't be resolved
    :ivar bool bindings_resolved: False when the image lacks either table and the pointer slots weren't looked at
    """

    def __init__(self, buffer: BackingFile, header: MachHeader):
        self.buffer = buffer
        self.header = header

        self.load_commands: List[LoadCommand] = []
        self.segments: List[Segment] = []

        self.symbol_table: Optional[SymbolTable] = None
        self.dysymtab: Optional[DynamicSymbolTable] = None

        self.bindings: List[ResolvedBinding] = []
        self.binding_failures: List[BindingFailure] = []
        self.bindings_resolved = False

    def segment_named(self, name: str) -> Optional[Segment]:
        for segment in self.segments:
            if segment.name == name:
                return segment
        return None

    def bindings_for_section(self, segment_name: str, section_name: str) -> List[ResolvedBinding]:
        return [binding for binding in self.bindings
                if binding.segment_name == segment_name and binding.section_name == section_name]

    def serialize(self):
        image_dict = {'macho_header': self.header.serialize()}

        image_dict['load_commands'] = [cmd.serialize() for cmd in self.load_commands]
        image_dict['segments'] = [segment.serialize() for segment in self.segments]

        image_dict['symtab'] = self.symbol_table.serialize() if self.symbol_table else None
        image_dict['dysymtab'] = self.dysymtab.serialize() if self.dysymtab else None

        image_dict['bindings_resolved'] = self.bindings_resolved
        image_dict['bindings'] = [serialize_binding(binding) for binding in self.bindings]
        image_dict['binding_failures'] = [serialize_failure(failure) for failure in self.binding_failures]

        return image_dict
