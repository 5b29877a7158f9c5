from machbind.machbind import load_image, load_macho_file, analyze, serialize_image, macho_verify

from machbind.exceptions import (MachOException, NotMachOException, TruncatedCommandException,
                                 MalformedMachOException, NameOutOfBoundsException,
                                 IndirectIndexOutOfBoundsException, SymbolIndexOutOfBoundsException)
from machbind.macho import BackingFile, MachHeader, Segment, Section
from machbind.load_commands import (LoadCommand, SegmentCommand, SymtabCommand, DysymtabCommand, OtherCommand,
                                    LoadCommandWalker, load_commands)
from machbind.symtab import StringTable, Symbol, SymbolTable, DynamicSymbolTable, INVALID_NAME
from machbind.binding import (IndirectSymbolTable, IndirectEntryKind, IndirectEntry, decode_indirect_entry,
                              ResolvedBinding, BindingFailure, IndirectBindingResolver)
from machbind.image import Image
from machbind.loader import MachOImageLoader
from machbind.render import render_text, render_json
from machbind.util import MACHBIND_VERSION, ignore, opts, log, LogLevel, Table
