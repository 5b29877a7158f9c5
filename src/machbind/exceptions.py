#
#  machbind | machbind
#  exceptions.py
#
#  Exceptions raised while analyzing an image.
#
#  NotMachO, TruncatedCommand and MalformedMachO abort the analysis. The OutOfBounds family is local to a single
#    symbol or pointer slot; the code that catches them turns them into markers in the report.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#


class MachOException(Exception):
    """
    Base for everything machbind raises about the contents of an image.
    """


class NotMachOException(MachOException):
    """
    The buffer is too short for a mach_header_64, or its magic isn't MH_MAGIC_64.
    """

    def __init__(self, msg, magic=None):
        super().__init__(msg)
        self.magic = magic


class TruncatedCommandException(MachOException):
    """
    A load command's declared size is invalid or would read past the load command area / buffer.

    `commands` holds every command walked before the bad one, in file order.
    """

    def __init__(self, msg, index=0, offset=0, cmdsize=0, commands=None):
        super().__init__(msg)
        self.index = index
        self.offset = offset
        self.cmdsize = cmdsize
        self.commands = commands if commands is not None else []


class MalformedMachOException(MachOException):
    """
    A structural inconsistency that has no reasonable local fallback.
    """


class NameOutOfBoundsException(MachOException):
    def __init__(self, str_index, strsize):
        super().__init__(f'String table offset {hex(str_index)} is outside the string table (size {hex(strsize)})')
        self.str_index = str_index
        self.strsize = strsize


class IndirectIndexOutOfBoundsException(MachOException):
    def __init__(self, index, count):
        super().__init__(f'Indirect symbol index {index} is outside the indirect symbol table ({count} entries)')
        self.index = index
        self.count = count


class SymbolIndexOutOfBoundsException(MachOException):
    def __init__(self, index, count):
        super().__init__(f'Symbol index {index} is outside the symbol table ({count} entries)')
        self.index = index
        self.count = count
