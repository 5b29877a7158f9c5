#
#  machbind | machbind
#  util.py
#
#  This file contains miscellaneous utilities used around machbind: runtime switches, terminal output helpers
#    and the ASCII table renderer used by the text report.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#
import re
import sys
from importlib import metadata

from machbind.exceptions import MalformedMachOException
from libmachbind.log import log, LogLevel, print_err

from pygments import highlight
from pygments.formatters.terminal import TerminalFormatter
from pygments.lexers.data import JsonLexer

try:
    MACHBIND_VERSION = metadata.version('machbind')
except metadata.PackageNotFoundError:
    MACHBIND_VERSION = '1.0.0'

OUT_IS_TTY = sys.stdout.isatty()


class ignore:
    # Carry on (with the affected table treated as absent) instead of raising MalformedMachOException
    MALFORMED = False


class opts:
    DISABLE_COLOR = False
    # Only pointer sections inside these segments get their slots resolved
    BINDING_SEGMENTS = ('__DATA', '__DATA_CONST')


def macho_is_malformed(msg=""):
    """Raise MalformedMachOException *if* we dont want to ignore bad mach-os

    :return:
    """
    if not ignore.MALFORMED:
        raise MalformedMachOException(msg)
    log.warn(f'Ignoring malformation: {msg}')


def highlight_json(text):
    if opts.DISABLE_COLOR:
        return text
    return highlight(text, JsonLexer(), TerminalFormatter())


class Table:
    """
    ASCII Table Renderer
    .titles = a list of titles for each column
    .rows is a list of lists, each "sublist" representing each column, .e.g self.rows.append(['col1thing', 'col2thing'])

    Columns are sized to their widest cell and never wrapped, so piped output keeps one record per line.
    Cells may contain newlines; the row grows to the tallest cell.
    """

    def __init__(self, dividers=False):
        self.titles = []
        self.rows = []

        self.dividers = dividers
        self.column_pad = 3 if dividers else 2

        # Holds the maximum length of the fields within the seperate columns
        self.column_maxes = []

    def preheat(self):
        self.column_maxes = [len(title) + self.column_pad for title in self.titles]

        for row in self.rows:
            while len(self.column_maxes) < len(row):
                self.column_maxes.append(self.column_pad)
            for index, col in enumerate(row):
                col_size = max([len(strip_ansi(i)) + self.column_pad for i in col.split('\n')])
                self.column_maxes[index] = max(col_size, self.column_maxes[index])

    def fetch_all(self) -> str:
        """
        Render the entirety of the table

        :return:
        """
        if len(self.rows) == 0:
            return ""

        self.preheat()

        cgrey = '\33[0m\33[38;5;242m'
        reset = '\33[0m'
        cwhitebold = '\33[0m\33[1m'
        if opts.DISABLE_COLOR:
            cgrey = ''
            reset = ''
            cwhitebold = ''

        divider = f'{cgrey}┃{reset} ' if self.dividers else ''

        lines = []

        if self.titles:
            title_row = ''
            for i, title in enumerate(self.titles):
                title_row += divider + title.ljust(self.column_maxes[i] - (2 if self.dividers else 0))
            lines.append(cwhitebold + ' ' + title_row.rstrip() + reset)

        for row in self.rows:
            cells = [col.split('\n') for col in row]
            height = max([len(cell) for cell in cells])
            for line_index in range(height):
                line = ''
                for col_index, cell in enumerate(cells):
                    text = cell[line_index] if line_index < len(cell) else ''
                    width = self.column_maxes[col_index] - (2 if self.dividers else 0)
                    line += divider + text + ' ' * max(0, width - len(strip_ansi(text)))
                lines.append(' ' + line.rstrip())

        return '\n'.join(lines) + '\n'


ansi_escape = re.compile(r'(?:\x1B[@-_]|[\x80-\x9F])[0-?]*[ -/]*[@-~]')


def strip_ansi(msg):
    return ansi_escape.sub('', msg)


def machbind_print(msg, file=None):
    file = file if file is not None else sys.stdout
    if file.isatty() and not opts.DISABLE_COLOR:
        print(msg, file=file)
    else:
        print(strip_ansi(msg), file=file)


__all__ = ['MACHBIND_VERSION', 'OUT_IS_TTY', 'ignore', 'opts',
           'macho_is_malformed', 'highlight_json', 'Table', 'strip_ansi', 'machbind_print', 'print_err',
           'log', 'LogLevel']
