#
#  machbind | machbind
#  machbind_script.py
#
#  Command line entry point: `machbind <file>` prints the structure report for one 64 bit Mach-O.
#
#  Exit codes: 0 on success, 1 on bad usage, 2 when the file can't be read or analyzed.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

import argparse
import sys

from machbind.exceptions import MachOException
from machbind.machbind import load_macho_file, load_image
from machbind.render import render_text, render_json
from machbind.util import (ignore, opts, log, LogLevel, print_err, machbind_print, MACHBIND_VERSION, OUT_IS_TTY)

EXIT_USAGE = 1
EXIT_FAILURE = 2


class MachBindArgumentParser(argparse.ArgumentParser):
    """
    argparse exits with 2 on usage errors; that code is taken by analysis failures here.
    """

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f'{self.prog}: error: {message}\n')


def build_parser() -> argparse.ArgumentParser:
    parser = MachBindArgumentParser(prog='machbind',
                                    description="Print the header, load commands, segments, symbol tables and "
                                                "pointer slot bindings of a 64 bit Mach-O.")
    parser.add_argument('filename', help="Path to the Mach-O file")

    output_group = parser.add_argument_group('output format options')
    output_group.add_argument('--json', action='store_true', help="Output the report as JSON")
    output_group.add_argument('--no-color', dest='no_color', action='store_true', help="Don't colorize output")

    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help="Log more (-v warnings, -vv info, -vvv debug, up to -vvvvv)")
    parser.add_argument('-f', '--force', action='store_true',
                        help="Keep going past malformations that have a safe fallback")
    parser.add_argument('--version', action='version', version=f'machbind v{MACHBIND_VERSION}')

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        log.LOG_LEVEL = LogLevel(min(LogLevel.ERROR.value + args.verbose, LogLevel.DEBUG_TOO_MUCH.value))

    if args.no_color or not OUT_IS_TTY:
        opts.DISABLE_COLOR = True

    if args.force:
        ignore.MALFORMED = True

    try:
        with open(args.filename, 'rb') as fp:
            buffer = load_macho_file(fp)
    except OSError as ex:
        print_err(f'machbind: cannot read {args.filename}: {ex.strerror or ex}')
        return EXIT_FAILURE

    # symbol names are read lazily, so the mapping stays open until the report is rendered
    try:
        image = load_image(buffer)
        if args.json:
            report = render_json(image, tty=not opts.DISABLE_COLOR)
        else:
            report = render_text(image)
    except MachOException as ex:
        print_err(f'machbind: {args.filename}: {type(ex).__name__}: {ex}')
        return EXIT_FAILURE
    finally:
        buffer.close()

    if args.json:
        print(report)
    else:
        machbind_print(report)

    return 0


if __name__ == "__main__":
    sys.exit(main())
