#
#  machbind | machbind
#  render.py
#
#  Text and JSON reports for an analyzed Image.
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

import json

from machbind.binding import serialize_failure
from machbind.image import Image
from machbind.util import Table, highlight_json, opts, OUT_IS_TTY


def _title(text):
    if opts.DISABLE_COLOR:
        return text
    return f'\33[1m{text}\33[0m'


def _header_table(image: Image) -> str:
    header = image.header
    table = Table()
    table.titles = ['Field', 'Value']
    table.rows.append(['Magic', hex(header.magic)])
    table.rows.append(['CPU Type', f'{header.cpu_type_name} ({hex(header.cpu_type)})'])
    table.rows.append(['CPU Subtype', hex(header.cpu_subtype)])
    table.rows.append(['File Type', f'{header.filetype_name} ({hex(header.filetype)})'])
    table.rows.append(['Load Commands', str(header.ncmds)])
    table.rows.append(['Size of Commands', hex(header.sizeofcmds)])
    table.rows.append(['Flags', '\n'.join(header.flag_names) if header.flag_names else hex(header.flags)])
    return table.fetch_all()


def _load_command_table(image: Image) -> str:
    table = Table()
    table.titles = ['Index', 'Command', 'Offset', 'Size']
    for cmd in image.load_commands:
        table.rows.append([str(cmd.index), f'{cmd.name} ({hex(cmd.cmd)})', hex(cmd.off), hex(cmd.cmdsize)])
    return table.fetch_all()


def _segment_tables(image: Image) -> str:
    out = ''
    for segment in image.segments:
        out += f'{segment.name} vm={hex(segment.vm_address)}+{hex(segment.vm_size)} ' \
               f'file={hex(segment.file_address)}+{hex(segment.file_size)} ' \
               f'prot={segment.protection} ' \
               f'[{segment.nsects} Sections]\n'

        table = Table(dividers=True)
        table.titles = ['Section Name', 'VM Address', 'Size', 'File Offset', 'Type', 'reserved1']
        for section in segment.sections:
            table.rows.append([section.name, hex(section.addr), hex(section.size), hex(section.offset),
                               section.type_name, str(section.reserved1)])
        out += table.fetch_all()
    return out


def _symtab_tables(image: Image) -> str:
    symtab = image.symbol_table
    out = f'symoff={hex(symtab.symoff)} nsyms={symtab.nsyms} stroff={hex(symtab.stroff)} ' \
          f'strsize={hex(symtab.strsize)}\n'

    table = Table()
    table.titles = ['Index', 'Name', 'Type', 'Sect', 'Value']
    for symbol in symtab.table:
        types = ','.join(symbol.types) if not symbol.stab else f'STAB({hex(symbol.type)})'
        if symbol.external:
            types += ',EXT'
        table.rows.append([str(symbol.index), symbol.name, types, str(symbol.sect_index), hex(symbol.value)])
    out += table.fetch_all()
    return out


def _dysymtab_table(image: Image) -> str:
    table = Table()
    table.titles = ['Field', 'Value']
    for field, value in image.dysymtab.serialize().items():
        table.rows.append([field, str(value)])
    return table.fetch_all()


def _binding_tables(image: Image) -> str:
    if not image.bindings_resolved:
        return 'Not resolved (image has no symbol table or no dynamic symbol table)\n'

    out = ''
    sections = []
    for binding in image.bindings:
        if (binding.segment_name, binding.section_name) not in sections:
            sections.append((binding.segment_name, binding.section_name))

    for segment_name, section_name in sections:
        out += f'{segment_name},{section_name}\n'
        table = Table()
        table.titles = ['Slot', 'Address', 'Symbol']
        for binding in image.bindings_for_section(segment_name, section_name):
            table.rows.append([str(binding.slot), hex(binding.address), binding.name])
        out += table.fetch_all()

    if image.binding_failures:
        out += 'Unresolved slots\n'
        table = Table()
        table.titles = ['Section', 'Slot', 'Reason']
        for failure in image.binding_failures:
            failure_dict = serialize_failure(failure)
            slots = str(failure.slot)
            if failure_dict['last_slot'] != failure.slot:
                slots += f'-{failure_dict["last_slot"]}'
            table.rows.append([f'{failure.segment_name},{failure.section_name}', slots,
                               f'{failure_dict["reason"]}: {failure_dict["message"]}'])
        out += table.fetch_all()

    if not out:
        out = 'No symbol pointer slots bound\n'

    return out


def render_text(image: Image) -> str:
    """
    Human-readable report, one block per part of the image.
    """
    out = _title('Mach-O Header') + '\n'
    out += _header_table(image)

    out += '\n' + _title('Load Commands') + '\n'
    out += _load_command_table(image)

    out += '\n' + _title('Segments') + '\n'
    out += _segment_tables(image)

    out += '\n' + _title('Symbol Table') + '\n'
    out += _symtab_tables(image) if image.symbol_table is not None else 'None\n'

    out += '\n' + _title('Dynamic Symbol Table') + '\n'
    out += _dysymtab_table(image) if image.dysymtab is not None else 'None\n'

    out += '\n' + _title('Dynamic Symbols') + '\n'
    out += _binding_tables(image)

    return out


def render_json(image: Image, tty=OUT_IS_TTY) -> str:
    text = json.dumps(image.serialize(), indent=2)
    if tty:
        return highlight_json(text)
    return text
