#
#  machbind | libmachbind
#  structs.py
#
#  Struct implementation reflecting behavior of named tuples while also handling behind-the-scenes
#    packing/unpacking
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

# Field "sizes" carry the field type in the high bits and the byte count in the low bits,
#   so a size calculation is just a mask.
type_mask = 0xffff0000
size_mask = 0xffff

type_uint = 0
type_sint = 0x10000
type_str = 0x20000
type_bytes = 0x30000

uint8_t = 1
uint16_t = 2
uint32_t = 4
uint64_t = 8

int8_t = type_sint | 1
int16_t = type_sint | 2
int32_t = type_sint | 4
int64_t = type_sint | 8

# char_t[16] is a 16 byte, NUL padded string field. bytes_t[n] is n raw bytes.
char_t = [type_str | i for i in range(65)]
bytes_t = [type_bytes | i for i in range(65)]


def _uint_to_int(uint, bits):
    """
    Assume an int was read from binary as an unsigned int,

    decode it as a two's compliment signed integer

    :param uint:
    :param bits:
    :return:
    """
    if (uint & (1 << (bits - 1))) != 0:  # if sign bit is set e.g., 8bit: 128-255
        uint = uint - (1 << bits)  # compute negative value
    return uint  # return positive value as is


def _decode_fixed_str(data) -> str:
    # Fixed width name fields are NUL padded; anything after the first NUL is junk.
    end = data.find(b'\x00')
    if end != -1:
        data = data[:end]
    return bytes(data).decode('utf-8', errors='replace')


# noinspection PyUnresolvedReferences
class Struct:
    """
    namedtuple-esque Struct representation. Can be unpacked from bytes or manually created with existing
        field values

    Subclasses declare a `FIELDS` dict mapping field name -> field size (see the uint32_t, char_t, ... values above).

    Instances are treated as read-only records once created. `.raw` packs the current field values back into bytes,
        which is how in-memory Mach-O images are assembled.
    """

    @classmethod
    def size(cls) -> int:
        if not hasattr(cls, '___SIZE'):
            size = 0
            for _, value in cls.FIELDS.items():
                size += value & size_mask
            setattr(cls, '___SIZE', size)
        return getattr(cls, '___SIZE')

    # noinspection PyProtectedMember
    @staticmethod
    def create_with_bytes(struct_class, raw, byte_order="little"):
        """
        Unpack a struct from raw bytes

        :param struct_class: Struct subclass
        :param raw: Bytes, at least struct_class.size() long
        :param byte_order: Little/Big Endian Struct Unpacking
        :return: struct_class Instance
        """
        size = struct_class.size()
        if len(raw) < size:
            raise ValueError(f'{struct_class.__name__} needs {size} bytes, got {len(raw)}')

        instance: Struct = struct_class(byte_order)
        raw = bytes(raw[:size])
        current_off = 0

        for field in instance._fields:
            value = instance._field_sizes[field]
            field_type = type_mask & value
            field_size = size_mask & value

            data = raw[current_off:current_off + field_size]

            if field_type == type_str:
                field_value = _decode_fixed_str(data)
            elif field_type == type_bytes:
                field_value = data
            elif field_type == type_sint:
                field_value = _uint_to_int(int.from_bytes(data, byte_order), field_size * 8)
            else:
                field_value = int.from_bytes(data, byte_order)

            instance._field_offsets[field] = current_off
            setattr(instance, field, field_value)
            current_off += field_size

        instance.initialized = True
        return instance

    @staticmethod
    def create_with_values(struct_class, values, byte_order="little"):
        """
        Pack/Create a struct given field values

        :param byte_order:
        :param struct_class: Struct subclass
        :param values: List of values, in field order
        :return: struct_class Instance
        """

        instance: Struct = struct_class(byte_order)

        # noinspection PyProtectedMember
        for i, field in enumerate(instance._fields):
            setattr(instance, field, values[i])

        instance.initialized = True
        return instance

    @property
    def type_name(self):
        return self.__class__.__name__

    @property
    def raw(self) -> bytes:
        raw = bytearray()
        for field in self._fields:
            size = self._field_sizes[field]
            field_size = size & size_mask
            field_dat = getattr(self, field)

            if isinstance(field_dat, int):
                signed = (size & type_mask) == type_sint
                data = field_dat.to_bytes(field_size, byteorder=self.byte_order, signed=signed)
            elif isinstance(field_dat, (bytes, bytearray)):
                data = bytes(field_dat).ljust(field_size, b'\x00')
            elif isinstance(field_dat, str):
                data = field_dat.encode('utf-8').ljust(field_size, b'\x00')
            else:
                raise AssertionError(f'Cannot pack {field}={field_dat!r}')

            assert len(data) == field_size, f'{self.type_name}.{field} is {len(data)} bytes, expected {field_size}'
            raw += data

        return bytes(raw)

    def __eq__(self, other):
        if not isinstance(other, Struct):
            return False
        try:
            for field in self._fields:
                if getattr(self, field) != getattr(other, field):
                    return False
        except AttributeError:
            return False
        return True

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return str(self)

    def __str__(self):
        text = f'{self.__class__.__name__}('
        for field in self._fields:
            attr = getattr(self, field)
            field_item = hex(attr) if isinstance(attr, int) else attr
            text += f'{field}={field_item}, '
        return text[:-2] + ')'

    def serialize(self):
        struct_dict = {'type': self.__class__.__name__}

        for field in self._fields:
            field_item = getattr(self, field)
            if isinstance(field_item, (bytes, bytearray)):
                field_item = bytes(field_item).hex()
            struct_dict[field] = field_item

        return struct_dict

    def __init__(self, byte_order="little"):
        if not hasattr(self.__class__, 'FIELDS'):
            raise AssertionError("Do not use the bare Struct class; it must be implemented in an actual type")

        self.initialized = False

        self._fields = list(self.__class__.FIELDS.keys())
        self._field_sizes = dict(self.__class__.FIELDS)
        self._field_offsets = {}
        self.byte_order = byte_order

        self.off = 0
