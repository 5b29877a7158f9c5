#
#  machbind | machbind
#  machbind.py
#
#  Outward facing API
#
#  This file is part of machbind. machbind is free software that
#  is made available under the MIT license. Consult the
#  file "LICENSE" that is distributed together with this file
#  for the exact licensing terms.
#

from io import BytesIO
from typing import BinaryIO, Union

from machbind.image import Image
from machbind.loader import MachOImageLoader
from machbind.macho import BackingFile
from machbind.util import ignore, log


def load_macho_file(fp: BinaryIO, use_mmaped_io=True) -> BackingFile:
    """
    This function takes a bare file and loads it as a BackingFile.

    File should be opened with 'rb'

    :param fp: BinaryIO object
    :param use_mmaped_io: Should the file be mapped instead of read? Leaving this enabled improves load time on
                            large files, only disable if your system doesn't support it
    :return:
    """
    return BackingFile.from_fp(fp, use_mmaped_io=use_mmaped_io)


def load_image(fp: Union[BinaryIO, BackingFile, bytes, bytearray, memoryview], use_mmaped_io=True) -> Image:
    """
    Take a bare file, BackingFile, or raw bytes, and analyze it

    :param fp: a bare file, BackingFile, or bytes to load.
    :param use_mmaped_io: If a bare file is being passed, load it with mmaped IO?
    :return: Returns a loaded Image object
    :rtype: Image
    """
    if isinstance(fp, BackingFile):
        buffer = fp
    elif isinstance(fp, (bytes, bytearray, memoryview)):
        buffer = BackingFile(fp)
    else:
        buffer = load_macho_file(fp, use_mmaped_io=use_mmaped_io)

    return MachOImageLoader.load(buffer)


def analyze(data: Union[bytes, bytearray, memoryview]) -> Image:
    return load_image(BackingFile(data))


def serialize_image(image: Image) -> dict:
    return image.serialize()


def macho_verify(fp: Union[BinaryIO, BackingFile, bytes, Image]) -> None:
    """
    This function loads an image with malformation exceptions fully enabled, regardless of ignore.MALFORMED.

    :param fp: One of: BinaryIO, BackingFile, bytes or Image, to load and verify
    :return:
    :raises: MalformedMachOException
    """
    should_ignore = ignore.MALFORMED

    log.info("Verifying MachO Integrity")
    ignore.MALFORMED = False

    try:
        if isinstance(fp, Image):
            load_image(fp.buffer)
        elif isinstance(fp, BytesIO):
            load_image(fp.getvalue())
        else:
            load_image(fp)
    finally:
        ignore.MALFORMED = should_ignore
