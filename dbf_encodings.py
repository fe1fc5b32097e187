"""
Code page support for DBF files.

Maps the header's language driver byte to a Python codec name and reads
the encoding declared in a shapefile style .CPG sidecar file.
"""

import codecs
import logging
import os
from typing import Dict, Optional

from dbf_errors import EncodingUnavailableError


logger = logging.getLogger(__name__)

# Used when nothing declares an encoding and the language driver is unknown
DEFAULT_ENCODING = "cp1252"

DBF_LANG_US = 0x01
DBF_LANG_WESTERN_EUROPE = 0x02
DBF_LANG_JAPAN = 0x7B

# Language driver byte -> (code page, description)
LANGUAGE_DRIVERS: Dict[int, tuple] = {
    0x01: ("437", "U.S. MS-DOS"),
    0x02: ("850", "International MS-DOS"),
    0x03: ("1252", "Windows ANSI"),
    0x08: ("865", "Danish OEM"),
    0x09: ("437", "Dutch OEM"),
    0x0A: ("850", "Dutch OEM*"),
    0x0B: ("437", "Finnish OEM"),
    0x0D: ("437", "French OEM"),
    0x0E: ("850", "French OEM*"),
    0x0F: ("437", "German OEM"),
    0x10: ("850", "German OEM*"),
    0x11: ("437", "Italian OEM"),
    0x12: ("850", "Italian OEM*"),
    0x13: ("932", "Japanese Shift-JIS"),
    0x14: ("850", "Spanish OEM*"),
    0x15: ("437", "Swedish OEM"),
    0x16: ("850", "Swedish OEM*"),
    0x17: ("865", "Norwegian OEM"),
    0x18: ("437", "Spanish OEM"),
    0x19: ("437", "English OEM (Britain)"),
    0x1A: ("850", "English OEM (Britain)*"),
    0x1B: ("437", "English OEM (U.S.)"),
    0x1C: ("863", "French OEM (Canada)"),
    0x1D: ("850", "French OEM*"),
    0x1F: ("852", "Czech OEM"),
    0x22: ("852", "Hungarian OEM"),
    0x23: ("852", "Polish OEM"),
    0x24: ("860", "Portuguese OEM"),
    0x25: ("850", "Portuguese OEM*"),
    0x26: ("866", "Russian OEM"),
    0x37: ("850", "English OEM (U.S.)*"),
    0x40: ("852", "Romanian OEM"),
    0x4D: ("936", "Chinese GBK (PRC)"),
    0x4E: ("949", "Korean (ANSI/OEM)"),
    0x4F: ("950", "Chinese Big 5 (Taiwan)"),
    0x50: ("874", "Thai (ANSI/OEM)"),
    0x57: ("1252", "ANSI"),
    0x58: ("1252", "Western European ANSI"),
    0x59: ("1252", "Spanish ANSI"),
    0x64: ("852", "Eastern European MS-DOS"),
    0x65: ("866", "Russian MS-DOS"),
    0x66: ("865", "Nordic MS-DOS"),
    0x67: ("861", "Icelandic MS-DOS"),
    0x6A: ("737", "Greek MS-DOS (437G)"),
    0x6B: ("857", "Turkish MS-DOS"),
    0x6C: ("863", "French-Canadian MS-DOS"),
    0x78: ("950", "Taiwan Big 5"),
    0x79: ("949", "Hangul (Wansung)"),
    0x7A: ("936", "PRC GBK"),
    0x7B: ("932", "Japanese Shift-JIS"),
    0x7C: ("874", "Thai Windows/MS-DOS"),
    0x86: ("737", "Greek OEM"),
    0x87: ("852", "Slovenian OEM"),
    0x88: ("857", "Turkish OEM"),
    0xC8: ("1250", "Eastern European Windows"),
    0xC9: ("1251", "Russian Windows"),
    0xCA: ("1254", "Turkish Windows"),
    0xCB: ("1253", "Greek Windows"),
    0xCC: ("1257", "Baltic Windows"),
}


def codepage_to_codec(code_page: str) -> str:
    """Turn a bare code page number ('1252') into a codec name ('cp1252')."""
    code_page = code_page.strip()
    if code_page.isdigit():
        return "cp" + code_page
    return code_page


def lookup_language_driver(language_driver: int) -> Optional[str]:
    """
    Look up the codec name for a language driver byte.

    Returns:
        Codec name (e.g. 'cp437') or None if the byte is not in the table
    """
    entry = LANGUAGE_DRIVERS.get(language_driver)
    if entry is None:
        return None
    return codepage_to_codec(entry[0])


def language_driver_for(encoding: str) -> int:
    """
    Find the first language driver byte that maps to an encoding.

    Returns:
        The language driver byte, or 0 when no table entry matches
    """
    try:
        wanted = codecs.lookup(encoding).name
    except LookupError:
        return 0

    for language_driver in sorted(LANGUAGE_DRIVERS):
        codec = lookup_language_driver(language_driver)
        if codecs.lookup(codec).name == wanted:
            return language_driver
    return 0


def is_encoding_available(encoding: str) -> bool:
    """Check whether Python can encode and decode with this codec."""
    try:
        codecs.lookup(encoding)
    except LookupError:
        return False
    return True


def normalize_encoding(encoding: str) -> str:
    """
    Validate a declared encoding and return Python's canonical name for it.

    Raises:
        EncodingUnavailableError: If the codec is not supported
    """
    name = codepage_to_codec(encoding)
    try:
        return codecs.lookup(name).name
    except LookupError:
        raise EncodingUnavailableError(f"Encoding '{encoding}' is not supported")


def find_cpg_file(dbf_filename: str) -> Optional[str]:
    """
    Find a .CPG file with the same base name as the DBF, in the same folder.

    Both the base name and the extension are compared case-insensitively.
    """
    folder = os.path.dirname(os.path.abspath(dbf_filename))
    base_name = os.path.splitext(os.path.basename(dbf_filename))[0].lower()

    try:
        entries = os.listdir(folder)
    except FileNotFoundError:
        return None

    for entry in sorted(entries):
        name, ext = os.path.splitext(entry)
        if ext.lower() == ".cpg" and name.lower() == base_name:
            return os.path.join(folder, entry)
    return None


def read_cpg_file(cpg_filename: str) -> str:
    """
    Read the encoding declared on the first line of a .CPG file.

    Raises:
        ValueError: If the file is empty
        EncodingUnavailableError: If the declared codec is not supported
    """
    with open(cpg_filename, "r", encoding="utf-8") as f:
        first_line = f.readline().strip()

    if not first_line:
        raise ValueError(f"CPG file is empty: {cpg_filename}")

    encoding = normalize_encoding(first_line)
    logger.debug("Encoding %s declared by %s", encoding, cpg_filename)
    return encoding


def read_declared_encoding(dbf_filename: str) -> Optional[str]:
    """Return the encoding declared by the DBF's sidecar .CPG file, if any."""
    cpg_filename = find_cpg_file(dbf_filename)
    if cpg_filename is None:
        return None
    return read_cpg_file(cpg_filename)
