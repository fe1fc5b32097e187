"""
Python implementation of the dBase III/IV (.DBF) file format, including the
FoxPro INTEGER and FLOAT field extensions.

This module provides the column and header schema model, the per-record
value codec and a file object for sequential or random access reads and
writes. Memo (.DBT) files are not supported.
"""

import datetime
import logging
import math
import os
import re
import struct
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple, Union

from dbf_encodings import (  # noqa: F401 (DBF_LANG_* re-exported)
    DBF_LANG_JAPAN,
    DBF_LANG_US,
    DBF_LANG_WESTERN_EUROPE,
    DEFAULT_ENCODING,
    is_encoding_available,
    language_driver_for,
    lookup_language_driver,
    normalize_encoding,
    read_declared_encoding,
)
from dbf_errors import (
    InvalidFormatError,
    InvalidValueError,
    LockedError,
    RecordTooLargeError,
    SchemaMismatchError,
    SchemaViolationError,
    TruncationRejectedError,
    UnsupportedError,
)


logger = logging.getLogger(__name__)

# Constants
DBF_FILE_TYPE = 0x03
DBF_HEADER_TERMINATOR = 0x0D
DBF_EOF_MARKER = 0x1A
DBF_FILE_DESCRIPTOR_SIZE = 33  # 32 byte file header + 0x0D terminator
DBF_COLUMN_DESCRIPTOR_SIZE = 32
DBF_MAX_RECORD_LENGTH = 65535
DBF_MAX_HEADER_LENGTH = 65535
DBF_MAX_NAME_LENGTH = 11
DBF_MAX_FIELD_LENGTH = 255
DBF_MAX_WIDE_FIELD_LENGTH = 65535
DBF_LANGUAGE_DRIVER_OFFSET = 29
DBF_RECORD_ACTIVE = ord(' ')
DBF_RECORD_DELETED = ord('*')

# version, year - 1900, month, day, record count, header length, record length, reserved
_FILE_HEADER = struct.Struct("<BBBBLHH20s")
# name, type tag, data address, length + decimal count, reserved
_COLUMN_DESCRIPTOR = struct.Struct("<11scL2s14s")
_INTEGER = struct.Struct("<i")

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")
_DATE_FORMATS = ("%Y%m%d", "%Y-%m-%d", "%m/%d/%Y")
_TRUE_TOKENS = ("true", "1", "t", "yes", "y")
_UNKNOWN_TOKENS = (" ", "?")


class DBFColumnType(Enum):
    """Field types, valued by the tag written in the column descriptor."""
    CHARACTER = 'C'
    NUMBER = 'N'
    BOOLEAN = 'L'
    DATE = 'D'
    MEMO = 'M'
    BINARY = 'B'
    INTEGER = 'I'
    FLOAT = 'F'

    @property
    def tag(self) -> str:
        return self.value

    @classmethod
    def from_tag(cls, tag: str) -> "DBFColumnType":
        """
        Get the column type for a descriptor tag. Case is ignored.

        Raises:
            SchemaViolationError: If the tag is not a supported type
        """
        try:
            return cls(tag.upper())
        except ValueError:
            raise SchemaViolationError(f"'{tag}' does not have a corresponding column type")


# Types whose length is fixed by the format, whatever the caller asks for
_FIXED_LENGTHS = {
    DBFColumnType.INTEGER: 4,
    DBFColumnType.BINARY: 1,
    DBFColumnType.DATE: 8,
    DBFColumnType.MEMO: 10,
    DBFColumnType.BOOLEAN: 1,
}

# Types allowed past 255 bytes
_WIDE_TYPES = (DBFColumnType.CHARACTER, DBFColumnType.BINARY)


# Data structures
@dataclass(frozen=True)
class DBFColumn:
    """
    Represents a column/field in a DBF file.

    Columns are immutable. The data address (offset within the record, the
    first field starts at 1) belongs to the header: DBFHeader.add_column()
    stores a copy of the column placed at the right offset.
    """
    name: str  # Field name (max 11 chars)
    column_type: DBFColumnType  # DBFColumnType or its tag ('C', 'N', ...)
    length: int = 0  # Field length in bytes
    decimal_count: int = 0  # Digits after the decimal point (Number only)
    data_address: int = field(default=0, compare=False)

    def __post_init__(self):
        if not self.name:
            raise SchemaViolationError("Field names must be at least one char long")
        if len(self.name) > DBF_MAX_NAME_LENGTH:
            raise SchemaViolationError(
                f"Field name '{self.name}' is longer than {DBF_MAX_NAME_LENGTH} chars")

        column_type = self.column_type
        if not isinstance(column_type, DBFColumnType):
            column_type = DBFColumnType.from_tag(str(column_type))

        decimal_count = self.decimal_count if column_type is DBFColumnType.NUMBER else 0
        length = _FIXED_LENGTHS.get(column_type, self.length)

        if decimal_count < 0:
            raise SchemaViolationError(f"Field '{self.name}' has a negative decimal count")
        if decimal_count > 0 and length - decimal_count <= 1:
            raise SchemaViolationError(
                f"Field '{self.name}': decimal count {decimal_count} leaves no room for the "
                f"integer part and decimal point in length {length}")
        if length <= 0:
            raise SchemaViolationError(
                f"Field '{self.name}': length must be greater than zero")

        max_length = DBF_MAX_WIDE_FIELD_LENGTH if column_type in _WIDE_TYPES else DBF_MAX_FIELD_LENGTH
        if length > max_length:
            raise SchemaViolationError(
                f"Field '{self.name}': length {length} exceeds {max_length} for type {column_type.tag}")

        object.__setattr__(self, "column_type", column_type)
        object.__setattr__(self, "length", length)
        object.__setattr__(self, "decimal_count", decimal_count)

    @property
    def tag(self) -> str:
        return self.column_type.tag


@dataclass
class DBFConfig:
    """
    Encoding and null value settings shared by a header and its records.

    encoding_forced is set when the caller or a .CPG sidecar declared the
    encoding; the language driver byte is then ignored.
    """
    encoding: str = DEFAULT_ENCODING
    encoding_forced: bool = False
    null_values: Dict[DBFColumnType, str] = field(default_factory=dict)

    @classmethod
    def forced(cls, encoding: str) -> "DBFConfig":
        return cls(encoding=normalize_encoding(encoding), encoding_forced=True)

    def resolve_language_driver(self, language_driver: int) -> str:
        """
        Pick the encoding for a file whose header carries this language driver.

        Args:
            language_driver: Byte 29 of the file header

        Returns:
            The encoding now in effect
        """
        if self.encoding_forced:
            return self.encoding

        codec = lookup_language_driver(language_driver)
        if codec is not None and is_encoding_available(codec):
            self.encoding = codec
        else:
            self.encoding = DEFAULT_ENCODING
        logger.debug("Language driver 0x%02X resolved to %s", language_driver, self.encoding)
        return self.encoding


class HeaderState(Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


def _read_up_to(stream: BinaryIO, size: int) -> bytes:
    """Read size bytes, stopping early only at end of stream."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _stream_length(stream: BinaryIO) -> Optional[int]:
    """Total stream length, or None for forward-only streams."""
    if not stream.seekable():
        return None
    position = stream.tell()
    end = stream.seek(0, os.SEEK_END)
    stream.seek(position)
    return end


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _records_in_stream(stream_length: int, header_length: int, record_length: int) -> int:
    """
    Count the records stored after the header.

    The trailing 0x1A byte is subtracted and the result rounded, so files
    written without the end marker count the same.
    """
    if record_length <= 0:
        return 0
    return max(0, _round_half_up((stream_length - header_length - 1) / record_length))


class DBFHeader:
    """
    Represents the header of a DBF file: file level metadata plus the
    ordered column descriptors.

    A header is locked once a record is bound to it, once it has been
    written and once it has been read from a file. Columns cannot be
    added or removed while it is locked, since record offsets would no
    longer match the data already on disk.
    """

    def __init__(self, config: Optional[DBFConfig] = None):
        self.config = config if config is not None else DBFConfig()
        self.update_date: Optional[datetime.date] = datetime.date.today()
        self.language_driver = language_driver_for(self.config.encoding)
        self.dirty = False
        self._columns: List[DBFColumn] = []
        self._record_count = 0
        self._record_length = 1  # First byte is delete flag
        self._header_length = DBF_FILE_DESCRIPTOR_SIZE
        self._state = HeaderState.UNLOCKED
        self._name_index: Optional[Dict[str, int]] = None
        self._empty_record: Optional[bytes] = None

    # Column collection
    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self) -> Iterator[DBFColumn]:
        return iter(self._columns)

    def __getitem__(self, index: int) -> DBFColumn:
        return self._columns[index]

    @property
    def columns(self) -> Tuple[DBFColumn, ...]:
        return tuple(self._columns)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    @property
    def record_length(self) -> int:
        """Size of one record in bytes: all fields + 1 byte delete flag."""
        return self._record_length

    @property
    def header_length(self) -> int:
        return self._header_length

    @property
    def record_count(self) -> int:
        return self._record_count

    @record_count.setter
    def record_count(self, value: int) -> None:
        # Forward-only writers cannot patch the count afterwards, so callers
        # are allowed to declare it up front.
        self._record_count = value
        self.dirty = True

    # Lock state
    @property
    def state(self) -> HeaderState:
        return self._state

    @property
    def locked(self) -> bool:
        return self._state is HeaderState.LOCKED

    def lock(self) -> None:
        self._state = HeaderState.LOCKED

    def unlock(self) -> None:
        """
        Allow structural changes again.

        Use with caution: changing the columns of a header whose records are
        already on disk corrupts the file.
        """
        if self.locked:
            logger.warning("Unlocking DBF header with %d columns", len(self._columns))
        self._state = HeaderState.UNLOCKED

    def _check_unlocked(self) -> None:
        if self.locked:
            raise LockedError(
                "This header is locked and cannot be modified. "
                "Modifying the header would result in a corrupt DBF file.")

    def _structure_changed(self) -> None:
        self._name_index = None
        self._empty_record = None
        self.dirty = True

    # Structure
    def add_column(self, column: DBFColumn) -> DBFColumn:
        """
        Append a column to the header.

        Args:
            column: The column definition

        Returns:
            The column as stored by the header, with its data address set

        Raises:
            LockedError: If the header is locked
            RecordTooLargeError: If the record length would exceed 65535 bytes
        """
        self._check_unlocked()

        if self._record_length + column.length > DBF_MAX_RECORD_LENGTH:
            raise RecordTooLargeError(
                f"Unable to add column '{column.name}'. Adding this column puts the record "
                f"length over the maximum ({DBF_MAX_RECORD_LENGTH} bytes).")
        if self._header_length + DBF_COLUMN_DESCRIPTOR_SIZE > DBF_MAX_HEADER_LENGTH:
            raise RecordTooLargeError(
                f"Unable to add column '{column.name}'. The header cannot describe more columns.")

        placed = replace(column, data_address=self._record_length)
        self._columns.append(placed)
        self._record_length += placed.length
        self._header_length += DBF_COLUMN_DESCRIPTOR_SIZE
        self._structure_changed()
        return placed

    def new_column(self, name: str, column_type: Union[DBFColumnType, str],
                   length: int = 0, decimal_count: int = 0) -> DBFColumn:
        """Create a column and add it to the header."""
        return self.add_column(DBFColumn(name, column_type, length, decimal_count))

    def remove_column(self, index: int) -> DBFColumn:
        """
        Remove a column. Columns after it move down by its length.

        Raises:
            LockedError: If the header is locked
            IndexError: If there is no column at index
        """
        self._check_unlocked()

        index = range(len(self._columns))[index]
        removed = self._columns.pop(index)
        for i in range(index, len(self._columns)):
            shifted = self._columns[i]
            self._columns[i] = replace(shifted, data_address=shifted.data_address - removed.length)

        self._record_length -= removed.length
        self._header_length -= DBF_COLUMN_DESCRIPTOR_SIZE
        self._structure_changed()
        return replace(removed, data_address=0)

    def find_column(self, name: str) -> int:
        """
        Find a column index by name. Case sensitive.

        Returns:
            Zero-based column index, or -1 if not found
        """
        if self._name_index is None:
            self._name_index = {}
            for i, column in enumerate(self._columns):
                self._name_index.setdefault(column.name, i)
        return self._name_index.get(name, -1)

    def get_column(self, name: str) -> Optional[DBFColumn]:
        index = self.find_column(name)
        if index < 0:
            return None
        return self._columns[index]

    @property
    def empty_record(self) -> bytes:
        """
        A record of spaces, used to clear whole records or single fields.
        Shared by every record bound to this header and never modified.
        """
        if self._empty_record is None:
            self._empty_record = b" " * self._record_length
        return self._empty_record

    # Serialization
    def to_bytes(self) -> bytes:
        """
        Serialize the header: 32 byte file header, one 32 byte descriptor
        per column and the 0x0D terminator.
        """
        if self.update_date is not None:
            year = self.update_date.year - 1900
            month = self.update_date.month
            day = self.update_date.day
        else:
            year = month = day = 0

        reserved = bytearray(20)
        reserved[DBF_LANGUAGE_DRIVER_OFFSET - 12] = self.language_driver

        parts = [_FILE_HEADER.pack(
            DBF_FILE_TYPE, year, month, day,
            self._record_count, self._header_length, self._record_length,
            bytes(reserved))]

        for column in self._columns:
            try:
                name = column.name.encode(self.config.encoding)
            except UnicodeEncodeError:
                raise SchemaViolationError(
                    f"Field name '{column.name}' cannot be encoded as {self.config.encoding}")
            if len(name) > DBF_MAX_NAME_LENGTH:
                raise SchemaViolationError(
                    f"Field name '{column.name}' is longer than {DBF_MAX_NAME_LENGTH} bytes "
                    f"in {self.config.encoding}")

            if column.column_type is DBFColumnType.CHARACTER and column.length > DBF_MAX_FIELD_LENGTH:
                # Decimal count doubles as the high byte of the length
                size = struct.pack("<H", column.length)
            else:
                size = bytes([column.length, column.decimal_count])

            parts.append(_COLUMN_DESCRIPTOR.pack(
                name, column.tag.encode("ascii"), column.data_address, size, bytes(14)))

        parts.append(bytes([DBF_HEADER_TERMINATOR]))
        return b"".join(parts)

    def write(self, stream: BinaryIO) -> None:
        """Write the header at the current stream position, then lock it."""
        stream.write(self.to_bytes())
        self.dirty = False
        self.lock()
        logger.debug("Wrote DBF header: %d columns, %d records",
                     len(self._columns), self._record_count)

    def read(self, stream: BinaryIO, stream_length: Optional[int] = None) -> None:
        """
        Read the header from the start of a stream, leaving the stream
        positioned at the first record. Only reads forward, so network
        streams work too.

        Args:
            stream: Binary stream positioned at the start of the file
            stream_length: Total stream size; looked up when the stream can
                seek. Used to recount records when the stored count is 0.

        Raises:
            EOFError: If the stream is empty
            InvalidFormatError: If the data is not a supported DBF header
        """
        buf = _read_up_to(stream, 32)
        if not buf:
            raise EOFError("Stream is empty, there is no DBF header to read")
        if len(buf) < 32:
            raise InvalidFormatError(f"DBF header is truncated ({len(buf)} bytes)")

        (file_type, year, month, day, record_count,
         header_length, record_length, reserved) = _FILE_HEADER.unpack(buf)

        if file_type != DBF_FILE_TYPE:
            raise InvalidFormatError(f"Unsupported DBF file type 0x{file_type:02X}")
        if record_length <= 0:
            raise InvalidFormatError(f"Invalid record length {record_length}")
        if header_length < DBF_FILE_DESCRIPTOR_SIZE:
            raise InvalidFormatError(f"Invalid header length {header_length}")

        # Names and data must be decoded with the resolved encoding
        language_driver = reserved[DBF_LANGUAGE_DRIVER_OFFSET - 12]
        encoding = self.config.resolve_language_driver(language_driver)

        # Descriptors, terminator and any padding up to the first record
        rest = _read_up_to(stream, header_length - 32)
        if len(rest) < header_length - 32:
            raise InvalidFormatError("DBF header is truncated")

        field_count = (header_length - DBF_FILE_DESCRIPTOR_SIZE) // DBF_COLUMN_DESCRIPTOR_SIZE
        columns = []
        data_address = 1  # Stored addresses are not trusted
        for i in range(field_count):
            descriptor = rest[i * DBF_COLUMN_DESCRIPTOR_SIZE:(i + 1) * DBF_COLUMN_DESCRIPTOR_SIZE]
            if descriptor[0] == DBF_HEADER_TERMINATOR:
                break

            raw_name, raw_tag, _, size, _ = _COLUMN_DESCRIPTOR.unpack(descriptor)
            name = raw_name.split(b"\x00", 1)[0].decode(encoding, errors="replace")
            tag = raw_tag.decode("latin-1")

            if tag in ('C', 'c'):
                length = struct.unpack("<H", size)[0]
                decimal_count = 0
            else:
                length = size[0]
                decimal_count = size[1]

            try:
                column = DBFColumn(name, DBFColumnType.from_tag(tag), length, decimal_count, data_address)
            except SchemaViolationError as e:
                raise InvalidFormatError(f"Invalid descriptor for field {i + 1}: {e}") from e
            if column.length != length:
                raise InvalidFormatError(
                    f"Field '{name}' declares length {length}, type {column.tag} requires {column.length}")

            columns.append(column)
            data_address += length

        if data_address != record_length:
            raise InvalidFormatError(
                f"Record length {record_length} does not match the field lengths ({data_address})")

        if record_count == 0:
            if stream_length is None:
                stream_length = _stream_length(stream)
            if stream_length is not None:
                record_count = _records_in_stream(stream_length, header_length, record_length)
                if record_count:
                    logger.warning("Header record count is 0, recounted %d records from file size",
                                   record_count)

        try:
            self.update_date = datetime.date(1900 + year, month, day)
        except ValueError:
            self.update_date = None

        self.language_driver = language_driver
        self._columns = columns
        self._record_count = record_count
        self._header_length = header_length
        self._record_length = record_length
        self._name_index = None
        self._empty_record = None
        self.dirty = False
        self.lock()
        logger.debug("Read DBF header: %d columns, %d records, encoding %s",
                     len(columns), record_count, encoding)


class DBFRecord:
    """
    One record of a DBF file, backed by a fixed size byte buffer.

    Field values are decoded from and encoded into the buffer on demand.
    One record object can be reused to read or write many records: call
    clear() between writes. Creating a record locks its header.
    """

    def __init__(self, header: DBFHeader):
        header.lock()
        self._header = header
        self._data = bytearray(header.empty_record)
        self.record_index = -1  # Zero based; -1 for records not yet written

        # Strings are usually safe to trim, numbers are not
        self.allow_string_truncate = True
        self.allow_decimal_truncate = False
        self.allow_integer_truncate = False

    @property
    def header(self) -> DBFHeader:
        return self._header

    @property
    def data(self) -> bytes:
        return bytes(self._data)

    @property
    def deleted(self) -> bool:
        return self._data[0] == DBF_RECORD_DELETED

    @deleted.setter
    def deleted(self, value: bool) -> None:
        self._data[0] = DBF_RECORD_DELETED if value else DBF_RECORD_ACTIVE

    @property
    def _encoding(self) -> str:
        return self._header.config.encoding

    def column_index(self, name: str) -> int:
        return self._header.find_column(name)

    def _column(self, key: Union[int, str]) -> DBFColumn:
        if isinstance(key, str):
            index = self._header.find_column(key)
            if index < 0:
                raise KeyError(key)
            return self._header[index]
        return self._header[key]

    def _field_bytes(self, column: DBFColumn) -> bytes:
        start = column.data_address
        return bytes(self._data[start:start + column.length])

    def _blank(self, column: DBFColumn) -> None:
        start = column.data_address
        end = start + column.length
        self._data[start:end] = self._header.empty_record[start:end]

    def _put(self, column: DBFColumn, offset: int, value: bytes) -> None:
        start = column.data_address + offset
        self._data[start:start + len(value)] = value

    def _encode(self, column: DBFColumn, text: str) -> bytes:
        try:
            return text.encode(self._encoding)
        except UnicodeEncodeError as e:
            raise InvalidValueError(
                f"Value for field '{column.name}' cannot be encoded as {self._encoding}") from e

    # Setting values
    def set(self, key: Union[int, str], value) -> None:
        """
        Set a field value.

        Args:
            key: Column index or column name
            value: The value; strings are stored per the column type rules.
                None or '' blanks the field (None writes the configured null
                value for the type, if there is one).

        Raises:
            TruncationRejectedError: If the value does not fit and truncation
                is not allowed for it
            InvalidValueError: If a date or number cannot be parsed
            UnsupportedError: For memo fields, and for binary fields (use
                set_binary)
        """
        column = self._column(key)
        column_type = column.column_type

        if column_type is DBFColumnType.MEMO:
            raise UnsupportedError(f"Field '{column.name}': memo fields are not supported")
        if column_type is DBFColumnType.BINARY:
            raise UnsupportedError(
                f"Field '{column.name}': binary data cannot be set from a string, use set_binary()")

        if value is None:
            self._set_null(column)
            return

        text = _to_text(value)
        if not text:
            self._blank(column)
        elif column_type is DBFColumnType.CHARACTER:
            self._set_character(column, text)
        elif column_type is DBFColumnType.NUMBER and column.decimal_count > 0:
            self._set_decimal(column, text)
        elif column_type in (DBFColumnType.NUMBER, DBFColumnType.FLOAT):
            self._set_number(column, text)
        elif column_type is DBFColumnType.INTEGER:
            self._set_integer(column, text)
        elif column_type is DBFColumnType.BOOLEAN:
            self._set_boolean(column, text)
        elif column_type is DBFColumnType.DATE:
            self._put(column, 0, _date_bytes(_parse_date(column, text)))
        else:
            raise UnsupportedError(f"Unrecognized column type: {column_type}")

    def _set_null(self, column: DBFColumn) -> None:
        null_value = self._header.config.null_values.get(column.column_type)
        if null_value is None:
            self._blank(column)
            return

        encoded = self._encode(column, null_value)
        if len(encoded) > column.length:
            raise TruncationRejectedError(
                f"Null value '{null_value}' does not fit field '{column.name}'")
        self._blank(column)
        self._put(column, 0, encoded)

    def _set_character(self, column: DBFColumn, text: str) -> None:
        encoded = self._encode(column, text)
        if len(encoded) > column.length and not self.allow_string_truncate:
            raise TruncationRejectedError(
                f"Value exceeds length {column.length} of field '{column.name}'. "
                f"String truncation would occur and allow_string_truncate is False.")

        self._blank(column)
        self._put(column, 0, encoded[:column.length])

    def _set_number(self, column: DBFColumn, text: str) -> None:
        """Right-justify a number with no fixed decimal places."""
        text = _check_number(column, text)
        encoded = text.encode("ascii")

        if len(encoded) > column.length:
            if not self.allow_integer_truncate:
                raise TruncationRejectedError(
                    f"Value '{text}' does not fit field '{column.name}' ({column.length} digits) "
                    f"and allow_integer_truncate is False.")
            # Destructive: the leading (most significant) digits are dropped
            encoded = encoded[-column.length:]

        self._blank(column)
        self._put(column, column.length - len(encoded), encoded)

    def _set_decimal(self, column: DBFColumn, text: str) -> None:
        """Lay out [spaces][integer digits].[decimal digits][zeros]."""
        text = _check_number(column, text)
        integer_part, _, decimal_part = text.partition('.')
        integer_width = column.length - column.decimal_count - 1

        if len(decimal_part) > column.decimal_count and not self.allow_decimal_truncate:
            raise TruncationRejectedError(
                f"Value '{text}' has more than {column.decimal_count} decimals for field "
                f"'{column.name}' and allow_decimal_truncate is False.")
        if len(integer_part) > integer_width and not self.allow_integer_truncate:
            raise TruncationRejectedError(
                f"Integer part of '{text}' does not fit field '{column.name}' ({integer_width} digits) "
                f"and allow_integer_truncate is False.")

        # Same policy as _set_number: overflowing leading digits are dropped
        integer_part = integer_part[-integer_width:]
        decimal_part = decimal_part[:column.decimal_count]

        laid_out = (integer_part.rjust(integer_width) + '.' +
                    decimal_part.ljust(column.decimal_count, '0'))
        self._put(column, 0, laid_out.encode("ascii"))

    def _set_integer(self, column: DBFColumn, text: str) -> None:
        # Stored as a 4 byte little endian binary integer, not as text
        try:
            number = int(text)
        except ValueError:
            raise InvalidValueError(f"Field '{column.name}': '{text}' is not an integer")
        if not -2 ** 31 <= number < 2 ** 31:
            raise InvalidValueError(
                f"Field '{column.name}': {number} does not fit a signed 32 bit integer")
        self._put(column, 0, _INTEGER.pack(number))

    def _set_boolean(self, column: DBFColumn, text: str) -> None:
        token = text.lower()
        if token in _TRUE_TOKENS:
            flag = 'T'
        elif token in _UNKNOWN_TOKENS:
            flag = '?'
        else:
            flag = 'F'
        self._data[column.data_address] = ord(flag)

    def set_date(self, key: Union[int, str], value: Optional[datetime.date]) -> None:
        """
        Set a date field from a date object. None blanks the field.

        Raises:
            UnsupportedError: If the column is not a date column
        """
        column = self._column(key)
        if column.column_type is not DBFColumnType.DATE:
            raise UnsupportedError(f"Field '{column.name}' is not a date column")

        if value is None:
            self._blank(column)
            return
        if isinstance(value, datetime.datetime):
            value = value.date()
        self._put(column, 0, _date_bytes(value))

    def set_binary(self, key: Union[int, str], value: bytes) -> None:
        """Copy raw bytes into a binary field, truncated or NUL padded to its length."""
        column = self._column(key)
        if column.column_type is not DBFColumnType.BINARY:
            raise UnsupportedError(f"Field '{column.name}' is not a binary column")
        self._put(column, 0, bytes(value[:column.length]).ljust(column.length, b"\x00"))

    # Getting values
    def get(self, key: Union[int, str]) -> str:
        """
        Get a field value as a string.

        Character values lose their trailing padding, other text types are
        stripped on both sides. Integers are rendered in decimal. A field
        equal to the configured null value for its type reads as ''.

        Raises:
            UnsupportedError: For memo fields, and for binary fields (use
                get_binary)
        """
        column = self._column(key)
        column_type = column.column_type

        if column_type is DBFColumnType.MEMO:
            raise UnsupportedError(f"Field '{column.name}': memo fields are not supported")
        if column_type is DBFColumnType.BINARY:
            raise UnsupportedError(
                f"Field '{column.name}': binary data cannot be read as a string, use get_binary()")

        raw = self._field_bytes(column)
        if column_type is DBFColumnType.INTEGER:
            return str(_INTEGER.unpack(raw)[0])

        value = raw.decode(self._encoding, errors="replace")
        if column_type is DBFColumnType.CHARACTER:
            value = value.rstrip(" \x00")
        else:
            value = value.strip(" \x00")

        null_value = self._header.config.null_values.get(column_type)
        if null_value is not None and value == null_value.strip():
            return ""
        return value

    def get_date(self, key: Union[int, str]) -> Optional[datetime.date]:
        """
        Get a date field as a date object, or None when the field is blank.

        Raises:
            UnsupportedError: If the column is not a date column
            InvalidValueError: If the stored text is not a yyyyMMdd date
        """
        column = self._column(key)
        if column.column_type is not DBFColumnType.DATE:
            raise UnsupportedError(f"Field '{column.name}' is not a date column")

        text = self._field_bytes(column).decode("ascii", errors="replace").strip(" \x00")
        if not text:
            return None
        try:
            return datetime.datetime.strptime(text, "%Y%m%d").date()
        except ValueError:
            raise InvalidValueError(f"Field '{column.name}': '{text}' is not a valid date")

    def get_binary(self, key: Union[int, str]) -> bytes:
        column = self._column(key)
        if column.column_type is not DBFColumnType.BINARY:
            raise UnsupportedError(f"Field '{column.name}' is not a binary column")
        return self._field_bytes(column)

    def __getitem__(self, key: Union[int, str]) -> str:
        return self.get(key)

    def __setitem__(self, key: Union[int, str], value) -> None:
        self.set(key, value)

    def to_dict(self) -> Dict[str, Union[str, bytes, None]]:
        """Map column names to values. Binary fields give bytes, memo fields None."""
        values = {}
        for i, column in enumerate(self._header):
            if column.column_type is DBFColumnType.MEMO:
                values[column.name] = None
            elif column.column_type is DBFColumnType.BINARY:
                values[column.name] = self.get_binary(i)
            else:
                values[column.name] = self.get(i)
        return values

    def clear(self) -> None:
        """Blank every field, clear the delete flag and forget the record index."""
        self._data[:] = self._header.empty_record
        self.record_index = -1

    def __str__(self) -> str:
        return self._data.decode(self._encoding, errors="replace")

    # Stream I/O
    def read_from(self, stream: BinaryIO) -> bool:
        """
        Fill the record from the stream.

        Returns:
            False if the stream ended before a whole record; the record is
            then left unchanged
        """
        chunk = _read_up_to(stream, len(self._data))
        if len(chunk) < len(self._data):
            return False
        self._data[:] = chunk
        return True

    def write_to(self, stream: BinaryIO, clear_after_write: bool = False) -> None:
        stream.write(self._data)
        if clear_after_write:
            self.clear()

    def _load_field(self, column: DBFColumn, raw: bytes) -> None:
        self._put(column, 0, raw)


def _to_text(value) -> str:
    """Convert a Python value to the text form the codec works with."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'T' if value else 'F'
    if isinstance(value, datetime.datetime):
        value = value.date()
    if isinstance(value, datetime.date):
        return _date_bytes(value).decode("ascii")
    return str(value)


def _date_bytes(value: datetime.date) -> bytes:
    return f"{value.year:04d}{value.month:02d}{value.day:02d}".encode("ascii")


def _check_number(column: DBFColumn, text: str) -> str:
    text = text.strip()
    if not _NUMBER_PATTERN.match(text):
        raise InvalidValueError(f"Field '{column.name}': '{text}' is not a number")
    return text


def _parse_date(column: DBFColumn, text: str) -> datetime.date:
    """
    Parse a date string.

    Supports formats:
    - YYYYMMDD (e.g., '20220825')
    - YYYY-MM-DD (e.g., '2022-08-25')
    - MM/DD/YYYY (e.g., '08/25/2022')
    """
    s = text.strip()
    for date_format in _DATE_FORMATS:
        try:
            return datetime.datetime.strptime(s, date_format).date()
        except ValueError:
            continue
    raise InvalidValueError(f"Field '{column.name}': date could not be parsed from '{text}'")


class DBFFile:
    """
    A DBF file (or stream) opened for reading or read/write.

    The header is read on open; an empty file starts a new, unlocked
    header. Records are read sequentially with read_next() or by index
    with read(). write() appends records whose record_index is -1 and
    updates the others. Forward-only streams (seekable() is False) support
    read_next() and appending writes only.
    """

    def __init__(self, path: Optional[str] = None, mode: str = "r",
                 encoding: Optional[str] = None, read_cpg: bool = True):
        """
        Args:
            path: Path to the DBF file; may be None when a stream is bound
                with open(stream)
            mode: 'r' for read-only or 'rw' for read/write
            encoding: Codec to use regardless of the language driver byte
            read_cpg: Look for a .CPG file beside the DBF declaring the
                encoding; ignored when encoding is given

        Raises:
            ValueError: If mode is neither 'r' nor 'rw'
            EncodingUnavailableError: If the declared encoding is not supported
        """
        if mode not in ("r", "rw"):
            raise ValueError("File access must be either 'r' or 'rw'")

        if encoding is None and read_cpg and path is not None:
            encoding = read_declared_encoding(path)
        if encoding is not None:
            encoding = normalize_encoding(encoding)

        self.path = path
        self.mode = mode
        self._declared_encoding = encoding
        self.header = DBFHeader(self._new_config())
        self._stream: Optional[BinaryIO] = None
        self._owns_stream = False
        self._forward_only = False
        self._header_written = False
        self._modified = False
        self._records_read = 0

    def _new_config(self) -> DBFConfig:
        if self._declared_encoding is not None:
            return DBFConfig(encoding=self._declared_encoding, encoding_forced=True)
        return DBFConfig()

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def is_read_only(self) -> bool:
        return self.mode == "r"

    @property
    def is_forward_only(self) -> bool:
        return self._forward_only

    @property
    def encoding(self) -> str:
        return self.header.config.encoding

    def open(self, stream: Optional[BinaryIO] = None) -> "DBFFile":
        """
        Open the file, or bind a caller supplied stream, and read the header.

        A missing file is created in 'rw' mode. A caller supplied stream is
        not closed by close().

        Raises:
            InvalidFormatError: If the file is not a supported DBF file
        """
        if self._stream is not None:
            raise ValueError("DBF file is already open")

        if stream is None:
            if self.path is None:
                raise ValueError("No path or stream to open")
            if self.is_read_only:
                stream = open(self.path, "rb")
            elif os.path.exists(self.path):
                stream = open(self.path, "r+b")
            else:
                stream = open(self.path, "w+b")
            self._owns_stream = True
        else:
            self._owns_stream = False

        self._stream = stream
        self._forward_only = not stream.seekable()
        self._records_read = 0
        self._header_written = False
        self._modified = False
        self.header = DBFHeader(self._new_config())

        try:
            self.header.read(stream)
            self._header_written = True
        except EOFError:
            # Nothing to read yet, this is a new file
            self.header = DBFHeader(self._new_config())
        except Exception:
            if self._owns_stream:
                stream.close()
            self._stream = None
            raise

        logger.info("Opened DBF %s (%s): %d columns, %d records, encoding %s",
                    self.path or "<stream>", self.mode, self.header.column_count,
                    self.header.record_count, self.encoding)
        return self

    def close(self) -> None:
        """
        Write the header if it changed, add the end of file marker after
        writes, and release the stream.
        """
        if self._stream is None:
            return

        try:
            if not self.is_read_only:
                if self.header.dirty:
                    self.write_header()
                if self._modified and not self._forward_only:
                    self._write_eof_marker()
                self._stream.flush()
        finally:
            if self._owns_stream:
                self._stream.close()
            self._stream = None
            self._owns_stream = False
            self._header_written = False
            self._modified = False
            self._records_read = 0
            self.header = DBFHeader(self._new_config())
            logger.info("Closed DBF %s", self.path or "<stream>")

    def __enter__(self) -> "DBFFile":
        if self._stream is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[DBFRecord]:
        """Yield the records from the current position to the end."""
        while True:
            record = self.read_next()
            if record is None:
                return
            yield record

    # Checks
    def _check_open(self) -> None:
        if self._stream is None:
            raise ValueError("DBF file is not open")

    def _check_writable(self) -> None:
        if self.is_read_only:
            raise UnsupportedError("Trying to write to a read-only file")

    def _check_seekable(self) -> None:
        if self._forward_only:
            raise UnsupportedError("Random access needs a seekable stream, use read_next()")

    def _check_record(self, record: DBFRecord) -> None:
        # Records from another header are fine as long as the layout matches
        other = record.header
        if other is not self.header and (other.column_count != self.header.column_count or
                                         other.record_length != self.header.record_length):
            raise SchemaMismatchError(
                "Record does not have the same size and number of columns as the header. "
                "Have you mixed up DBF file objects?")

    def _length(self) -> int:
        return _stream_length(self._stream)

    # Reading
    def read_next(self, record: Optional[DBFRecord] = None) -> Optional[DBFRecord]:
        """
        Read the next record.

        Args:
            record: Record to fill; a new one is created when omitted

        Returns:
            The filled record, or None at end of data
        """
        self._check_open()
        if record is None:
            record = DBFRecord(self.header)
        else:
            self._check_record(record)

        if not record.read_from(self._stream):
            return None

        if self._forward_only:
            record.record_index = self._records_read
            self._records_read += 1
        else:
            position = self._stream.tell()
            record.record_index = (position - self.header.header_length) // self.header.record_length - 1
        return record

    def read(self, index: int, record: Optional[DBFRecord] = None) -> Optional[DBFRecord]:
        """
        Read the record at a zero-based index.

        Returns:
            The filled record, or None when there is no such record (a
            given record is then left unchanged)
        """
        self._check_open()
        self._check_seekable()
        if record is None:
            record = DBFRecord(self.header)
        else:
            self._check_record(record)

        position = self.header.header_length + index * self.header.record_length
        # Subtract the trailing 0x1A byte
        if index < 0 or self._length() - 1 <= position:
            return None

        self._stream.seek(position)
        if not record.read_from(self._stream):
            return None
        record.record_index = index
        return record

    def read_value(self, row_index: int, key: Union[int, str]) -> Optional[str]:
        """
        Read one field straight from the file without loading the record.

        Returns:
            The decoded value (as DBFRecord.get), or None past the end of data
        """
        self._check_open()
        self._check_seekable()

        scratch = DBFRecord(self.header)
        column = scratch._column(key)
        position = (self.header.header_length + row_index * self.header.record_length +
                    column.data_address)
        if row_index < 0 or self._length() - 1 <= position:
            return None

        self._stream.seek(position)
        raw = _read_up_to(self._stream, column.length)
        if len(raw) < column.length:
            return None
        scratch._load_field(column, raw)
        return scratch.get(key)

    # Writing
    def write_header(self) -> None:
        """
        Write the header. Seekable streams get it rewritten at offset 0,
        forward-only streams only before the first record.
        """
        self._check_open()
        self._check_writable()

        if not self._forward_only:
            self._stream.seek(0)
            self.header.write(self._stream)
            self._modified = True
        elif not self._header_written:
            self.header.write(self._stream)
        self._header_written = True

    def write(self, record: DBFRecord, clear_after_write: bool = False) -> None:
        """
        Append a new record (record_index == -1) or update an existing one.
        The header is written first if it has not been yet.
        """
        self._check_open()
        self._check_writable()
        self._check_record(record)

        if not self._header_written:
            self.write_header()

        if record.record_index < 0:
            if self._forward_only:
                record.write_to(self._stream)
            else:
                # The stored count can be set by the caller, count what is on disk
                record.record_index = _records_in_stream(
                    self._length(), self.header.header_length, self.header.record_length)
                self.update(record)
            self.header.record_count = self.header.record_count + 1
        else:
            self.update(record)

        self._modified = True
        if clear_after_write:
            record.clear()

    def update(self, record: DBFRecord) -> None:
        """
        Overwrite the record at record.record_index.

        Raises:
            ValueError: If the record has no index
            IndexError: If the index is past the end of the file
        """
        self._check_open()
        self._check_writable()
        self._check_seekable()

        if not self._header_written:
            self.write_header()

        if record.record_index < 0:
            raise ValueError("Record index is not set, unable to update record. "
                             "Use write() to add a new record.")
        self._check_record(record)

        position = self.header.header_length + record.record_index * self.header.record_length
        if self._length() < position:
            raise IndexError(f"Invalid record position {record.record_index}, unable to save record")

        self._stream.seek(position)
        record.write_to(self._stream)
        self._modified = True

    def _write_eof_marker(self) -> None:
        length = self._length()
        data_length = length - self.header.header_length
        if data_length < 0 or data_length % self.header.record_length != 0:
            return
        self._stream.seek(length)
        self._stream.write(bytes([DBF_EOF_MARKER]))


# Helper functions
def read_dbf_header(stream: BinaryIO, config: Optional[DBFConfig] = None) -> DBFHeader:
    """Read a DBF header from the start of a stream."""
    header = DBFHeader(config)
    header.read(stream)
    return header


def write_dbf_header(stream: BinaryIO, header: DBFHeader) -> None:
    """Write the DBF header at the current stream position."""
    header.write(stream)


def dbf_file_open(filename: str, mode: str = "r", encoding: Optional[str] = None) -> DBFFile:
    """
    Open an existing DBF file.

    Args:
        filename: The path to the DBF file
        mode: 'r' or 'rw'
        encoding: Forced encoding; otherwise a .CPG sidecar or the language
            driver byte decides

    Returns:
        An open DBFFile
    """
    if not os.path.exists(filename):
        raise FileNotFoundError(f"DBF file not found: {filename}")
    return DBFFile(filename, mode, encoding).open()


def dbf_file_create(filename: str, columns: List[DBFColumn],
                    encoding: Optional[str] = None) -> DBFFile:
    """
    Create a new DBF file with the given columns, replacing any existing file.

    Returns:
        A DBFFile opened in read/write mode with the header already written
    """
    with open(filename, "wb"):
        pass

    dbf = DBFFile(filename, "rw", encoding).open()
    for column in columns:
        dbf.header.add_column(column)
    dbf.write_header()
    return dbf


def build_field_spec(column: DBFColumn) -> str:
    """
    Build a field specification string (e.g., 'C(30)' or 'N(10,2)').
    """
    spec = f"{column.tag}({column.length}"
    if column.decimal_count > 0:
        spec += f",{column.decimal_count}"
    spec += ")"
    return spec


def parse_field_spec(spec: str) -> Tuple[DBFColumnType, int, int]:
    """
    Parse a field specification string.

    Args:
        spec: Field specification string (e.g., 'C(30)' or 'N(10,2)')

    Returns:
        Tuple of (column_type, length, decimal_count)

    Raises:
        SchemaViolationError: If the string is not a valid specification
    """
    match = re.match(r"^\s*([A-Za-z])\s*\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)\s*$", spec)
    if not match:
        raise SchemaViolationError(f"Invalid field specification '{spec}'")

    column_type = DBFColumnType.from_tag(match.group(1))
    length = int(match.group(2))
    decimal_count = int(match.group(3)) if match.group(3) else 0
    return (column_type, length, decimal_count)
