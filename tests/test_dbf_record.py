"""
Test file for reading and writing field values in DBF records.
"""

import datetime
import io
import unittest
from dbf_errors import (
    InvalidValueError, TruncationRejectedError, UnsupportedError
)
from dbf_module import (
    DBFColumnType, DBFConfig, DBFHeader, DBFRecord
)


def field_bytes(record, name):
    column = record.header.get_column(name)
    return record.data[column.data_address:column.data_address + column.length]


class DBFRecordTestCase(unittest.TestCase):

    def setUp(self):
        self.header = DBFHeader()
        self.header.new_column("NAME", DBFColumnType.CHARACTER, 10)
        self.header.new_column("QTY", DBFColumnType.NUMBER, 5)
        self.header.new_column("PRICE", DBFColumnType.NUMBER, 10, 2)
        self.header.new_column("COUNT", DBFColumnType.INTEGER)
        self.header.new_column("ACTIVE", DBFColumnType.BOOLEAN)
        self.header.new_column("BORN", DBFColumnType.DATE)
        self.header.new_column("RATIO", DBFColumnType.FLOAT, 8)
        self.header.new_column("NOTES", DBFColumnType.MEMO)
        self.header.new_column("RAW", DBFColumnType.BINARY)
        self.record = DBFRecord(self.header)


class TestDBFRecordBasics(DBFRecordTestCase):
    """Test cases for the record buffer."""

    def test_new_record_is_blank(self):
        self.assertEqual(self.record.data, self.header.empty_record)
        self.assertEqual(self.record.record_index, -1)
        self.assertFalse(self.record.deleted)

    def test_truncation_defaults(self):
        self.assertTrue(self.record.allow_string_truncate)
        self.assertFalse(self.record.allow_decimal_truncate)
        self.assertFalse(self.record.allow_integer_truncate)

    def test_deleted_flag(self):
        self.record.deleted = True
        self.assertEqual(self.record.data[0:1], b"*")
        self.assertTrue(self.record.deleted)
        self.record.deleted = False
        self.assertEqual(self.record.data[0:1], b" ")

    def test_access_by_name_and_index(self):
        self.record["NAME"] = "Widget"
        self.assertEqual(self.record[0], "Widget")
        self.assertEqual(self.record.get("NAME"), "Widget")
        self.assertEqual(self.record.column_index("QTY"), 1)
        with self.assertRaises(KeyError):
            self.record.get("MISSING")

    def test_clear(self):
        """After clear() every field is blank again."""
        self.record.set("NAME", "Widget")
        self.record.set("QTY", "12")
        self.record.set("PRICE", "9.99")
        self.record.set("COUNT", "7")
        self.record.set("ACTIVE", "T")
        self.record.set("BORN", "20240115")
        self.record.set("RATIO", "0.5")
        self.record.deleted = True
        self.record.record_index = 4

        self.record.clear()

        for name in ("NAME", "QTY", "PRICE", "ACTIVE", "BORN", "RATIO"):
            self.assertEqual(self.record.get(name), "", name)
        # Integers are binary, a blank field is just four spaces
        self.assertEqual(field_bytes(self.record, "COUNT"), b"    ")
        self.assertFalse(self.record.deleted)
        self.assertEqual(self.record.record_index, -1)

    def test_blank_values(self):
        self.record.set("QTY", "12")
        self.record.set("QTY", "")
        self.assertEqual(field_bytes(self.record, "QTY"), b"     ")
        self.record.set("COUNT", "5")
        self.record.set("COUNT", None)
        self.assertEqual(field_bytes(self.record, "COUNT"), b"    ")

    def test_to_dict(self):
        self.record.set("NAME", "Widget")
        self.record.set("COUNT", 3)
        values = self.record.to_dict()
        self.assertEqual(values["NAME"], "Widget")
        self.assertEqual(values["COUNT"], "3")
        self.assertEqual(values["QTY"], "")
        self.assertIsNone(values["NOTES"])
        self.assertEqual(values["RAW"], b" ")

    def test_str(self):
        self.record.set("NAME", "Widget")
        self.assertTrue(str(self.record).startswith(" Widget    "))


class TestCharacterFields(DBFRecordTestCase):
    """Test cases for Character fields."""

    def test_padding(self):
        self.record.set("NAME", "abc")
        self.assertEqual(field_bytes(self.record, "NAME"), b"abc       ")
        self.assertEqual(self.record.get("NAME"), "abc")

    def test_leading_spaces_kept(self):
        self.record.set("NAME", "  abc")
        self.assertEqual(self.record.get("NAME"), "  abc")

    def test_truncation(self):
        self.record.set("NAME", "abcdefghijklmnop")
        self.assertEqual(self.record.get("NAME"), "abcdefghij")

        self.record.allow_string_truncate = False
        with self.assertRaises(TruncationRejectedError):
            self.record.set("NAME", "abcdefghijk")
        self.assertEqual(self.record.get("NAME"), "abcdefghij")

    def test_overwrite_shorter(self):
        self.record.set("NAME", "long value")
        self.record.set("NAME", "short")
        self.assertEqual(self.record.get("NAME"), "short")

    def test_wide_column(self):
        header = DBFHeader()
        header.new_column("TEXT", DBFColumnType.CHARACTER, 300)
        record = DBFRecord(header)
        record.set("TEXT", "x" * 300)
        self.assertEqual(record.get("TEXT"), "x" * 300)

    def test_encoding(self):
        header = DBFHeader(DBFConfig.forced("utf-8"))
        header.new_column("NAME", DBFColumnType.CHARACTER, 10)
        record = DBFRecord(header)
        record.set("NAME", "héllo")
        self.assertEqual(field_bytes(record, "NAME"), "héllo".encode("utf-8") + b"    ")
        self.assertEqual(record.get("NAME"), "héllo")

    def test_unencodable_value(self):
        with self.assertRaises(InvalidValueError):
            self.record.set("NAME", "日本")


class TestNumberFields(DBFRecordTestCase):
    """Test cases for Number and Float fields."""

    def test_integer_number(self):
        self.record.set("QTY", "42")
        self.assertEqual(field_bytes(self.record, "QTY"), b"   42")
        self.assertEqual(self.record.get("QTY"), "42")

    def test_non_string_value(self):
        self.record.set("QTY", 7)
        self.assertEqual(self.record.get("QTY"), "7")

    def test_integer_overflow(self):
        with self.assertRaises(TruncationRejectedError):
            self.record.set("QTY", "123456")

    def test_integer_truncation_keeps_low_digits(self):
        self.record.allow_integer_truncate = True
        self.record.set("QTY", "123456")
        self.assertEqual(self.record.get("QTY"), "23456")

    def test_decimal_layout(self):
        self.record.set("PRICE", "12.5")
        self.assertEqual(field_bytes(self.record, "PRICE"), b"     12.50")
        self.assertEqual(self.record.get("PRICE"), "12.50")

        self.record.set("PRICE", "-3")
        self.assertEqual(field_bytes(self.record, "PRICE"), b"     -3.00")

    def test_decimal_truncation_rejected(self):
        with self.assertRaises(TruncationRejectedError):
            self.record.set("PRICE", "123.456")

    def test_decimal_truncation_allowed(self):
        self.record.allow_decimal_truncate = True
        self.record.set("PRICE", "123.456")
        self.assertEqual(field_bytes(self.record, "PRICE"), b"    123.45")
        self.assertEqual(self.record.get("PRICE"), "123.45")

    def test_decimal_integer_part_overflow(self):
        with self.assertRaises(TruncationRejectedError):
            self.record.set("PRICE", "12345678.5")
        self.record.allow_integer_truncate = True
        self.record.set("PRICE", "12345678.5")
        self.assertEqual(self.record.get("PRICE"), "2345678.50")

    def test_invalid_number(self):
        for value in ("abc", "1.2.3", "--1", "."):
            with self.assertRaises(InvalidValueError, msg=value):
                self.record.set("QTY", value)
        with self.assertRaises(InvalidValueError):
            self.record.set("PRICE", "12,50")

    def test_float_field(self):
        self.record.set("RATIO", "3.14")
        self.assertEqual(field_bytes(self.record, "RATIO"), b"    3.14")
        self.assertEqual(self.record.get("RATIO"), "3.14")

    def test_null_value(self):
        config = DBFConfig(null_values={DBFColumnType.NUMBER: "-9999"})
        header = DBFHeader(config)
        header.new_column("QTY", DBFColumnType.NUMBER, 5)
        header.new_column("TINY", DBFColumnType.NUMBER, 3)
        record = DBFRecord(header)

        record.set("QTY", None)
        self.assertEqual(field_bytes(record, "QTY"), b"-9999")
        self.assertEqual(record.get("QTY"), "")

        with self.assertRaises(TruncationRejectedError):
            record.set("TINY", None)


class TestIntegerFields(DBFRecordTestCase):
    """Test cases for binary Integer fields."""

    def test_little_endian(self):
        self.record.set("COUNT", "258")
        self.assertEqual(field_bytes(self.record, "COUNT"), b"\x02\x01\x00\x00")
        self.assertEqual(self.record.get("COUNT"), "258")

    def test_negative(self):
        self.record.set("COUNT", "-1")
        self.assertEqual(field_bytes(self.record, "COUNT"), b"\xff\xff\xff\xff")
        self.assertEqual(self.record.get("COUNT"), "-1")

    def test_limits(self):
        self.record.set("COUNT", str(2 ** 31 - 1))
        self.assertEqual(self.record.get("COUNT"), "2147483647")
        self.record.set("COUNT", str(-2 ** 31))
        self.assertEqual(self.record.get("COUNT"), "-2147483648")
        with self.assertRaises(InvalidValueError):
            self.record.set("COUNT", str(2 ** 31))

    def test_value_stored_as_spaces(self):
        """0x20202020 is a valid integer, not a blank field."""
        self.record.set("COUNT", "538976288")
        self.assertEqual(field_bytes(self.record, "COUNT"), b"    ")
        self.assertEqual(self.record.get("COUNT"), "538976288")

    def test_not_a_number(self):
        with self.assertRaises(InvalidValueError):
            self.record.set("COUNT", "12.5")


class TestBooleanFields(DBFRecordTestCase):
    """Test cases for Logical fields."""

    def test_true_tokens(self):
        for value in ("true", "TRUE", "1", "t", "T", "yes", "Y"):
            self.record.set("ACTIVE", value)
            self.assertEqual(self.record.get("ACTIVE"), "T", value)

    def test_unknown_tokens(self):
        for value in (" ", "?"):
            self.record.set("ACTIVE", value)
            self.assertEqual(field_bytes(self.record, "ACTIVE"), b"?")

    def test_everything_else_is_false(self):
        for value in ("false", "0", "no", "n", "F", "maybe"):
            self.record.set("ACTIVE", value)
            self.assertEqual(self.record.get("ACTIVE"), "F", value)

    def test_bool_values(self):
        self.record.set("ACTIVE", True)
        self.assertEqual(self.record.get("ACTIVE"), "T")
        self.record.set("ACTIVE", False)
        self.assertEqual(self.record.get("ACTIVE"), "F")


class TestDateFields(DBFRecordTestCase):
    """Test cases for Date fields."""

    def test_formats(self):
        for value in ("20240115", "2024-01-15", "1/15/2024", "01/15/2024"):
            self.record.set("BORN", value)
            self.assertEqual(field_bytes(self.record, "BORN"), b"20240115", value)

    def test_date_objects(self):
        self.record.set("BORN", datetime.date(1999, 12, 31))
        self.assertEqual(self.record.get("BORN"), "19991231")
        self.record.set_date("BORN", datetime.datetime(2001, 2, 3, 4, 5))
        self.assertEqual(self.record.get_date("BORN"), datetime.date(2001, 2, 3))

    def test_blank_date(self):
        self.assertIsNone(self.record.get_date("BORN"))
        self.record.set_date("BORN", datetime.date(2020, 5, 1))
        self.record.set_date("BORN", None)
        self.assertEqual(self.record.get("BORN"), "")

    def test_invalid_date(self):
        for value in ("2024-13-01", "15.01.2024", "yesterday"):
            with self.assertRaises(InvalidValueError, msg=value):
                self.record.set("BORN", value)

    def test_date_accessors_check_type(self):
        with self.assertRaises(UnsupportedError):
            self.record.get_date("NAME")
        with self.assertRaises(UnsupportedError):
            self.record.set_date("NAME", datetime.date.today())


class TestUnsupportedFields(DBFRecordTestCase):
    """Test cases for Memo and Binary fields."""

    def test_memo(self):
        with self.assertRaises(UnsupportedError):
            self.record.get("NOTES")
        with self.assertRaises(UnsupportedError):
            self.record.set("NOTES", "text")
        with self.assertRaises(UnsupportedError):
            self.record.set("NOTES", None)

    def test_binary_string_access(self):
        with self.assertRaises(UnsupportedError):
            self.record.get("RAW")
        with self.assertRaises(UnsupportedError):
            self.record.set("RAW", "x")

    def test_binary_raw_access(self):
        self.record.set_binary("RAW", b"\x07\x08")
        self.assertEqual(self.record.get_binary("RAW"), b"\x07")
        self.record.set_binary("RAW", b"")
        self.assertEqual(self.record.get_binary("RAW"), b"\x00")
        with self.assertRaises(UnsupportedError):
            self.record.get_binary("NAME")


class TestRecordStreams(DBFRecordTestCase):
    """Test cases for reading and writing record bytes."""

    def test_write_and_read(self):
        self.record.set("NAME", "Widget")
        self.record.set("COUNT", "-5")
        stream = io.BytesIO()
        self.record.write_to(stream)
        self.assertEqual(len(stream.getvalue()), self.header.record_length)

        other = DBFRecord(self.header)
        stream.seek(0)
        self.assertTrue(other.read_from(stream))
        self.assertEqual(other.get("NAME"), "Widget")
        self.assertEqual(other.get("COUNT"), "-5")

    def test_clear_after_write(self):
        self.record.set("NAME", "Widget")
        self.record.write_to(io.BytesIO(), clear_after_write=True)
        self.assertEqual(self.record.get("NAME"), "")

    def test_short_read_leaves_record(self):
        self.record.set("NAME", "Widget")
        self.assertFalse(self.record.read_from(io.BytesIO(b"*short")))
        self.assertEqual(self.record.get("NAME"), "Widget")
        self.assertFalse(self.record.deleted)


if __name__ == "__main__":
    unittest.main()
