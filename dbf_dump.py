#!/usr/bin/env python3
"""
Print the structure and records of a DBF file.

Usage:
    python dbf_dump.py samples/GAMES.DBF
    python dbf_dump.py samples/GAMES.DBF --limit 10 --encoding cp437
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from dbf_errors import DBFError
from dbf_module import DBFFile, DBFHeader, build_field_spec


def print_structure(header: DBFHeader, encoding: str) -> None:
    """Print the header metadata and one line per column."""
    print(f"Records:        {header.record_count}")
    print(f"Header length:  {header.header_length}")
    print(f"Record length:  {header.record_length}")
    print(f"Last update:    {header.update_date.isoformat() if header.update_date else '-'}")
    print(f"Language:       0x{header.language_driver:02X} ({encoding})")
    print()
    print(f"{'#':>3}  {'Name':<11}  {'Type':<10}  Offset")
    print("-" * 36)
    for i, column in enumerate(header):
        print(f"{i + 1:>3}  {column.name:<11}  {build_field_spec(column):<10}  {column.data_address}")


def dump(dbf: DBFFile, limit: Optional[int] = None) -> int:
    """
    Print the records of an open DBF file.

    Returns:
        The number of records printed
    """
    names = [column.name for column in dbf.header]
    printed = 0
    for record in dbf:
        if limit is not None and printed >= limit:
            break
        values = record.to_dict()
        flag = "*" if record.deleted else " "
        fields = ", ".join(f"{name}={values[name]!r}" for name in names)
        print(f"{flag}{record.record_index:>6}: {fields}")
        printed += 1
    return printed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Dump the structure and records of a DBF file.")
    parser.add_argument("path", help="DBF file to read")
    parser.add_argument("--mode", choices=("r", "rw"), default="r",
                        help="access mode (default: r)")
    parser.add_argument("--encoding", help="force a codec instead of the language driver byte")
    parser.add_argument("--limit", type=int, help="print at most this many records")
    parser.add_argument("--no-cpg", action="store_true", help="ignore a .CPG file beside the DBF")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    # Opening in rw mode would create a missing file
    if not os.path.exists(args.path):
        print(f"Error: File '{args.path}' not found.")
        return 1

    try:
        with DBFFile(args.path, args.mode, args.encoding, read_cpg=not args.no_cpg) as dbf:
            print(f"DBF file: {args.path}")
            print("=" * 60)
            print_structure(dbf.header, dbf.encoding)
            print()
            printed = dump(dbf, args.limit)
            print()
            print(f"{printed} record(s) printed")
    except FileNotFoundError:
        print(f"Error: File '{args.path}' not found.")
        return 1
    except DBFError as e:
        print(f"Error reading DBF file: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
