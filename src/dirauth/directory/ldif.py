"""
DirAuth LDIF Reader

Reads LDAP Data Interchange Format content records (RFC 2849) so a
simulated directory can be seeded from the same kind of file an
embedded test directory server would load.

Supported:
- "#" comments and "version: 1" headers
- Line folding (continuation lines start with a single space)
- "attr: value" and base64 "attr:: value" lines
- "changetype: add" (other change types are rejected)
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Dict, Iterator, List, Tuple, Union

LdifRecord = Tuple[str, Dict[str, List[str]]]


class LdifError(ValueError):
    """LDIF content cannot be parsed."""

    def __init__(self, line_number: int, reason: str) -> None:
        super().__init__(f"LDIF line {line_number}: {reason}")
        self.line_number = line_number


def _unfold(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (line number, logical line), joining folded lines."""
    current = None
    start = 0
    for number, line in enumerate(text.splitlines(), start=1):
        if line.startswith(" ") and current is not None:
            current += line[1:]
            continue
        if current is not None:
            yield start, current
        current, start = line, number
    if current is not None:
        yield start, current


def parse_ldif(text: str) -> Iterator[LdifRecord]:
    """
    Parse LDIF text into (dn, attributes) records.

    Args:
        text: LDIF content

    Yields:
        (dn, {attribute: [values]}) for each record, in file order

    Raises:
        LdifError: On malformed lines or unsupported change records
    """
    dn = None
    attributes: Dict[str, List[str]] = {}

    for number, line in _unfold(text):
        if line.startswith("#"):
            continue
        if not line.strip():
            if dn is not None:
                yield dn, attributes
            dn, attributes = None, {}
            continue

        name, value = _parse_line(number, line)
        lower = name.lower()

        if dn is None:
            if lower == "version":
                continue
            if lower != "dn":
                raise LdifError(number, f"record must start with dn, got {name!r}")
            dn = value
            continue

        if lower == "changetype":
            if value.strip().lower() != "add":
                raise LdifError(number, f"unsupported changetype {value!r}")
            continue
        if lower == "dn":
            raise LdifError(number, "dn inside a record (missing blank line?)")

        attributes.setdefault(name, []).append(value)

    if dn is not None:
        yield dn, attributes


def _parse_line(number: int, line: str) -> Tuple[str, str]:
    if ":" not in line:
        raise LdifError(number, f"missing ':' in {line!r}")
    name, rest = line.split(":", 1)
    if not name:
        raise LdifError(number, "empty attribute name")

    if rest.startswith(":"):
        try:
            raw = base64.b64decode(rest[1:].strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise LdifError(number, f"invalid base64 value for {name}") from e
        try:
            return name, raw.decode("utf-8")
        except UnicodeDecodeError:
            return name, raw.decode("latin-1")
    if rest.startswith("<"):
        raise LdifError(number, f"URL values are not supported ({name})")
    return name, rest.lstrip(" ")


def read_ldif(path: Union[str, Path]) -> List[LdifRecord]:
    """Read all records from an LDIF file."""
    return list(parse_ldif(Path(path).read_text(encoding="utf-8")))
