"""
Pack Label Codec

All pack labels are 11 characters: a 6-character prefix and a 5-character serial.

Format: KBM2b100001
- K: Pack label marker (1 char)
- B: Supplier code (1 char: B=LegoPlast, R=RePack, X=Testing)
- M: Packaging type (1 char: M=Mailer, B=Box, P=Pouch, T=Tote, G=Garment)
- 2: Size class (1 char: 1=XS ... 5=XL)
- b: Month code (1 char: b=Jan ... p=Dec, vowels skipped)
- 1: Year code (1 char: 1=2026 ... 9=2034, 0=2035, b=2036, c=2037...)
- 00001: Serial (5 chars, base 31, vowels skipped)

Serials are unique per prefix bucket. Allocation of the counter lives in
app.services.serial_allocator; everything here is pure formatting.
"""

from dataclasses import dataclass
from datetime import date
from typing import List


# Month code mapping: lowercase letters skipping vowels, b=Jan ... p=Dec
MONTH_CODES = "bcdfghjklmnp"

# Year code mapping: 1=2026 ... 9=2034, 0=2035, then the extended codes
YEAR_EPOCH = 2026
YEAR_EXTENDED_CODES = "bcdfghjklmnpqrstvwxyz"

# Serial chars: alphanumeric excluding vowels (must match the sequence table order)
SERIAL_CHARS = "0123456789BCDFGHJKLMNPQRSTVWXYZ"
SERIAL_BASE = len(SERIAL_CHARS)
SERIAL_LENGTH = 5
MAX_SERIAL = SERIAL_BASE ** SERIAL_LENGTH - 1  # 28,629,150

LABEL_PREFIX_MARKER = "K"
PREFIX_LENGTH = 6
LABEL_ID_LENGTH = PREFIX_LENGTH + SERIAL_LENGTH


class PackCodecError(ValueError):
    """Base error for malformed pack label input."""
    pass


class SerialOutOfRangeError(PackCodecError):
    """Serial number does not fit in 5 base-31 digits."""
    pass


class InvalidSerialError(PackCodecError):
    """Serial string is not 5 characters from SERIAL_CHARS."""
    pass


class InvalidCategoryCodeError(PackCodecError):
    """Supplier, packaging type or size code is not a single character."""
    pass


class InvalidLabelIdError(PackCodecError):
    """Label ID does not have the K-prefixed 11 character layout."""
    pass


@dataclass(frozen=True)
class PackLabelId:
    """A parsed pack label: 6-char prefix plus 5-char serial."""
    prefix: str
    serial: str

    @property
    def full(self) -> str:
        return compose_label_id(self.prefix, self.serial)

    @property
    def supplier(self) -> str:
        return self.prefix[1]

    @property
    def packaging_type(self) -> str:
        return self.prefix[2]

    @property
    def size(self) -> str:
        return self.prefix[3]

    @property
    def month_code(self) -> str:
        return self.prefix[4]

    @property
    def year_code(self) -> str:
        return self.prefix[5]

    @property
    def serial_number(self) -> int:
        return decode_serial(self.serial)


# ==================== Year/Month Codes ====================

def encode_month(value: date) -> str:
    """Convert a date's month to its code (b=Jan, p=Dec)"""
    return MONTH_CODES[value.month - 1]


def decode_month(code: str) -> int:
    """Parse a month code back to the month number (1-12)"""
    if len(code) != 1 or code not in MONTH_CODES:
        raise PackCodecError(f"Invalid month code: {code!r}")
    return MONTH_CODES.index(code) + 1


def encode_year(year: int, epoch_year: int = YEAR_EPOCH) -> str:
    """
    Convert year to a single character code.

    1=epoch ... 9=epoch+8, 0=epoch+9, then b, c, d... (vowels skipped).
    Years before the epoch clamp to '1'; years past the extended codes
    saturate at 'z'.
    """
    offset = year - epoch_year
    if offset < 0:
        return "1"
    if offset <= 8:
        return str(offset + 1)
    if offset == 9:
        return "0"

    ext_offset = offset - 10
    if ext_offset < len(YEAR_EXTENDED_CODES):
        return YEAR_EXTENDED_CODES[ext_offset]
    return YEAR_EXTENDED_CODES[-1]


def decode_year(code: str, epoch_year: int = YEAR_EPOCH) -> int:
    """
    Parse a year code back to a year.

    A saturated code ('z') decodes to the first year it was issued for.
    """
    if len(code) != 1:
        raise PackCodecError(f"Invalid year code: {code!r}")
    if code.isdigit():
        digit = int(code)
        return epoch_year + (9 if digit == 0 else digit - 1)
    if code not in YEAR_EXTENDED_CODES:
        raise PackCodecError(f"Invalid year code: {code!r}")
    return epoch_year + 10 + YEAR_EXTENDED_CODES.index(code)


# ==================== Serials ====================

def _check_serial_number(num: int) -> None:
    if isinstance(num, bool) or not isinstance(num, int):
        raise SerialOutOfRangeError(f"Serial number must be an integer, got {num!r}")
    if num < 0 or num > MAX_SERIAL:
        raise SerialOutOfRangeError(
            f"Serial number {num} out of range! Valid range is 0-{MAX_SERIAL}"
        )


def encode_serial(num: int) -> str:
    """Convert a number to a 5-char serial string, most significant digit first."""
    _check_serial_number(num)

    chars = []
    temp = num
    for _ in range(SERIAL_LENGTH):
        temp, digit = divmod(temp, SERIAL_BASE)
        chars.append(SERIAL_CHARS[digit])
    return "".join(reversed(chars))


def decode_serial(serial: str) -> int:
    """Convert a 5-char serial string back to its number."""
    if not isinstance(serial, str) or len(serial) != SERIAL_LENGTH:
        raise InvalidSerialError(
            f"Invalid serial {serial!r}, expected {SERIAL_LENGTH} characters"
        )

    num = 0
    for char in serial:
        index = SERIAL_CHARS.find(char)
        if index < 0:
            raise InvalidSerialError(f"Invalid character {char!r} in serial {serial!r}")
        num = num * SERIAL_BASE + index
    return num


# ==================== Label IDs ====================

def _check_category_code(name: str, code: str) -> None:
    if not isinstance(code, str) or len(code) != 1:
        raise InvalidCategoryCodeError(f"{name} code must be a single character, got {code!r}")


def build_prefix(
    supplier: str,
    packaging_type: str,
    size: str,
    value: date,
    epoch_year: int = YEAR_EPOCH,
) -> str:
    """
    Build the 6-char label prefix.

    Format: K + supplier + packaging type + size + month code + year code
    """
    _check_category_code("Supplier", supplier)
    _check_category_code("Packaging type", packaging_type)
    _check_category_code("Size", size)

    month_code = encode_month(value)
    year_code = encode_year(value.year, epoch_year)
    return f"{LABEL_PREFIX_MARKER}{supplier}{packaging_type}{size}{month_code}{year_code}"


def compose_label_id(prefix: str, serial: str) -> str:
    return f"{prefix}{serial}"


def generate_label_ids(prefix: str, start_serial: int, count: int) -> List[str]:
    """
    Generate `count` consecutive label IDs for one prefix bucket.

    The whole range is checked before any ID is produced, so an overflowing
    request fails without a partial batch.
    """
    if count < 1:
        raise ValueError(f"Label count must be at least 1, got {count}")

    _check_serial_number(start_serial)
    end_serial = start_serial + count - 1
    if end_serial > MAX_SERIAL:
        raise SerialOutOfRangeError(
            f"Serial number overflow for {prefix}! Max is {MAX_SERIAL}, "
            f"requested end: {end_serial}"
        )

    return [
        compose_label_id(prefix, encode_serial(num))
        for num in range(start_serial, end_serial + 1)
    ]


def parse_label_id(label_id: str) -> PackLabelId:
    """Parse an 11-char label ID: KBM2b100001"""
    if not isinstance(label_id, str) or len(label_id) != LABEL_ID_LENGTH:
        length = len(label_id) if isinstance(label_id, str) else None
        raise InvalidLabelIdError(
            f"Invalid label ID length: {length}, expected {LABEL_ID_LENGTH}"
        )
    if not label_id.startswith(LABEL_PREFIX_MARKER):
        raise InvalidLabelIdError(
            f"Invalid label ID {label_id!r}, must start with {LABEL_PREFIX_MARKER!r}"
        )

    parsed = PackLabelId(prefix=label_id[:PREFIX_LENGTH], serial=label_id[PREFIX_LENGTH:])
    decode_serial(parsed.serial)
    return parsed
