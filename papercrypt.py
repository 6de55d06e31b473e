#!/usr/bin/env python3
"""
PaperCrypt - Prepare encrypted secrets for printing on paper and recover them

This tool encrypts a file with a passphrase and renders the ciphertext as a
human-transcribable document: a labeled header with checksums, a line-numbered
hex (or ASCII-armored) body, and optionally a QR code carrying the same
document as JSON. Documents can be read back from the typed-in text, from the
QR code JSON, or from a photo/scan of the QR code.

REQUIREMENTS:
  Python 3.8+

  Install with:
    pip install -e .

  System dependencies (for pyzbar and pdf2image):
    - Linux: sudo apt-get install libzbar0 poppler-utils
    - macOS: brew install zbar poppler

USAGE:
  Create a paper document:
    papercrypt generate -i secrets.json -o secrets.txt
    papercrypt generate -i secrets.json -o secrets.pdf --pdf

  Recover the document from its QR code:
    papercrypt qr scan.png -o document.txt
    papercrypt qr payload.json --from-json -o document.txt

  Decrypt a (re-typed) document:
    papercrypt decode document.txt -o secrets.json

TEXT FORMAT (generation 2):
  -----BEGIN PAPERCRYPT DOCUMENT-----
  SerialNumber: <serial>
  Purpose: <free text>
  Comment: <free text>
  Timestamp: <ISO 8601, microseconds, UTC offset>
  ContentLength: <ciphertext bytes>
  GeneratorVersion: <semver>
  ChecksumCRC32: <CRC-32 of ciphertext>
  ChecksumSHA256: <SHA-256 of ciphertext>
  HeaderChecksum: <CRC-32 of SerialNumber, Timestamp, ContentLength, GeneratorVersion lines>

     1: <32 bytes per line, hex, groups of 4 bytes>
  -----END PAPERCRYPT DOCUMENT-----
"""

import sys
import os
import io
import re
import json
import hmac
import zlib
import base64
import binascii
import hashlib
import secrets
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple, Union

import click
import qrcode
from qrcode.constants import ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q, ERROR_CORRECT_H
from qrcode.exceptions import DataOverflowError
from PIL import Image
from reportlab.lib.pagesizes import A4, LETTER, LEGAL
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas
from argon2 import low_level
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
import numpy as np

# Version and format constants
VERSION = "2.1.0"
CURRENT_GENERATION = 2

# Generator versions assumed for payloads that do not declare one
DEFAULT_GENERATOR_VERSIONS = {
    1: "1.0.0",
    2: "2.0.0",
}
LEGACY_GENERATOR_VERSION = DEFAULT_GENERATOR_VERSIONS[1]

# Serial numbers: upper-case letters and digits without 0, O, I and L
SERIAL_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ123456789"
SERIAL_LENGTH = 6

# Content checksums of generation 2, in verification order. Changing this
# tuple changes the document format.
CONTENT_CHECKSUMS = ('crc32', 'sha256')

CHECKSUM_NAMES = {
    'crc24': 'CRC-24',
    'crc32': 'CRC-32',
    'sha256': 'SHA-256',
}

# OpenPGP CRC-24 (RFC 4880, section 6.1)
CRC24_INIT = 0xB704CE
CRC24_POLY = 0x864CFB

# Text layout
DOCUMENT_BEGIN = "-----BEGIN PAPERCRYPT DOCUMENT-----"
DOCUMENT_END = "-----END PAPERCRYPT DOCUMENT-----"
ARMOR_BEGIN = "-----BEGIN PAPERCRYPT MESSAGE-----"
ARMOR_END = "-----END PAPERCRYPT MESSAGE-----"
HEX_BYTES_PER_LINE = 32
HEX_BYTES_PER_GROUP = 4
ARMOR_LINE_WIDTH = 64
LINE_NUMBER_WIDTH = 4

HEADER_FIELDS = (
    'SerialNumber',
    'Purpose',
    'Comment',
    'Timestamp',
    'ContentLength',
    'GeneratorVersion',
    'ChecksumCRC32',
    'ChecksumSHA256',
    'HeaderChecksum',
)

REQUIRED_HEADER_FIELDS = tuple(label for label in HEADER_FIELDS
                               if label not in ('Purpose', 'Comment'))

CHECKSUM_LABELS = {
    'crc32': 'ChecksumCRC32',
    'sha256': 'ChecksumSHA256',
}

# Header lines covered by HeaderChecksum
HEADER_CHECKSUM_FIELDS = ('SerialNumber', 'Timestamp', 'ContentLength', 'GeneratorVersion')

# Argon2id defaults for the bundled encryption
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # KiB
ARGON2_PARALLELISM = 4

# Upper bounds accepted when reading parameters back from a container
ARGON2_MAX_TIME_COST = 64
ARGON2_MAX_MEMORY_COST = 1 << 22  # KiB, 4 GiB
ARGON2_MAX_PARALLELISM = 64

CONTAINER_MAGIC = b"PCAE"
# [Magic:4][TimeCost:4][MemoryCost:4][Parallelism:4][Salt:16][VerifyHash:32][Nonce:12]
CONTAINER_HEADER = struct.Struct('>4sIII16s32s12s')

# QR Code error correction mapping
ERROR_CORRECTION_LEVELS = {
    'L': ERROR_CORRECT_L,  # ~7% error correction
    'M': ERROR_CORRECT_M,  # ~15% error correction (default)
    'Q': ERROR_CORRECT_Q,  # ~25% error correction
    'H': ERROR_CORRECT_H,  # ~30% error correction
}

# Page size mapping
PAGE_SIZES = {
    'A4': A4,
    'LETTER': LETTER,
    'LEGAL': LEGAL,
}

PDF_MARGIN_MM = 20.0
PDF_QR_SIZE_MM = 70.0
PDF_FONT_SIZE = 9
PDF_LEADING = 11


# ============================================================================
# ERRORS
# ============================================================================

class PaperCryptError(Exception):
    """Base class for all PaperCrypt errors."""


class IntegrityFailure(PaperCryptError):
    """A length or checksum check failed.

    ``check`` names the failing check: 'length', 'header', 'body', 'crc24',
    'crc32' or 'sha256'.
    """

    def __init__(self, check: str, message: str):
        super().__init__(message)
        self.check = check


class UnrecognizedDocumentFormat(PaperCryptError):
    """Input does not match any known document generation."""


class MalformedField(PaperCryptError):
    """A required field is missing or cannot be parsed."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class RandomSourceUnavailable(PaperCryptError):
    """The operating system entropy source could not be read."""


class UpstreamFailure(PaperCryptError):
    """The encryption primitive or the QR encoder/decoder failed."""


class IncorrectPassphrase(UpstreamFailure):
    """The passphrase does not match the one used for encryption."""


# ============================================================================
# CHECKSUM FUNCTIONS
# ============================================================================

def crc24(data: bytes) -> int:
    """Compute the OpenPGP CRC-24 of data."""
    crc = CRC24_INIT
    for byte in data:
        crc ^= byte << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= CRC24_POLY
    return crc & 0xFFFFFF


def calculate_checksum(data: bytes, algorithm: str = 'sha256') -> str:
    """Calculate a checksum of data.

    Args:
        data: Bytes to checksum
        algorithm: 'crc24', 'crc32' or 'sha256'

    Returns:
        CRCs as upper-case hex (6 or 8 digits), SHA-256 as lower-case hex
    """
    if algorithm == 'crc24':
        return f"{crc24(data):06X}"
    elif algorithm == 'crc32':
        return f"{zlib.crc32(data) & 0xFFFFFFFF:08X}"
    elif algorithm == 'sha256':
        return hashlib.sha256(data).hexdigest()
    else:
        raise ValueError(f"Unsupported checksum algorithm: {algorithm}")


def verify_checksum(data: bytes, algorithm: str, expected: str) -> bool:
    """Check data against a recorded checksum.

    The recorded value is compared case-insensitively with whitespace
    removed, so a checksum copied from paper in either case still matches.
    """
    actual = calculate_checksum(data, algorithm).upper().encode('ascii')
    recorded = ''.join(str(expected).split()).upper().encode('utf-8')
    return hmac.compare_digest(actual, recorded)


def header_checksum_input(serial_number: str, timestamp: str, content_length: int,
                          generator_version: str) -> bytes:
    """Canonical bytes covered by HeaderChecksum."""
    values = (serial_number, timestamp, str(content_length), generator_version)
    lines = [f"{label}: {value}" for label, value in zip(HEADER_CHECKSUM_FIELDS, values)]
    return '\n'.join(lines).encode('utf-8')


# ============================================================================
# SERIAL NUMBERS
# ============================================================================

def generate_serial(length: int = SERIAL_LENGTH) -> str:
    """Generate a random serial number from SERIAL_ALPHABET.

    Raises:
        ValueError: If length is smaller than 1
        RandomSourceUnavailable: If the system entropy source cannot be read
    """
    if length < 1:
        raise ValueError(f"Serial number length must be at least 1, got {length}")

    try:
        return ''.join(secrets.choice(SERIAL_ALPHABET) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise RandomSourceUnavailable(f"Cannot read the system entropy source: {e}") from e


def is_valid_serial(serial_number: Any) -> bool:
    return (isinstance(serial_number, str) and len(serial_number) > 0
            and all(c in SERIAL_ALPHABET for c in serial_number))


# ============================================================================
# TIMESTAMPS
# ============================================================================

_ISO_TIMESTAMP = re.compile(
    r'^(\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2}(?::?\d{2}(?:\.\d+)?)?)?$'
)

_FRACTION_DIGITS = re.compile(r'(\.\d{6})\d+')

# Accepted by --date in addition to ISO 8601
DATE_OVERRIDE_FORMATS = (
    '%a, %d %b %Y %H:%M:%S.%f %Z',
    '%a, %d %b %Y %H:%M:%S %Z',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d',
)


def normalize_timestamp(timestamp: datetime) -> datetime:
    """Attach UTC to naive timestamps."""
    if not isinstance(timestamp, datetime):
        raise TypeError(f"Timestamp must be a datetime, got {type(timestamp).__name__}")
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def format_timestamp(timestamp: datetime) -> str:
    return normalize_timestamp(timestamp).isoformat(timespec='microseconds')


def _normalize_offset(offset: str) -> str:
    """Rewrite +HHMM[SS[.f]] or +HH:MM[:SS[.f]] as +HH:MM[:SS[.ffffff]]."""
    sign, rest = offset[0], offset[1:]
    seconds_fraction = ''
    if '.' in rest:
        rest, seconds_fraction = rest.split('.', 1)
        seconds_fraction = '.' + seconds_fraction[:6].ljust(6, '0')

    digits = rest.replace(':', '')
    normalized = f"{sign}{digits[:2]}:{digits[2:4]}"
    if len(digits) > 4:
        normalized += f":{digits[4:]}{seconds_fraction}"
    return normalized


def parse_timestamp(text: str, field: str = 'Timestamp') -> datetime:
    """Parse an ISO 8601 timestamp as written by any generation.

    Accepts a trailing 'Z', offsets with or without a colon and fractions
    longer than microseconds (truncated). Naive values are taken as UTC.
    """
    match = _ISO_TIMESTAMP.match(text.strip())
    if not match:
        raise MalformedField(field, f"{field} is not a valid timestamp: {text!r}")

    value, fraction, offset = match.groups()
    if fraction:
        value += '.' + fraction[:6].ljust(6, '0')
    if offset == 'Z':
        value += '+00:00'
    elif offset:
        value += _normalize_offset(offset)

    try:
        return normalize_timestamp(datetime.fromisoformat(value))
    except ValueError as e:
        raise MalformedField(field, f"{field} is not a valid timestamp: {text!r} ({e})") from e


def parse_date_override(text: str) -> datetime:
    """Parse the --date option of the generate command."""
    try:
        return parse_timestamp(text, field='date')
    except MalformedField:
        pass

    value = _FRACTION_DIGITS.sub(r'\1', text.strip())
    for date_format in DATE_OVERRIDE_FORMATS:
        try:
            return normalize_timestamp(datetime.strptime(value, date_format))
        except ValueError:
            continue

    raise MalformedField('date', f"Could not parse date {text!r}")


# ============================================================================
# DOCUMENT MODEL
# ============================================================================

_MAJOR_VERSION = re.compile(r'^[vV]?(\d+)(?:\.|$)')


def parse_major_version(version: Any) -> Optional[int]:
    """Return the major component of a semantic version, or None.

    Example:
        >>> parse_major_version("v2.1.0")
        2
        >>> parse_major_version("dev") is None
        True
    """
    if isinstance(version, bool):
        return None
    if isinstance(version, int):
        return version if version >= 0 else None
    if not isinstance(version, str):
        return None

    match = _MAJOR_VERSION.match(version.strip())
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class Document:
    """An encrypted secret plus the metadata printed alongside it.

    Instances are immutable. Purpose and comment are stripped of surrounding
    whitespace and must fit on one line. Naive timestamps are taken as UTC.
    Every decoder returns a new Document; generation 1 payloads are upgraded
    to this representation when parsed.
    """
    serial_number: str
    ciphertext: bytes
    timestamp: datetime
    purpose: str = ''
    comment: str = ''
    generator_version: str = VERSION

    def __post_init__(self):
        if not isinstance(self.ciphertext, (bytes, bytearray)):
            raise TypeError(f"Ciphertext must be bytes, got {type(self.ciphertext).__name__}")
        object.__setattr__(self, 'ciphertext', bytes(self.ciphertext))
        object.__setattr__(self, 'timestamp', normalize_timestamp(self.timestamp))

        if not is_valid_serial(self.serial_number):
            raise MalformedField(
                'SerialNumber',
                f"Serial number {self.serial_number!r} must be non-empty and use only "
                f"the characters {SERIAL_ALPHABET}"
            )

        for field, value in (('Purpose', self.purpose), ('Comment', self.comment)):
            if not isinstance(value, str) or not value.isprintable():
                raise MalformedField(field, f"{field} must be a single line of printable text")
        object.__setattr__(self, 'purpose', self.purpose.strip())
        object.__setattr__(self, 'comment', self.comment.strip())

        if (not isinstance(self.generator_version, str) or not self.generator_version.strip()
                or not self.generator_version.isprintable()):
            raise MalformedField('GeneratorVersion', "Generator version must be a non-empty string")
        object.__setattr__(self, 'generator_version', self.generator_version.strip())

    @classmethod
    def create(cls, ciphertext: bytes, serial_number: Optional[str] = None,
               purpose: str = '', comment: str = '',
               timestamp: Optional[datetime] = None,
               generator_version: str = VERSION) -> 'Document':
        """Build a new document, generating the serial and timestamp if absent."""
        if not serial_number:
            serial_number = generate_serial()
        if timestamp is None:
            timestamp = datetime.now().astimezone()
        return cls(
            serial_number=serial_number,
            ciphertext=ciphertext,
            timestamp=timestamp,
            purpose=purpose or '',
            comment=comment or '',
            generator_version=generator_version,
        )

    @property
    def content_length(self) -> int:
        return len(self.ciphertext)

    @property
    def checksums(self) -> Dict[str, str]:
        return {algorithm: calculate_checksum(self.ciphertext, algorithm)
                for algorithm in CONTENT_CHECKSUMS}

    @property
    def header_checksum(self) -> str:
        return calculate_checksum(
            header_checksum_input(self.serial_number, format_timestamp(self.timestamp),
                                  self.content_length, self.generator_version),
            'crc32'
        )


def verify_content(ciphertext: bytes, content_length: Optional[int],
                   checksums: Dict[str, str],
                   armor_checksum: Optional[str] = None) -> None:
    """Verify a decoded body against its recorded length and checksums.

    Checks run in a fixed order: length, armor CRC-24, then each content
    checksum in CONTENT_CHECKSUMS order. The first failure is raised.

    Raises:
        IntegrityFailure: Naming the failed check
    """
    if content_length is not None and len(ciphertext) != content_length:
        raise IntegrityFailure(
            'length',
            f"Content length mismatch: the body decodes to {len(ciphertext)} bytes "
            f"but ContentLength is {content_length}. Check the body for missing or extra lines."
        )

    if armor_checksum is not None and not verify_checksum(ciphertext, 'crc24', armor_checksum):
        raise IntegrityFailure(
            'crc24',
            f"Armor CRC-24 mismatch: expected {armor_checksum}, "
            f"computed {calculate_checksum(ciphertext, 'crc24')}. Re-check the armored body."
        )

    for algorithm in CONTENT_CHECKSUMS:
        if algorithm not in checksums:
            continue
        expected = checksums[algorithm]
        if not verify_checksum(ciphertext, algorithm, expected):
            raise IntegrityFailure(
                algorithm,
                f"{CHECKSUM_NAMES[algorithm]} checksum mismatch: expected {expected}, "
                f"computed {calculate_checksum(ciphertext, algorithm)}. Re-check the body."
            )


# ============================================================================
# TEXT FORMAT
# ============================================================================

_HEADER_LINE = re.compile(r'^\s*([A-Za-z][A-Za-z0-9]*)\s*:(.*)$')
_LINE_NUMBER = re.compile(r'^\s*(\d+)\s*:')
_NON_HEX = re.compile(r'[^0-9A-Fa-f]')
_NON_BASE64 = re.compile(r'[^A-Za-z0-9+/=]')


def header_values(doc: Document) -> Dict[str, str]:
    """Header labels and values in HEADER_FIELDS order."""
    checksums = doc.checksums
    return {
        'SerialNumber': doc.serial_number,
        'Purpose': doc.purpose,
        'Comment': doc.comment,
        'Timestamp': format_timestamp(doc.timestamp),
        'ContentLength': str(doc.content_length),
        'GeneratorVersion': doc.generator_version,
        'ChecksumCRC32': checksums['crc32'],
        'ChecksumSHA256': checksums['sha256'],
        'HeaderChecksum': doc.header_checksum,
    }


def encode_hex_body(data: bytes, lowercase: bool = False) -> List[str]:
    """Render data as numbered hex lines.

    Example:
        >>> encode_hex_body(bytes([1, 2, 3]))
        ['   1: 010203']
    """
    digits = data.hex() if lowercase else data.hex().upper()
    line_chars = HEX_BYTES_PER_LINE * 2
    group_chars = HEX_BYTES_PER_GROUP * 2

    total_lines = (len(digits) + line_chars - 1) // line_chars
    width = max(LINE_NUMBER_WIDTH, len(str(total_lines)))

    lines = []
    for line_number, start in enumerate(range(0, len(digits), line_chars), 1):
        chunk = digits[start:start + line_chars]
        groups = [chunk[i:i + group_chars] for i in range(0, len(chunk), group_chars)]
        lines.append(f"{line_number:>{width}}: {' '.join(groups)}")

    return lines


def decode_hex_body(lines: List[str]) -> bytes:
    """Parse numbered (or unnumbered) hex lines back into bytes.

    Raises:
        IntegrityFailure: 'body' for out-of-sequence line numbers or non-hex
            characters, 'length' for an odd number of hex digits
    """
    digits = []
    for position, line in enumerate(lines, 1):
        match = _LINE_NUMBER.match(line)
        if match:
            number = match.group(1)
            if number != str(position):
                raise IntegrityFailure(
                    'body',
                    f"Body line numbered {number} found where line {position} was expected"
                )
            line = line[match.end():]

        line_digits = ''.join(line.split())
        bad = _NON_HEX.search(line_digits)
        if bad:
            raise IntegrityFailure(
                'body',
                f"Body line {position} contains {bad.group()!r}, which is not a hex digit"
            )
        digits.append(line_digits)

    hex_text = ''.join(digits)
    if len(hex_text) % 2:
        raise IntegrityFailure(
            'length',
            f"Body has an odd number of hex digits ({len(hex_text)}); a digit is missing or extra"
        )

    return bytes.fromhex(hex_text)


def encode_armor_body(data: bytes) -> List[str]:
    """Render data as a radix-64 block with a CRC-24 trailer."""
    encoded = base64.b64encode(data).decode('ascii')
    checksum = base64.b64encode(crc24(data).to_bytes(3, byteorder='big')).decode('ascii')

    lines = [ARMOR_BEGIN]
    lines.extend(encoded[i:i + ARMOR_LINE_WIDTH] for i in range(0, len(encoded), ARMOR_LINE_WIDTH))
    lines.append('=' + checksum)
    lines.append(ARMOR_END)
    return lines


def decode_armor_body(lines: List[str]) -> Tuple[bytes, Optional[str]]:
    """Parse an armored block.

    Returns:
        Tuple of (data, crc24_hex); crc24_hex is None if the block has no
        checksum line
    """
    stripped = [line.strip() for line in lines]
    start = stripped.index(ARMOR_BEGIN) + 1
    if ARMOR_END not in stripped[start:]:
        raise IntegrityFailure('body', f"Armored body is missing its end line {ARMOR_END}")
    end = stripped.index(ARMOR_END, start)

    stray = [line for line in stripped[:start - 1] + stripped[end + 1:] if line]
    if stray:
        raise IntegrityFailure('body', f"Unexpected text outside the armored body: {stray[0]!r}")

    encoded = []
    armor_checksum = None
    for line in stripped[start:end]:
        if line.startswith('=') and len(line) == 5:
            try:
                armor_checksum = base64.b64decode(line[1:], validate=True).hex().upper()
            except binascii.Error as e:
                raise IntegrityFailure('crc24', f"Armor checksum line {line!r} is unreadable") from e
        else:
            encoded.append(''.join(line.split()))

    text = ''.join(encoded)
    bad = _NON_BASE64.search(text)
    if bad:
        raise IntegrityFailure('body', f"Armored body contains {bad.group()!r}, which is not radix-64")
    if len(text) % 4:
        raise IntegrityFailure(
            'length',
            f"Armored body has {len(text)} characters, not a multiple of 4; characters are missing or extra"
        )

    try:
        data = base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise IntegrityFailure('body', f"Armored body is not valid radix-64: {e}") from e
    if base64.b64encode(data).decode('ascii') != text:
        raise IntegrityFailure('body', "Armored body has stray bits in its last group of characters")

    return data, armor_checksum


def document_to_text(doc: Document, armor: bool = False, lowercase: bool = False,
                     ascii_qr: bool = False) -> str:
    """Render a document as transcribable text.

    Args:
        doc: Document to render
        armor: Use a radix-64 body instead of hex
        lowercase: Lower-case hex digits (ignored with armor)
        ascii_qr: Append the QR payload as a text-art QR code

    Returns:
        Document text ending with a newline
    """
    lines = [DOCUMENT_BEGIN]
    lines.extend(f"{label}: {value}".rstrip() for label, value in header_values(doc).items())
    lines.append('')

    if armor:
        lines.extend(encode_armor_body(doc.ciphertext))
    else:
        lines.extend(encode_hex_body(doc.ciphertext, lowercase=lowercase))

    lines.append(DOCUMENT_END)
    text = '\n'.join(lines) + '\n'

    if ascii_qr:
        text += '\n' + render_ascii_qr(document_to_payload(doc))

    return text


def _document_lines(text: str) -> List[str]:
    """Lines between the document markers; markers are optional."""
    lines = text.splitlines()
    stripped = [line.strip() for line in lines]

    start = stripped.index(DOCUMENT_BEGIN) + 1 if DOCUMENT_BEGIN in stripped else 0
    end = stripped.index(DOCUMENT_END, start) if DOCUMENT_END in stripped[start:] else len(lines)
    return lines[start:end]


def _decode_text(raw: Union[str, bytes]) -> str:
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode('utf-8')
        except UnicodeDecodeError as e:
            raise UnrecognizedDocumentFormat(f"Document is not UTF-8 text: {e}") from e
    return raw


def _parse_content_length(value: str) -> int:
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        raise MalformedField('ContentLength', f"ContentLength must be a non-negative integer, got {value!r}")
    return int(value)


def text_to_document(text: str) -> Document:
    """Parse and verify a text document.

    Header lines may appear in any order and unknown labels are ignored.
    Verification runs in order: HeaderChecksum, body decoding, length,
    armor CRC-24, CRC-32, SHA-256.

    Raises:
        MalformedField: If a required header field is missing or unparsable
        IntegrityFailure: If any check fails
    """
    text = _decode_text(text)

    header: Dict[str, str] = {}
    body_lines = []
    for line in _document_lines(text):
        if not line.strip():
            continue

        match = _HEADER_LINE.match(line)
        if match and not body_lines:
            label, value = match.group(1), match.group(2).strip()
            if label in header and header[label] != value:
                raise MalformedField(label, f"Header field {label} appears twice with different values")
            header[label] = value
        else:
            body_lines.append(line)

    for label in REQUIRED_HEADER_FIELDS:
        if not header.get(label):
            raise MalformedField(label, f"Required header field {label} is missing")

    serial_number = header['SerialNumber'].upper()
    timestamp = parse_timestamp(header['Timestamp'])
    content_length = _parse_content_length(header['ContentLength'])
    generator_version = header['GeneratorVersion']

    covered = header_checksum_input(serial_number, format_timestamp(timestamp),
                                    content_length, generator_version)
    if not verify_checksum(covered, 'crc32', header['HeaderChecksum']):
        raise IntegrityFailure(
            'header',
            f"Header checksum mismatch: expected {header['HeaderChecksum']}, "
            f"computed {calculate_checksum(covered, 'crc32')}. Re-check the "
            f"{', '.join(HEADER_CHECKSUM_FIELDS)} lines."
        )

    armor_checksum = None
    if any(line.strip() == ARMOR_BEGIN for line in body_lines):
        ciphertext, armor_checksum = decode_armor_body(body_lines)
    else:
        ciphertext = decode_hex_body(body_lines)

    verify_content(
        ciphertext,
        content_length,
        {algorithm: header[label] for algorithm, label in CHECKSUM_LABELS.items()},
        armor_checksum=armor_checksum,
    )

    return Document(
        serial_number=serial_number,
        ciphertext=ciphertext,
        timestamp=timestamp,
        purpose=header.get('Purpose', ''),
        comment=header.get('Comment', ''),
        generator_version=generator_version,
    )


# ============================================================================
# QR PAYLOAD
# ============================================================================

def document_to_payload(doc: Document) -> str:
    """Serialize a document as compact generation 2 JSON for a QR code.

    'Version' is the version of this tool, which wrote the payload shape.
    'GeneratorVersion' is only present when the document was produced by a
    different version.
    """
    checksums = doc.checksums
    payload = {
        'Version': VERSION,
        'SerialNumber': doc.serial_number,
        'Purpose': doc.purpose,
        'Comment': doc.comment,
        'CreatedAt': format_timestamp(doc.timestamp),
        'Data': base64.b64encode(doc.ciphertext).decode('ascii'),
        'DataCRC32': checksums['crc32'],
        'DataSHA256': checksums['sha256'],
    }
    if doc.generator_version != VERSION:
        payload['GeneratorVersion'] = doc.generator_version

    return json.dumps(payload, separators=(',', ':'), ensure_ascii=False)


def parse_payload(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Parse raw QR text into a JSON object.

    Raises:
        UnrecognizedDocumentFormat: If raw is not a JSON object
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode('utf-8')
        except UnicodeDecodeError as e:
            raise UnrecognizedDocumentFormat(f"Payload is not UTF-8 text: {e}") from e

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise UnrecognizedDocumentFormat(f"Payload is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise UnrecognizedDocumentFormat(
            f"Payload must be a JSON object, got {type(payload).__name__}"
        )
    return payload


def _explicit_version(payload: Dict[str, Any]) -> Optional[int]:
    return parse_major_version(payload.get('Version'))


def _flat_data(payload: Dict[str, Any]) -> Optional[int]:
    return 2 if isinstance(payload.get('Data'), str) else None


def _nested_data(payload: Dict[str, Any]) -> Optional[int]:
    envelope = payload.get('Data')
    if isinstance(envelope, dict) and isinstance(envelope.get('Data'), str):
        return 1
    return None


# Evaluated in order, the first rule returning a generation wins
SNIFF_RULES = (
    ('explicit Version field', _explicit_version),
    ('flat Data field', _flat_data),
    ('nested Data.Data field', _nested_data),
)


def sniff_generation(payload: Dict[str, Any]) -> int:
    """Determine which document generation produced a payload.

    Raises:
        UnrecognizedDocumentFormat: If no rule matches
    """
    for _, rule in SNIFF_RULES:
        generation = rule(payload)
        if generation is not None:
            return generation

    tried = ', '.join(name for name, _ in SNIFF_RULES)
    raise UnrecognizedDocumentFormat(f"Unrecognized document format (tried: {tried})")


def _require_string(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str):
        raise MalformedField(field, f"Required field {field} is missing or not a string")
    return value


def _optional_string(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise MalformedField(field, f"Field {field} must be a string")
    return value


def _decode_base64_field(field: str, value: str) -> bytes:
    try:
        return base64.b64decode(''.join(value.split()), validate=True)
    except binascii.Error as e:
        raise MalformedField(field, f"Field {field} is not valid base64: {e}") from e


def _checksum_field(payload: Dict[str, Any], field: str, width: int,
                    required: bool) -> Optional[str]:
    value = payload.get(field)
    if value is None:
        if required:
            raise MalformedField(field, f"Required field {field} is missing")
        return None
    # Generation 1 wrote CRC-32 as an unsigned integer
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:0{width}X}"
    if isinstance(value, str):
        return value
    raise MalformedField(field, f"Field {field} must be a string or integer")


def _generator_version(payload: Dict[str, Any], generation: int) -> str:
    for field in ('GeneratorVersion', 'Version'):
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value
    return DEFAULT_GENERATOR_VERSIONS[generation]


def parse_generation2(payload: Dict[str, Any]) -> Document:
    """Build a Document from a generation 2 payload (flat 'Data')."""
    ciphertext = _decode_base64_field('Data', _require_string(payload, 'Data'))
    verify_content(ciphertext, None, {
        'crc32': _checksum_field(payload, 'DataCRC32', 8, required=True),
        'sha256': _checksum_field(payload, 'DataSHA256', 64, required=True),
    })

    return Document(
        serial_number=_require_string(payload, 'SerialNumber'),
        ciphertext=ciphertext,
        timestamp=parse_timestamp(_require_string(payload, 'CreatedAt'), field='CreatedAt'),
        purpose=_optional_string(payload, 'Purpose'),
        comment=_optional_string(payload, 'Comment'),
        generator_version=_generator_version(payload, 2),
    )


def parse_generation1(payload: Dict[str, Any]) -> Document:
    """Build a Document from a generation 1 payload (nested 'Data.Data').

    Generation 1 carried at most a CRC-32 and usually no version.
    """
    envelope = payload.get('Data')
    if not isinstance(envelope, dict):
        raise MalformedField('Data', "Generation 1 field Data must be an object")
    ciphertext = _decode_base64_field('Data.Data', _require_string(envelope, 'Data'))

    checksums = {}
    crc = _checksum_field(payload, 'DataCRC32', 8, required=False)
    if crc is not None:
        checksums['crc32'] = crc
    verify_content(ciphertext, None, checksums)

    return Document(
        serial_number=_require_string(payload, 'SerialNumber'),
        ciphertext=ciphertext,
        timestamp=parse_timestamp(_require_string(payload, 'CreatedAt'), field='CreatedAt'),
        purpose=_optional_string(payload, 'Purpose'),
        comment=_optional_string(payload, 'Comment'),
        generator_version=_generator_version(payload, 1),
    )


GENERATION_PARSERS = {
    1: parse_generation1,
    2: parse_generation2,
}


def payload_to_document(raw: Union[str, bytes]) -> Document:
    """Parse, classify and verify a QR payload of any known generation.

    Raises:
        UnrecognizedDocumentFormat: If the payload matches no generation
        MalformedField: If a field of the detected generation is invalid
        IntegrityFailure: If a recorded checksum does not match
    """
    payload = parse_payload(raw)
    generation = sniff_generation(payload)

    parser = GENERATION_PARSERS.get(generation)
    if parser is None:
        raise UnrecognizedDocumentFormat(
            f"Unsupported document generation {generation} "
            f"(supported: {', '.join(str(g) for g in sorted(GENERATION_PARSERS))})"
        )
    return parser(payload)


def load_document(raw: Union[str, bytes]) -> Document:
    """Decode a document from either its text form or its QR JSON payload."""
    raw = _decode_text(raw)
    if raw.lstrip().startswith('{'):
        return payload_to_document(raw)
    return text_to_document(raw)


# ============================================================================
# ENCRYPTION (AES-256-GCM with Argon2id Key Derivation)
# ============================================================================

def _passphrase_bytes(passphrase: Union[str, bytes]) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode('utf-8')
    return bytes(passphrase)


def derive_key(passphrase: Union[str, bytes], salt: bytes,
               time_cost: int = ARGON2_TIME_COST,
               memory_cost: int = ARGON2_MEMORY_COST,
               parallelism: int = ARGON2_PARALLELISM) -> bytes:
    """Derive a 32-byte AES-256 key from a passphrase using Argon2id."""
    return low_level.hash_secret_raw(
        secret=_passphrase_bytes(passphrase),
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=32,
        type=low_level.Type.ID
    )


def create_verification_hash(key: bytes) -> bytes:
    """BLAKE2b hash of the derived key, stored to detect a wrong passphrase."""
    return hashlib.blake2b(key, digest_size=32).digest()


def encrypt(plaintext: bytes, passphrase: Union[str, bytes],
            time_cost: int = ARGON2_TIME_COST,
            memory_cost: int = ARGON2_MEMORY_COST,
            parallelism: int = ARGON2_PARALLELISM) -> bytes:
    """Encrypt plaintext into a self-describing ciphertext container.

    Container layout:
        [Magic:4][TimeCost:4][MemoryCost:4][Parallelism:4][Salt:16]
        [VerifyHash:32][Nonce:12][Ciphertext with GCM tag]

    Raises:
        UpstreamFailure: If key derivation or encryption fails
    """
    try:
        salt = os.urandom(16)
        nonce = os.urandom(12)
        key = derive_key(passphrase, salt, time_cost, memory_cost, parallelism)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    except NotImplementedError as e:
        raise RandomSourceUnavailable(f"Cannot read the system entropy source: {e}") from e
    except Exception as e:
        raise UpstreamFailure(f"Encryption failed: {e}") from e

    header = CONTAINER_HEADER.pack(CONTAINER_MAGIC, time_cost, memory_cost, parallelism,
                                   salt, create_verification_hash(key), nonce)
    return header + ciphertext


def decrypt(container: bytes, passphrase: Union[str, bytes]) -> bytes:
    """Decrypt a container produced by encrypt().

    Raises:
        IncorrectPassphrase: If the passphrase does not match
        UpstreamFailure: If the container is invalid or was tampered with
    """
    if len(container) < CONTAINER_HEADER.size:
        raise UpstreamFailure("Ciphertext container is truncated")

    (magic, time_cost, memory_cost, parallelism,
     salt, verification_hash, nonce) = CONTAINER_HEADER.unpack_from(container)
    if magic != CONTAINER_MAGIC:
        raise UpstreamFailure("Ciphertext was not produced by PaperCrypt's AES-256-GCM encryption")

    limits = (('time cost', time_cost, ARGON2_MAX_TIME_COST),
              ('memory cost', memory_cost, ARGON2_MAX_MEMORY_COST),
              ('parallelism', parallelism, ARGON2_MAX_PARALLELISM))
    for name, value, maximum in limits:
        if not 1 <= value <= maximum:
            raise UpstreamFailure(
                f"Argon2 {name} {value} in the ciphertext container is outside 1..{maximum}; "
                f"the document may be corrupted"
            )

    try:
        key = derive_key(passphrase, salt, time_cost, memory_cost, parallelism)
    except Exception as e:
        raise UpstreamFailure(f"Key derivation failed: {e}") from e

    if not hmac.compare_digest(create_verification_hash(key), verification_hash):
        raise IncorrectPassphrase("Incorrect passphrase")

    try:
        return AESGCM(key).decrypt(nonce, container[CONTAINER_HEADER.size:], None)
    except InvalidTag as e:
        raise UpstreamFailure("Decryption failed - data may be corrupted") from e


# ============================================================================
# QR IMAGES
# ============================================================================

def _make_qr(payload: str, error_correction: str, box_size: int, border: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECTION_LEVELS[error_correction],
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=True)
    # qrcode 8 reports overflow as an invalid version ValueError
    except (DataOverflowError, ValueError) as e:
        raise UpstreamFailure(
            "Document is too large for a single QR code; use a lower error correction level or --no-qr"
        ) from e
    return qr


def create_qr_image(payload: str, error_correction: str = 'M',
                    box_size: int = 10, border: int = 4) -> Image.Image:
    """Generate a QR code image holding the payload text."""
    qr = _make_qr(payload, error_correction, box_size, border)
    return qr.make_image(fill_color="black", back_color="white")


def render_ascii_qr(payload: str, error_correction: str = 'M') -> str:
    """Render the payload as a QR code drawn with text block characters."""
    qr = _make_qr(payload, error_correction, box_size=1, border=2)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


def pdf_to_images(pdf_path: str) -> List[np.ndarray]:
    """Convert PDF pages to OpenCV images."""
    import cv2
    from pdf2image import convert_from_path

    try:
        pil_images = convert_from_path(pdf_path, dpi=300)
    except Exception as e:
        raise UpstreamFailure(f"Could not render PDF {pdf_path}: {e}") from e

    return [cv2.cvtColor(np.array(pil_img.convert('RGB')), cv2.COLOR_RGB2BGR)
            for pil_img in pil_images]


def load_images(path: str) -> List[np.ndarray]:
    """Load an image file, or every page of a PDF, as OpenCV images."""
    import cv2

    if path.lower().endswith('.pdf'):
        return pdf_to_images(path)

    image = cv2.imread(path)
    if image is None:
        raise UpstreamFailure(f"Could not read image {path}")
    return [image]


def decode_qr_image(image: np.ndarray) -> str:
    """Return the text of the first QR code found in an image.

    Raises:
        UpstreamFailure: If no readable QR code is found
    """
    import cv2
    from pyzbar import pyzbar

    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
    decoded_objects = pyzbar.decode(gray, symbols=[pyzbar.ZBarSymbol.QRCODE])
    if not decoded_objects:
        raise UpstreamFailure("No QR code found in image")

    try:
        return decoded_objects[0].data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise UpstreamFailure(f"QR code does not contain UTF-8 text: {e}") from e


def decode_qr_file(path: str) -> str:
    """Return the text of the first QR code in an image or PDF file."""
    for image in load_images(path):
        try:
            return decode_qr_image(image)
        except UpstreamFailure:
            continue
    raise UpstreamFailure(f"No QR code found in {path}")


# ============================================================================
# PDF OUTPUT
# ============================================================================

def generate_pdf(doc: Document, armor: bool = False, lowercase: bool = False,
                 include_qr: bool = True, page_size: str = 'A4',
                 error_correction: str = 'M') -> bytes:
    """Render a document as a printable PDF.

    The first page carries the title, the header block and (optionally) the
    QR code; the body flows over as many pages as needed.

    Returns:
        PDF file contents
    """
    page_width, page_height = PAGE_SIZES[page_size]
    margin = PDF_MARGIN_MM * mm
    qr_size = PDF_QR_SIZE_MM * mm

    buffer = io.BytesIO()
    c = pdf_canvas.Canvas(buffer, pagesize=(page_width, page_height))
    c.setTitle(f"PaperCrypt {doc.serial_number}")
    c.setCreator(f"PaperCrypt {VERSION}")

    page_number = 1

    def draw_footer():
        c.setFont("Helvetica", 8)
        c.drawString(margin, margin / 2,
                     f"PaperCrypt {doc.serial_number} - Page {page_number} - "
                     f"Decode with: papercrypt decode")

    y = page_height - margin
    c.setFont("Helvetica-Bold", 14)
    c.drawString(margin, y - 5 * mm, "PaperCrypt Document")
    y -= 12 * mm

    text_lines = document_to_text(doc, armor=armor, lowercase=lowercase).splitlines()
    header_end = text_lines.index('')
    header_lines = text_lines[1:header_end]
    body_lines = text_lines[header_end + 1:-1]

    c.setFont("Courier", PDF_FONT_SIZE)
    for line in header_lines:
        c.drawString(margin, y, line)
        y -= PDF_LEADING

    c.line(margin, y, page_width - margin, y)
    y -= 2 * PDF_LEADING

    if include_qr:
        img_buffer = io.BytesIO()
        create_qr_image(document_to_payload(doc), error_correction).save(img_buffer, format='PNG')
        img_buffer.seek(0)
        c.drawImage(ImageReader(img_buffer), (page_width - qr_size) / 2, y - qr_size,
                    width=qr_size, height=qr_size)
        y -= qr_size + 2 * PDF_LEADING

    lines = [DOCUMENT_BEGIN] + body_lines + [DOCUMENT_END]
    c.setFont("Courier", PDF_FONT_SIZE)
    for line in lines:
        if y < margin + PDF_LEADING:
            draw_footer()
            c.showPage()
            page_number += 1
            y = page_height - margin
            c.setFont("Courier", PDF_FONT_SIZE)
        c.drawString(margin, y, line)
        y -= PDF_LEADING

    draw_footer()
    c.showPage()
    c.save()

    return buffer.getvalue()


# ============================================================================
# CLI COMMANDS
# ============================================================================

def check_output_path(path: str, force: bool) -> None:
    if path != '-' and os.path.exists(path) and not force:
        raise FileExistsError(f"File {path} already exists, use --force to override")


def write_output(path: str, data: bytes) -> None:
    with click.open_file(path, 'wb') as f:
        f.write(data)


def read_input(path: str) -> bytes:
    with click.open_file(path, 'rb') as f:
        return f.read()


@click.group()
@click.version_option(version=VERSION)
def cli():
    """PaperCrypt - Prepare encrypted secrets for printing on paper.

    Encrypts a file with a passphrase and renders it as a checksummed text
    or PDF document that can be typed back in, or scanned from its QR code.
    """
    pass


@cli.command()
@click.option('-i', '--in-file', 'in_file', type=click.Path(dir_okay=False, allow_dash=True),
              required=True, help='File with the secret contents (- for stdin)')
@click.option('-o', '--out-file', 'out_file', type=click.Path(dir_okay=False, allow_dash=True),
              required=True, help='Output document path (- for stdout)')
@click.option('-f', '--force', is_flag=True, help='Overwrite the output file if it exists')
@click.option('-s', '--serial-number', type=str, default=None,
              help=f'Serial number of the sheet (default: {SERIAL_LENGTH} random characters)')
@click.option('-p', '--purpose', type=str, default='', help='Purpose of the sheet')
@click.option('-c', '--comment', type=str, default='', help='Comment on the sheet')
@click.option('-d', '--date', type=str, default=None, help='Date of the sheet (default: now)')
@click.option('--pdf', 'output_pdf', is_flag=True, help='Write a PDF instead of plain text')
@click.option('--no-qr', is_flag=True, help='Do not include a QR code in the PDF')
@click.option('--ascii-qr', is_flag=True, help='Append a text-art QR code to plain text output')
@click.option('--lowercase', is_flag=True, help='Use lower-case hex digits')
@click.option('--armor', is_flag=True, help='Use a radix-64 body instead of hex')
@click.option('--error-correction', type=click.Choice(['L', 'M', 'Q', 'H']), default='M',
              help='QR error correction level: L(7%), M(15%), Q(25%), H(30%) [default: M]')
@click.option('--page-size', type=click.Choice(sorted(PAGE_SIZES)), default='A4',
              help='PDF page size [default: A4]')
@click.option('--passphrase', type=str, default=None,
              help='Encryption passphrase (prompted twice if not provided)')
def generate(in_file, out_file, force, serial_number, purpose, comment, date, output_pdf,
             no_qr, ascii_qr, lowercase, armor, error_correction, page_size, passphrase):
    """Encrypt a file and render it as a paper document.

    Example:
        papercrypt generate -i secrets.json -o secrets.txt -p "Vault keys"
        papercrypt generate -i secrets.json -o secrets.pdf --pdf --armor
    """
    try:
        check_output_path(out_file, force)

        if serial_number and not is_valid_serial(serial_number):
            raise MalformedField(
                'SerialNumber',
                f"Serial number {serial_number!r} may only use the characters {SERIAL_ALPHABET}"
            )
        timestamp = parse_date_override(date) if date else None

        plaintext = read_input(in_file)

        if passphrase is None:
            passphrase = click.prompt('Enter your encryption passphrase', hide_input=True,
                                      confirmation_prompt=True, err=True)

        click.echo("Encrypting with AES-256-GCM (Argon2id)...", err=True)
        ciphertext = encrypt(plaintext, passphrase)

        doc = Document.create(ciphertext, serial_number=serial_number, purpose=purpose,
                              comment=comment, timestamp=timestamp)

        if output_pdf:
            contents = generate_pdf(doc, armor=armor, lowercase=lowercase, include_qr=not no_qr,
                                    page_size=page_size, error_correction=error_correction)
        else:
            contents = document_to_text(doc, armor=armor, lowercase=lowercase,
                                        ascii_qr=ascii_qr).encode('utf-8')

        write_output(out_file, contents)

        click.echo(f"Wrote {len(contents):,} bytes to {out_file}", err=True)
        click.echo(f"Serial number: {doc.serial_number}", err=True)
        click.echo(f"SHA-256: {doc.checksums['sha256']}", err=True)

    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('input_path', type=click.Path(dir_okay=False, allow_dash=True), default='-')
@click.option('-o', '--out-file', 'out_file', type=click.Path(dir_okay=False, allow_dash=True),
              default='-', help='Output path (default: stdout)')
@click.option('-f', '--force', is_flag=True, help='Overwrite the output file if it exists')
@click.option('-j', '--from-json', is_flag=True, help='Read the QR payload as JSON text instead of an image')
@click.option('-J', '--to-json', is_flag=True, help='Write the raw JSON payload instead of the document text')
def qr(input_path, out_file, force, from_json, to_json):
    """Recover a document from its QR code.

    INPUT_PATH is an image, a PDF, or (with --from-json) the JSON payload
    read by a phone scanner app. The payload generation is detected
    automatically.

    Example:
        papercrypt qr scan.png -o document.txt
        papercrypt qr payload.json --from-json | papercrypt decode -o secrets.json
    """
    try:
        check_output_path(out_file, force)

        if from_json:
            data = read_input(input_path)
        else:
            if input_path == '-':
                raise ValueError("Reading images from stdin is not supported, pass a file path")
            data = decode_qr_file(input_path).encode('utf-8')

        if to_json:
            output = data
        else:
            doc = payload_to_document(data)
            output = document_to_text(doc).encode('utf-8')

        write_output(out_file, output)
        click.echo(f"Wrote {len(output):,} bytes to {out_file}", err=True)

    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('input_path', type=click.Path(dir_okay=False, allow_dash=True), default='-')
@click.option('-o', '--out-file', 'out_file', type=click.Path(dir_okay=False, allow_dash=True),
              required=True, help='Output path for the decrypted contents')
@click.option('-f', '--force', is_flag=True, help='Overwrite the output file if it exists')
@click.option('-P', '--passphrase', type=str, default=None,
              help='Decryption passphrase (prompted if not provided)')
def decode(input_path, out_file, force, passphrase):
    """Verify and decrypt a document (text or QR JSON).

    Example:
        papercrypt decode document.txt -o secrets.json
    """
    try:
        check_output_path(out_file, force)

        doc = load_document(read_input(input_path))
        click.echo(f"Document {doc.serial_number}: {doc.content_length:,} bytes, checksums verified",
                   err=True)

        if passphrase is None:
            passphrase = click.prompt('Enter your decryption passphrase', hide_input=True, err=True)

        plaintext = decrypt(doc.ciphertext, passphrase)
        write_output(out_file, plaintext)
        click.echo(f"Wrote {len(plaintext):,} bytes to {out_file}", err=True)

    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('input_path', type=click.Path(dir_okay=False, allow_dash=True), default='-')
def verify(input_path):
    """Check a document's length and checksums without decrypting it.

    Example:
        papercrypt verify document.txt
    """
    try:
        doc = load_document(read_input(input_path))
        values = header_values(doc)

        click.echo(f"\n{'='*60}")
        click.echo("PAPERCRYPT DOCUMENT")
        click.echo(f"{'='*60}")
        for label in ('SerialNumber', 'Purpose', 'Comment', 'Timestamp', 'GeneratorVersion'):
            click.echo(f"{label + ':':<20} {values[label]}")
        click.echo(f"{'ContentLength:':<20} {doc.content_length:,} bytes  PASS")
        for algorithm in CONTENT_CHECKSUMS:
            click.echo(f"{CHECKSUM_NAMES[algorithm] + ':':<20} {doc.checksums[algorithm]}  PASS")
        click.echo(f"{'='*60}\n")

    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
