"""
Public key identifiers for the HPOS Seed SDK

Signing public keys are shown in two forms: a DNS-safe hostname label and a
human readable HCID (``hcs0`` kind). Both come from the same 63-character
base-32 string:

    base32(prefix(3) + public_key(32) + parity[0:4])

Reed-Solomon parity (8 bytes) is computed over the key; the first four parity
bytes are part of the base-32 text and the last four are carried in the
letter case of the HCID, one byte per 15-character segment. The hostname
label is the lower-cased HCID.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import List

from reedsolo import RSCodec

from ..config import DEFAULT_HOST_SUFFIX
from ..exceptions import IdentifierError, ChecksumMismatch

logger = logging.getLogger(__name__)

# hcs0 signing key identifier layout
HCS0_PREFIX = bytes([0x38, 0xa2, 0x24])
HCS0_CAP_PREFIX = "101"
PUBLIC_KEY_LENGTH = 32
PARITY_LENGTH = 8
BASE_PARITY_LENGTH = 4
HCID_LENGTH = 63
SEGMENT_LENGTH = 15
BITS_PER_SEGMENT = 8

ALPHABET = "abcdefghijkmnopqrstuvwxyz3456789"
_RFC4648_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_TO_HCID_ALPHABET = str.maketrans(_RFC4648_ALPHABET, ALPHABET)
_FROM_HCID_ALPHABET = str.maketrans(ALPHABET, _RFC4648_ALPHABET)


def _check_public_key(public_key: bytes) -> bytes:
    if not isinstance(public_key, (bytes, bytearray)):
        raise IdentifierError("Public key must be bytes", "INVALID_PUBLIC_KEY_TYPE")
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise IdentifierError(
            f"Public key must be exactly {PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}",
            "INVALID_PUBLIC_KEY_LENGTH"
        )
    return bytes(public_key)


def _set_case_bits(chars: List[str], start: int, end: int, value: int) -> None:
    """
    Write the bits of ``value`` (MSB first) into the case of the letters in chars[start:end].

    Digits carry no case. A segment with fewer than eight letters holds only
    the leading bits of its parity byte and the rest are not represented;
    encoding still succeeds, as in the reference hcid encoder, where such a
    byte is an erasure for the Reed-Solomon decoder. Decoding here compares
    against the same truncated form, so a case flip in the letters that are
    present is still caught.
    """
    bit = BITS_PER_SEGMENT - 1
    for i in range(start, end):
        if bit < 0:
            break
        if not chars[i].isalpha():
            continue
        if (value >> bit) & 1:
            chars[i] = chars[i].upper()
        bit -= 1


class HcidCodec:
    """
    Encoder / decoder for one HCID kind.

    Args:
        prefix: Bytes prepended to the key before base-32 encoding
        cap_prefix: Case pattern ('1' upper, '0' lower) of the prefix characters
    """

    def __init__(self, prefix: bytes = HCS0_PREFIX, cap_prefix: str = HCS0_CAP_PREFIX):
        self.prefix = prefix
        self.cap_prefix = cap_prefix
        self._rs = RSCodec(PARITY_LENGTH)

    def _parity(self, public_key: bytes) -> bytes:
        return bytes(self._rs.encode(public_key)[PUBLIC_KEY_LENGTH:])

    def _base32(self, data: bytes) -> str:
        return base64.b32encode(data).decode('ascii').rstrip('=').translate(_TO_HCID_ALPHABET)

    def _unbase32(self, text: str) -> bytes:
        if len(text) != HCID_LENGTH:
            raise IdentifierError(
                f"Identifier must be {HCID_LENGTH} characters, got {len(text)}",
                "INVALID_IDENTIFIER_LENGTH"
            )

        lowered = text.lower()
        for position, char in enumerate(lowered):
            if char not in ALPHABET:
                raise IdentifierError(
                    f"Identifier has an invalid character at position {position}",
                    "INVALID_IDENTIFIER_CHARACTER"
                )

        standard = lowered.translate(_FROM_HCID_ALPHABET)
        try:
            return base64.b32decode(standard + '=' * (-len(standard) % 8))
        except binascii.Error as e:
            raise IdentifierError("Identifier is not valid base-32", "INVALID_IDENTIFIER_ENCODING") from e

    def encode(self, public_key: bytes) -> str:
        """Encode a 32-byte public key as an HCID"""
        key = _check_public_key(public_key)
        parity = self._parity(key)

        chars = list(self._base32(self.prefix + key + parity[:BASE_PARITY_LENGTH]))

        for i, flag in enumerate(self.cap_prefix):
            if flag == '1':
                chars[i] = chars[i].upper()

        start = len(self.cap_prefix)
        for byte in parity[BASE_PARITY_LENGTH:]:
            _set_case_bits(chars, start, start + SEGMENT_LENGTH, byte)
            start += SEGMENT_LENGTH

        return ''.join(chars)

    def decode(self, text: str) -> bytes:
        """
        Decode an HCID back into its public key.

        No error correction is attempted: the text must be exactly the
        canonical encoding of the key it carries.

        Raises:
            IdentifierError: If the text has the wrong length or alphabet
            ChecksumMismatch: If the prefix, parity or capitalisation is wrong
        """
        if not isinstance(text, str):
            raise IdentifierError("Identifier must be a string", "INVALID_IDENTIFIER_TYPE")

        data = self._unbase32(text)
        key = self._split(data)

        if self.encode(key) != text:
            raise ChecksumMismatch("Identifier checksum does not match", "CHECKSUM_MISMATCH")
        return key

    def encode_label(self, public_key: bytes) -> str:
        """Encode a public key as a lower-case hostname label"""
        return self.encode(public_key).lower()

    def decode_label(self, label: str) -> bytes:
        """
        Decode a hostname label. Labels carry no case parity, so only the
        base-32 parity bytes are checked.
        """
        if not isinstance(label, str):
            raise IdentifierError("Hostname label must be a string", "INVALID_IDENTIFIER_TYPE")

        data = self._unbase32(label)
        key = self._split(data)

        if self._parity(key)[:BASE_PARITY_LENGTH] != data[len(self.prefix) + PUBLIC_KEY_LENGTH:]:
            raise ChecksumMismatch("Hostname label checksum does not match", "CHECKSUM_MISMATCH")
        if self.encode_label(key) != label.lower():
            raise ChecksumMismatch("Hostname label is not canonical", "CHECKSUM_MISMATCH")
        return key

    def _split(self, data: bytes) -> bytes:
        if data[:len(self.prefix)] != self.prefix:
            raise ChecksumMismatch("Identifier prefix does not match", "PREFIX_MISMATCH")
        return data[len(self.prefix):len(self.prefix) + PUBLIC_KEY_LENGTH]


HCS0 = HcidCodec()


@dataclass(frozen=True)
class IdentifierPair:
    """Externally visible encodings of one public key"""
    hostname: str
    hcid: str
    url: str


def to_hcid(public_key: bytes) -> str:
    return HCS0.encode(public_key)


def from_hcid(text: str) -> bytes:
    return HCS0.decode(text)


def to_hostname(public_key: bytes) -> str:
    return HCS0.encode_label(public_key)


def from_hostname(label: str) -> bytes:
    return HCS0.decode_label(label)


def to_url(public_key: bytes, suffix: str = DEFAULT_HOST_SUFFIX) -> str:
    """
    Build the host URL of a public key, e.g.
    ``https://hcscimeesmngnuygkhtit5auwbfiuivxjmff7o54speb6zg84yebxuv7bf7z58z.holohost.net/``
    """
    if not suffix:
        raise IdentifierError("Host suffix must not be empty", "INVALID_HOST_SUFFIX")
    return f"https://{to_hostname(public_key)}.{suffix.strip('.')}/"


def to_identifier_pair(public_key: bytes, suffix: str = DEFAULT_HOST_SUFFIX) -> IdentifierPair:
    """Compute hostname label, HCID and URL of a public key"""
    hcid = to_hcid(public_key)
    pair = IdentifierPair(hostname=hcid.lower(), hcid=hcid, url=to_url(public_key, suffix))
    logger.debug(f"Computed identifiers for host {pair.hostname}")
    return pair
