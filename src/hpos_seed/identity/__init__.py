"""
Hostname and HCID identifiers for device public keys
"""

from .hcid import (
    HcidCodec,
    IdentifierPair,
    HCS0,
    to_hcid,
    from_hcid,
    to_hostname,
    from_hostname,
    to_url,
    to_identifier_pair,
)

__all__ = [
    'HcidCodec',
    'IdentifierPair',
    'HCS0',
    'to_hcid',
    'from_hcid',
    'to_hostname',
    'from_hostname',
    'to_url',
    'to_identifier_pair',
]
