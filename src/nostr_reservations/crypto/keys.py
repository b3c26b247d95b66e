"""
secp256k1 keys: generation, x-only public keys and NIP-19 bech32 encoding.

Private keys travel through the SDK as 32-byte ``bytes``; public keys as
64-char lowercase hex (x-only), which is what appears in events and tags.
"""

import re
from typing import NamedTuple, Union

from bech32 import bech32_decode, bech32_encode, convertbits
from coincurve import PrivateKey, PublicKey

from nostr_reservations.errors import InvalidKey

_HEX64 = re.compile(r"^[0-9a-fA-F]{64}$")


class Keypair(NamedTuple):
    private_key: bytes
    public_key: str
    nsec: str
    npub: str

    def __repr__(self) -> str:
        return f"Keypair(public_key={self.public_key!r}, npub={self.npub!r})"


def generate_private_key() -> bytes:
    return PrivateKey().secret


def get_public_key(private_key: bytes) -> str:
    """x-only public key (hex) for a 32-byte secret."""
    try:
        compressed = PublicKey.from_secret(private_key).format(compressed=True)
    except (TypeError, ValueError) as e:
        raise InvalidKey(f"Invalid private key: {e}")
    return compressed[1:].hex()


def generate_keypair() -> Keypair:
    sk = generate_private_key()
    pk = get_public_key(sk)
    return Keypair(sk, pk, nsec_encode(sk), npub_encode(pk))


def _bech32_encode(hrp: str, data: bytes) -> str:
    return bech32_encode(hrp, convertbits(data, 8, 5))


def _bech32_decode(value: str, expected_hrp: str) -> bytes:
    hrp, words = bech32_decode(value.strip().lower())
    if hrp is None or words is None:
        raise InvalidKey(f"Not a valid bech32 string: {value[:8]}...")
    if hrp != expected_hrp:
        raise InvalidKey(f"Expected {expected_hrp}, got {hrp}")
    data = convertbits(words, 5, 8, False)
    if data is None or len(data) != 32:
        raise InvalidKey(f"Invalid {expected_hrp} payload")
    return bytes(data)


def npub_encode(public_key: str) -> str:
    return _bech32_encode("npub", bytes.fromhex(public_key))


def nsec_encode(private_key: bytes) -> str:
    return _bech32_encode("nsec", private_key)


def npub_decode(npub: str) -> str:
    return _bech32_decode(npub, "npub").hex()


def nsec_decode(nsec: str) -> bytes:
    return _bech32_decode(nsec, "nsec")


def normalize_private_key(value: Union[str, bytes]) -> bytes:
    """Accept raw bytes, 64-char hex or an nsec and return the 32-byte secret."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise InvalidKey("Private key must be 32 bytes")
        sk = bytes(value)
    elif value.startswith("nsec1"):
        sk = nsec_decode(value)
    elif _HEX64.match(value):
        sk = bytes.fromhex(value)
    else:
        raise InvalidKey("Private key must be 32 bytes, 64-char hex or nsec")
    get_public_key(sk)
    return sk


def normalize_public_key(value: str) -> str:
    """Accept 64-char hex or an npub and return lowercase hex."""
    if value.startswith("npub1"):
        return npub_decode(value)
    if _HEX64.match(value):
        return value.lower()
    raise InvalidKey("Public key must be 64-char hex or npub")
