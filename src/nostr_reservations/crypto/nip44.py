"""
NIP-44 v2 payload encryption.

conversation_key = HKDF-extract(salt="nip44-v2", ikm=ECDH x-coordinate)
per-message keys = HKDF-expand(conversation_key, info=nonce, L=76)
payload          = base64(0x02 || nonce || ChaCha20(padded) || HMAC-SHA256)
"""

import base64
import binascii
import os
import struct
from typing import Optional

from coincurve import PublicKey
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from nostr_reservations.errors import DecryptionFailed

VERSION = 2
SALT = b"nip44-v2"
MIN_PLAINTEXT_SIZE = 1
MAX_PLAINTEXT_SIZE = 65535


def _hmac_sha256(key: bytes, *parts: bytes) -> hmac.HMAC:
    h = hmac.HMAC(key, hashes.SHA256())
    for part in parts:
        h.update(part)
    return h


def get_conversation_key(private_key: bytes, public_key: str) -> bytes:
    """Symmetric key shared by ``private_key``'s owner and ``public_key``'s owner."""
    try:
        point = PublicKey(b"\x02" + bytes.fromhex(public_key)).multiply(private_key)
    except ValueError as e:
        raise DecryptionFailed(f"invalid key for ECDH: {e}")
    shared_x = point.format(compressed=True)[1:]
    return _hmac_sha256(SALT, shared_x).finalize()


def _message_keys(conversation_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:
    keys = HKDFExpand(algorithm=hashes.SHA256(), length=76, info=nonce).derive(conversation_key)
    return keys[0:32], keys[32:44], keys[44:76]


def calc_padded_len(unpadded_len: int) -> int:
    if unpadded_len <= 32:
        return 32
    next_power = 1 << (unpadded_len - 1).bit_length()
    chunk = 32 if next_power <= 256 else next_power // 8
    return chunk * ((unpadded_len - 1) // chunk + 1)


def _pad(plaintext: str) -> bytes:
    raw = plaintext.encode("utf-8")
    if not MIN_PLAINTEXT_SIZE <= len(raw) <= MAX_PLAINTEXT_SIZE:
        raise ValueError(f"plaintext must be {MIN_PLAINTEXT_SIZE}..{MAX_PLAINTEXT_SIZE} bytes")
    return struct.pack(">H", len(raw)) + raw + bytes(calc_padded_len(len(raw)) - len(raw))


def _unpad(padded: bytes) -> str:
    (length,) = struct.unpack(">H", padded[:2])
    raw = padded[2:2 + length]
    if length == 0 or len(raw) != length or len(padded) != 2 + calc_padded_len(length):
        raise DecryptionFailed("invalid padding")
    return raw.decode("utf-8")


def _chacha20(key: bytes, nonce: bytes, data: bytes) -> bytes:
    # cryptography takes a 16-byte nonce: 32-bit little-endian counter (0) + 96-bit nonce
    cipher = Cipher(algorithms.ChaCha20(key, b"\x00" * 4 + nonce), mode=None)
    return cipher.encryptor().update(data)


def encrypt(plaintext: str, conversation_key: bytes, nonce: Optional[bytes] = None) -> str:
    nonce = nonce or os.urandom(32)
    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    ciphertext = _chacha20(chacha_key, chacha_nonce, _pad(plaintext))
    mac = _hmac_sha256(hmac_key, nonce, ciphertext).finalize()
    return base64.b64encode(bytes([VERSION]) + nonce + ciphertext + mac).decode("ascii")


def decrypt(payload: str, conversation_key: bytes) -> str:
    if not payload or payload[0] == "#":
        raise DecryptionFailed("unknown encryption version")
    if not 132 <= len(payload) <= 87472:
        raise DecryptionFailed("invalid payload length")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionFailed("invalid base64")
    if data[0] != VERSION:
        raise DecryptionFailed(f"unknown encryption version {data[0]}")

    nonce, ciphertext, mac = data[1:33], data[33:-32], data[-32:]
    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    try:
        _hmac_sha256(hmac_key, nonce, ciphertext).verify(mac)
    except InvalidSignature:
        raise DecryptionFailed("invalid MAC")
    try:
        return _unpad(_chacha20(chacha_key, chacha_nonce, ciphertext))
    except (struct.error, UnicodeDecodeError):
        raise DecryptionFailed("invalid padding")


def encrypt_message(plaintext: str, sender_private_key: bytes, recipient_public_key: str) -> str:
    return encrypt(plaintext, get_conversation_key(sender_private_key, recipient_public_key))


def decrypt_message(payload: str, recipient_private_key: bytes, sender_public_key: str) -> str:
    return decrypt(payload, get_conversation_key(recipient_private_key, sender_public_key))
