"""Encryption and checksum helpers used to protect embedded watermarks."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from docmark.registry import WatermarkError

_GCM_KEY = b"watermark-security-key-for-encryption"
_GCM_NONCE_SIZE = 12
_BLOCK_SIZE = 16


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise WatermarkError(f"illegal base64 data: {exc}") from exc


def _aes_key(key: bytes) -> bytes:
    if len(key) not in (16, 24, 32):
        raise WatermarkError(f"crypto/aes: invalid key size {len(key)}")
    return key


def _gcm() -> AESGCM:
    return AESGCM(_aes_key(_GCM_KEY))


def seal_gcm(text: str) -> str:
    """Encrypt ``text`` with AES-GCM; return base64 of nonce followed by ciphertext."""
    aead = _gcm()
    nonce = os.urandom(_GCM_NONCE_SIZE)
    sealed = aead.encrypt(nonce, text.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def open_gcm(encrypted_text: str) -> str:
    """Decrypt a value produced by :func:`seal_gcm`."""
    data = _b64decode(encrypted_text)
    aead = _gcm()
    if len(data) < _GCM_NONCE_SIZE:
        raise WatermarkError("密文长度不足")
    nonce, sealed = data[:_GCM_NONCE_SIZE], data[_GCM_NONCE_SIZE:]
    try:
        plaintext = aead.decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise WatermarkError("cipher: message authentication failed") from exc
    return plaintext.decode("utf-8", errors="replace")


def md5_checksum(text: str) -> str:
    """Return the hex MD5 digest of ``text`` encoded as UTF-8."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def cfb_encrypt(plaintext: str, key: str) -> str:
    """Encrypt with AES-CFB under a random IV; return base64 of IV plus ciphertext."""
    aes = algorithms.AES(_aes_key(key.encode("utf-8")))
    iv = os.urandom(_BLOCK_SIZE)
    encryptor = Cipher(aes, modes.CFB(iv)).encryptor()
    body = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()
    return base64.b64encode(iv + body).decode("ascii")


def cfb_decrypt(ciphertext: str, key: str) -> str:
    """Decrypt a value produced by :func:`cfb_encrypt`."""
    data = _b64decode(ciphertext)
    aes = algorithms.AES(_aes_key(key.encode("utf-8")))
    if len(data) < _BLOCK_SIZE:
        raise WatermarkError("密文太短")
    iv, body = data[:_BLOCK_SIZE], data[_BLOCK_SIZE:]
    decryptor = Cipher(aes, modes.CFB(iv)).decryptor()
    plaintext = decryptor.update(body) + decryptor.finalize()
    return plaintext.decode("utf-8", errors="replace")