"""Encoding and decoding of the opaque configuration tokens used in addon URLs."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from .models import AddonConfig

logger = logging.getLogger(__name__)

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 100_000
TAG_POSITION = SALT_LENGTH + IV_LENGTH
ENCRYPTED_POSITION = TAG_POSITION + TAG_LENGTH

ENCRYPTED_PREFIX = "enc:"
MIN_TOKEN_LENGTH = 8


def is_config_token(token: str | None) -> bool:
    """Return whether ``token`` is shaped like a configuration token."""

    if not token:
        return False
    if token.startswith(ENCRYPTED_PREFIX):
        return True
    return len(token) >= MIN_TOKEN_LENGTH


def token_fingerprint(token: str) -> str:
    """Return a stable digest identifying ``token`` without exposing it."""

    return hashlib.md5(token.encode("utf-8")).hexdigest()


def _b64decode(value: str) -> bytes:
    normalized = value.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True)


def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def _to_config(payload: Any) -> AddonConfig | None:
    if not isinstance(payload, dict):
        return None
    try:
        return AddonConfig.model_validate(payload)
    except ValidationError:
        return None


class ConfigCodec:
    """Maps :class:`AddonConfig` objects to URL-safe tokens and back.

    With a server secret, tokens are ``base64(salt || iv || tag || ciphertext)``
    produced by AES-256-GCM under a PBKDF2-SHA512 derived key. Without one,
    tokens are plain ``base64(json)``. Decoding never raises: any failure
    results in ``None`` once every supported format has been tried.
    """

    def __init__(self, secret: str | None = None) -> None:
        self._secret = secret or None

    @property
    def encrypting(self) -> bool:
        return self._secret is not None

    def encode(self, config: AddonConfig) -> str:
        """Return a token for ``config``."""

        plaintext = json.dumps(config.to_token_payload(), separators=(",", ":")).encode("utf-8")
        if self._secret is None:
            return base64.urlsafe_b64encode(plaintext).decode("ascii")

        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = _derive_key(self._secret, salt)
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.urlsafe_b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decode(self, token: str | None) -> AddonConfig | None:
        """Return the configuration carried by ``token`` or ``None``."""

        if not token:
            return None
        if token.startswith(ENCRYPTED_PREFIX):
            token = token[len(ENCRYPTED_PREFIX):]

        if self._secret is not None:
            config = self._decrypt(token)
            if config is not None:
                return config
        return self._decode_plain(token)

    def _decrypt(self, token: str) -> AddonConfig | None:
        assert self._secret is not None
        try:
            data = _b64decode(token)
        except (binascii.Error, ValueError):
            logger.debug("Token is not valid base64; skipping decryption")
            return None
        if len(data) < ENCRYPTED_POSITION:
            logger.warning("Rejected encrypted token: buffer too short")
            return None

        salt = data[:SALT_LENGTH]
        iv = data[SALT_LENGTH:TAG_POSITION]
        tag = data[TAG_POSITION:ENCRYPTED_POSITION]
        ciphertext = data[ENCRYPTED_POSITION:]
        try:
            key = _derive_key(self._secret, salt)
            plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            logger.warning("Rejected encrypted token: authentication failed")
            return None

        try:
            payload = json.loads(plaintext.decode("utf-8"))
        except (ValueError, RecursionError):
            logger.warning("Decrypted token does not contain JSON")
            return None
        return _to_config(payload)

    def _decode_plain(self, token: str) -> AddonConfig | None:
        try:
            decoded = _b64decode(token).decode("utf-8")
            config = _to_config(json.loads(decoded))
        except (binascii.Error, ValueError, RecursionError):
            config = None
        if config is not None:
            return config

        try:
            return _to_config(json.loads(token))
        except (ValueError, RecursionError):
            logger.info("Configuration token could not be decoded")
            return None
