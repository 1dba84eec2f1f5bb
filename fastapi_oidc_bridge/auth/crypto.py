import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher
from cryptography.hazmat.primitives.ciphers import algorithms
from cryptography.hazmat.primitives.ciphers import modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from fastapi_oidc_bridge.auth.exceptions import CryptoError

logger = logging.getLogger(__name__)

SECRET_KEY_BYTES = 16
IV_BYTES = 16
MAC_BYTES = 32
MAC_KEY_INFO = b"code-verifier-mac"
TOKEN_SEPARATOR = ":"


class RandomSource:
    def get_random_bytes(self, size: int) -> bytes:
        return secrets.token_bytes(size)


class CryptoBox:
    """
    Symmetric encryption of short strings under a process-lifetime key.

        PARAMETERS
        ----------
        secret_key: str
            32 hexadecimal characters. The text itself is the AES-256 key
            material, so the key carries 128 bits of randomness.
        random_source: RandomSource, default=None
            Source of the per-token initialization vectors.

    Tokens have the form `ivHex:cipherHex` (AES-256-CBC, PKCS#7 padding).
    The cipher segment ends with an HMAC-SHA256 tag over IV and ciphertext,
    keyed with a subkey derived from the secret key.
    """

    def __init__(
        self, secret_key: str, random_source: Optional[RandomSource] = None
    ) -> None:
        self._key = secret_key.encode("ascii")
        if len(self._key) != 32:
            raise ValueError("secret_key must be 32 characters long")
        self._mac_key = HKDF(
            algorithm=hashes.SHA256(),
            length=MAC_BYTES,
            salt=None,
            info=MAC_KEY_INFO,
        ).derive(self._key)
        self.random_source = random_source or RandomSource()

    @classmethod
    def generate(
        cls, random_source: Optional[RandomSource] = None
    ) -> "CryptoBox":
        random_source = random_source or RandomSource()
        secret_key = random_source.get_random_bytes(SECRET_KEY_BYTES).hex()
        return cls(secret_key, random_source)

    def _mac(self, iv: bytes, encrypted: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self._mac_key, hashes.SHA256())
        mac.update(iv + encrypted)
        return mac

    def encrypt(self, plaintext: str) -> str:
        iv = self.random_source.get_random_bytes(IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        cipher = Cipher(algorithms.AES(self._key), modes.CBC(iv))
        encryptor = cipher.encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()
        tag = self._mac(iv, encrypted).finalize()
        return iv.hex() + TOKEN_SEPARATOR + (encrypted + tag).hex()

    def decrypt(self, token: str) -> str:
        parts = token.split(TOKEN_SEPARATOR)
        if len(parts) != 2:
            raise CryptoError("Malformed encrypted token.")
        try:
            iv = bytes.fromhex(parts[0])
            sealed = bytes.fromhex(parts[1])
        except ValueError as e:
            raise CryptoError("Malformed encrypted token.") from e
        if len(iv) != IV_BYTES or len(sealed) <= MAC_BYTES:
            raise CryptoError("Malformed encrypted token.")

        encrypted, tag = sealed[:-MAC_BYTES], sealed[-MAC_BYTES:]
        try:
            self._mac(iv, encrypted).verify(tag)
        except InvalidSignature as e:
            logger.warning("Encrypted token failed verification.")
            raise CryptoError("Encrypted token failed verification.") from e

        try:
            decryptor = Cipher(
                algorithms.AES(self._key), modes.CBC(iv)
            ).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError as e:
            logger.warning("Unable to decrypt token.")
            raise CryptoError("Unable to decrypt token.") from e
