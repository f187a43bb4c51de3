"""
Request signing for the upstream API.

Every call carries an `H` query parameter computed from the request payload.
The derivation is fixed by the upstream service and must stay bit-compatible:

1. MD5 of the shared secret (UTF-8) gives 16 bytes of key material
2. extended to 24 bytes as K1 + K2 + K1 (two-key Triple-DES)
3. Triple-DES in ECB mode over the UTF-8 payload with PKCS#7 padding
4. ciphertext encoded as Base64 text

A wrong token is reported by upstream as a generic rejection, so verify()
lets a run check known vectors before its first request.
"""

import base64
import hashlib
import logging
from pathlib import Path
from typing import Mapping

import orjson
from Crypto.Cipher import DES3
from Crypto.Util.Padding import pad

from utils.errors import ConfigurationError, SignerVerificationError

logger = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    """Expand the shared secret into a 24-byte Triple-DES key."""
    digest = hashlib.md5(secret.encode("utf-8")).digest()
    return digest + digest[:8]


class RequestSigner:
    """Deterministic payload -> token function."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ConfigurationError("Signer secret must not be empty")
        self._key = derive_key(secret)

    def sign(self, payload: str) -> str:
        """Return the Base64 token for a payload."""
        cipher = DES3.new(self._key, DES3.MODE_ECB)
        encrypted = cipher.encrypt(pad(payload.encode("utf-8"), DES3.block_size))
        return base64.b64encode(encrypted).decode("ascii")

    def verify(self, vectors: Mapping[str, str]) -> None:
        """Check the signer against known payload -> token pairs.

        Raises:
            SignerVerificationError: If any vector does not match
        """
        mismatched = [payload for payload, token in vectors.items() if self.sign(payload) != token]
        if mismatched:
            raise SignerVerificationError(
                f"Signer output does not match {len(mismatched)} of {len(vectors)} known vectors",
                details={"payloads": mismatched},
            )
        logger.info("Signer verified against known vectors", extra={"vectors": len(vectors)})


def load_vectors(path: str) -> dict[str, str]:
    """
    Load known signer vectors from a JSON object file.

    Args:
        path: File containing {"payload": "token", ...}

    Returns:
        Mapping of payload to expected token

    Raises:
        ConfigurationError: If the file is missing or not a JSON object of strings
    """
    vectors_path = Path(path)
    if not vectors_path.is_file():
        raise ConfigurationError(f"Signer vectors file not found: {path}")

    try:
        data = orjson.loads(vectors_path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ConfigurationError(f"Signer vectors file is not valid JSON: {path}") from e

    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ConfigurationError(f"Signer vectors must be a JSON object of strings: {path}")

    return data
