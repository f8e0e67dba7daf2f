"""Options for applying an update to an executable on disk."""

import hashlib
import hmac
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from selfupdate.errors import ChecksumValidationFailedError, ConfigurationError, ECDSAValidationFailedError

# (checksum, signature, hash name, public key) -> raises on failure
Verifier = Callable[[bytes, bytes, str, object], None]

_HASHES = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def verify_ecdsa_signature(checksum: bytes, signature: bytes, hash_name: str, public_key: object) -> None:
    """Verify an ECDSA signature made over an already computed digest."""
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise ConfigurationError("public key is not an ECDSA key")
    if hash_name not in _HASHES:
        raise ConfigurationError(f"unsupported hash for ECDSA: {hash_name!r}")
    try:
        public_key.verify(signature, checksum, ec.ECDSA(Prehashed(_HASHES[hash_name]())))
    except (InvalidSignature, ValueError) as err:
        raise ECDSAValidationFailedError() from err


@dataclass
class ApplyOptions:
    """How to apply an update.

    Checksum and signature checks are optional; when configured they run
    before the filesystem is touched.
    """

    # None means the running executable
    target_path: Path | None = None
    target_mode: int = 0o755
    checksum: bytes | None = None
    public_key: object | None = None
    signature: bytes | None = None
    verifier: Verifier = verify_ecdsa_signature
    hash_name: str = "sha256"
    # Keep the replaced executable here; None deletes it after the update
    old_save_path: Path | None = None

    def set_public_key_pem(self, pem_data: bytes) -> None:
        """Set public_key from PEM encoded public key data.

        Raises:
            ConfigurationError: If the PEM data cannot be parsed.
        """
        try:
            self.public_key = serialization.load_pem_public_key(pem_data)
        except ValueError as err:
            raise ConfigurationError(f"couldn't parse PEM data: {err}") from err

    def check(self) -> None:
        """Reject a signature without key, or a key without signature."""
        if self.signature is not None and self.public_key is None:
            raise ConfigurationError("no public key to verify signature with")
        if self.public_key is not None and self.signature is None:
            raise ConfigurationError("no signature to verify with")

    def checksum_for(self, payload: bytes) -> bytes:
        try:
            return hashlib.new(self.hash_name, payload).digest()
        except ValueError as err:
            raise ConfigurationError(f"requested hash function not available: {self.hash_name}") from err

    def verify_checksum(self, payload: bytes) -> None:
        checksum = self.checksum_for(payload)
        if not hmac.compare_digest(checksum, self.checksum or b""):
            raise ChecksumValidationFailedError(
                f"updated file has wrong checksum. Expected: {(self.checksum or b'').hex()}, "
                f"got: {checksum.hex()}"
            )

    def verify_signature(self, payload: bytes) -> None:
        self.verifier(self.checksum_for(payload), self.signature or b"", self.hash_name, self.public_key)
