"""Validators for downloaded release assets.

A validator checks the bytes of an asset against a proof file published
next to it in the same release (a checksum, a checksum list, a signature).
It also knows the name of that proof file, so the updater can find it.

Some validators are recursive: the proof file must itself be validated
(for example a SHA256SUMS file signed by SHA256SUMS.asc). They implement
the optional must_continue_validation() capability.
"""

import fnmatch
import hashlib
import hmac
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

import gnupg
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from selfupdate.errors import (
    ChecksumValidationFailedError,
    ConfigurationError,
    ECDSAKeyNotSetError,
    ECDSAValidationFailedError,
    HashNotFoundError,
    IncorrectChecksumFileError,
    InvalidECDSASignatureError,
    InvalidPGPSignatureError,
    PGPKeyRingNotSetError,
    PGPValidationFailedError,
    ValidatorNotFoundError,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Validator(Protocol):
    """Checks release bytes against a validation asset."""

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        """Raise a ValidationError if ``release`` does not match ``asset``."""
        ...

    def get_validation_asset_name(self, release_filename: str) -> str:
        """Return the name of the asset holding the proof for this file."""
        ...


@runtime_checkable
class RecursiveValidator(Protocol):
    """Validator whose validation assets need validating too."""

    def must_continue_validation(self, filename: str) -> bool: ...


# =============================================================================
# Digests
# =============================================================================


@dataclass
class SHAValidator:
    """Compares the digest of the release with the first token of a proof file.

    The proof file is usually named ``<asset>.sha256`` and starts with the
    hex digest, optionally followed by anything (a file name, a newline).
    """

    hash_name: str = "sha256"

    @property
    def hex_width(self) -> int:
        return hashlib.new(self.hash_name).digest_size * 2

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        width = self.hex_width
        if len(asset) < width:
            raise IncorrectChecksumFileError()

        expected = asset[:width].decode("ascii", errors="replace")
        calculated = hashlib.new(self.hash_name, release).hexdigest()

        if not _hex_equals(calculated, expected):
            raise ChecksumValidationFailedError(
                f"{self.hash_name} validation failed for {filename!r}: "
                f"expected {expected!r}, found {calculated!r}"
            )

    def get_validation_asset_name(self, release_filename: str) -> str:
        return f"{release_filename}.{self.hash_name}"


@dataclass
class ChecksumValidator:
    """Looks the release up in a single checksum list (``SHA256SUMS``).

    Each line is ``<hex digest><two spaces><file name>``, LF or CRLF
    terminated. A single space or a tab is not accepted as separator.
    """

    unique_filename: str
    hash_name: str = "sha256"

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        checksum = find_checksum(filename, asset)
        SHAValidator(hash_name=self.hash_name).validate(filename, release, checksum)

    def get_validation_asset_name(self, release_filename: str) -> str:
        return self.unique_filename


def find_checksum(filename: str, content: bytes) -> bytes:
    """Return the hex digest listed for ``filename`` in a checksum file.

    Raises:
        IncorrectChecksumFileError: If a line is not ``<hash>  <name>``.
        HashNotFoundError: If the file is not listed.
    """
    eol = b"\n"
    if b"\r\n" in content:
        logger.debug("Checksum file is using windows line ending")
        eol = b"\r\n"

    lines = content.split(eol)
    logger.debug(
        "Checksum validator: %d checksums available, searching for %r", len(lines), filename
    )
    target = filename.encode("utf-8")
    for line in lines:
        if not line:
            continue
        parts = line.split(b"  ")
        if len(parts) != 2:
            raise IncorrectChecksumFileError()
        if parts[1] == target:
            return parts[0]

    raise HashNotFoundError(f"hash not found in checksum file for {filename!r}")


def _hex_equals(a: str, b: str) -> bool:
    try:
        return hmac.compare_digest(bytes.fromhex(a), bytes.fromhex(b))
    except ValueError:
        return False


# =============================================================================
# Signatures
# =============================================================================


@dataclass
class ECDSAValidator:
    """Verifies a DER encoded ECDSA signature over the SHA-256 of the release.

    The signature is published as ``<asset>.sig``.
    """

    public_key: ec.EllipticCurvePublicKey | None = None

    def with_public_key(self, pem_data: bytes) -> "ECDSAValidator":
        """Load the key from a PEM certificate (or a bare PEM public key).

        Raises:
            ConfigurationError: If the PEM data holds no ECDSA key.
        """
        try:
            if b"CERTIFICATE" in pem_data:
                key = x509.load_pem_x509_certificate(pem_data).public_key()
            else:
                key = serialization.load_pem_public_key(pem_data)
        except ValueError as err:
            raise ConfigurationError(f"failed to parse PEM data: {err}") from err

        if not isinstance(key, ec.EllipticCurvePublicKey):
            raise ConfigurationError("not an ECDSA public key")
        self.public_key = key
        return self

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        if self.public_key is None:
            raise ECDSAKeyNotSetError()

        logger.debug("Verifying ECDSA signature on %r", filename)
        try:
            decode_dss_signature(asset)
        except ValueError as err:
            raise InvalidECDSASignatureError() from err

        try:
            self.public_key.verify(asset, release, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature as err:
            raise ECDSAValidationFailedError() from err

    def get_validation_asset_name(self, release_filename: str) -> str:
        return f"{release_filename}.sig"


@dataclass
class PGPValidator:
    """Verifies a detached PGP signature with a trusted key ring.

    Armored signatures are published as ``<asset>.asc``, binary ones as
    ``<asset>.sig``. Verification runs through the ``gpg`` binary in a
    throwaway home directory holding only the trusted keys.
    """

    key_ring: bytes | None = None
    binary: bool = False
    gpg_binary: str = "gpg"

    def with_armored_key_ring(self, key: bytes) -> "PGPValidator":
        """Trust the keys of an armored public key block.

        Raises:
            ConfigurationError: If the data is not an armored public key.
        """
        if b"-----BEGIN PGP PUBLIC KEY BLOCK-----" not in key:
            raise ConfigurationError("failed setting armored public key ring: no public key block")
        self.key_ring = key
        return self

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        if not self.key_ring:
            raise PGPKeyRingNotSetError()
        if not asset.strip():
            raise InvalidPGPSignatureError()

        logger.debug("Verifying PGP signature on %r", filename)
        home = Path(tempfile.mkdtemp(prefix="selfupdate-gpg-"))
        try:
            try:
                gpg = gnupg.GPG(gpgbinary=self.gpg_binary, gnupghome=str(home))
            except (OSError, ValueError) as err:
                raise ConfigurationError(f"cannot run {self.gpg_binary!r}: {err}") from err

            imported = gpg.import_keys(self.key_ring)
            if not imported.fingerprints:
                raise ConfigurationError("no usable key in the PGP key ring")

            signature_path = home / ("signature.sig" if self.binary else "signature.asc")
            signature_path.write_bytes(asset)
            verified = gpg.verify_data(str(signature_path), release)
        finally:
            shutil.rmtree(home, ignore_errors=True)

        if verified.valid:
            return
        if verified.status in (None, "no signature found"):
            raise InvalidPGPSignatureError()
        raise PGPValidationFailedError(
            f"PGP signature verification failed on {filename!r}: {verified.status}"
        )

    def get_validation_asset_name(self, release_filename: str) -> str:
        if self.binary:
            return f"{release_filename}.sig"
        return f"{release_filename}.asc"


# =============================================================================
# Pattern router
# =============================================================================


@dataclass
class _Rule:
    pattern: str
    # None marks a file that needs no validation
    validator: Validator | None


@dataclass
class PatternValidator:
    """Routes each file to a validator chosen by glob pattern.

    Patterns are matched in the order they were added, so general ones
    like ``*`` go last. Skip rules always win over validation rules.

    This validator is recursive: the checksum list validating an asset is
    itself routed, for instance to a signature validator. Make sure
    signature files are skipped, or the chain will try to validate them
    forever.

    Example (assets checked by SHA256SUMS, SHA256SUMS checked by its
    armored PGP signature)::

        PatternValidator()
            .add("SHA256SUMS", PGPValidator().with_armored_key_ring(key))
            .skip_validation("*.asc")
            .add("*", ChecksumValidator(unique_filename="SHA256SUMS"))
    """

    rules: list[_Rule] = field(default_factory=list)

    def add(self, glob: str, validator: Validator | None) -> "PatternValidator":
        """Map a validator to a glob pattern."""
        self.rules.append(_Rule(glob, validator))
        return self

    def skip_validation(self, glob: str) -> "PatternValidator":
        """Accept files matching the glob without validation."""
        self.rules.insert(0, _Rule(glob, None))
        return self

    def find_validator(self, filename: str) -> Validator | None:
        """Return the validator for the file, None for a skipped file.

        Raises:
            ValidatorNotFoundError: If no pattern matches.
        """
        for rule in self.rules:
            if fnmatch.fnmatchcase(filename, rule.pattern):
                return rule.validator
        raise ValidatorNotFoundError(f"no validator found for {filename!r}")

    def validate(self, filename: str, release: bytes, asset: bytes) -> None:
        validator = self.find_validator(filename)
        if validator is None:
            return
        validator.validate(filename, release, asset)

    def get_validation_asset_name(self, release_filename: str) -> str:
        try:
            validator = self.find_validator(release_filename)
        except ValidatorNotFoundError:
            # validate() reports the missing validator
            return release_filename
        if validator is None:
            return release_filename
        return validator.get_validation_asset_name(release_filename)

    def must_continue_validation(self, filename: str) -> bool:
        try:
            validator = self.find_validator(filename)
        except ValidatorNotFoundError:
            return False
        if validator is None:
            return False
        if isinstance(validator, RecursiveValidator) and validator is not self:
            return validator.must_continue_validation(filename)
        return True


def new_checksum_with_ecdsa_validator(checksums_filename: str, pem_certificate: bytes) -> PatternValidator:
    """Validate assets with a checksum list and the list with an ECDSA signature."""
    return (
        PatternValidator()
        .add(checksums_filename, ECDSAValidator().with_public_key(pem_certificate))
        .add("*", ChecksumValidator(unique_filename=checksums_filename))
        .skip_validation("*.sig")
    )


def new_checksum_with_pgp_validator(checksums_filename: str, armored_key_ring: bytes) -> PatternValidator:
    """Validate assets with a checksum list and the list with a PGP signature."""
    return (
        PatternValidator()
        .add(checksums_filename, PGPValidator().with_armored_key_ring(armored_key_ring))
        .add("*", ChecksumValidator(unique_filename=checksums_filename))
        .skip_validation("*.asc")
    )
