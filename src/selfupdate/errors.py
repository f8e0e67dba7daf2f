"""Exception hierarchy for the self-update pipeline.

Every error raised by this package derives from SelfUpdateError so callers
can catch the whole family at once, or pick a single category:

- ConfigurationError: bad filters, repository references or versions
- SourceError: release provider failures
- ValidationAssetNotFoundError: missing checksum/signature companion file
- ValidationError: digest or signature mismatch, malformed proof files
- DecompressionError: corrupt archive or executable missing from it
- ApplyError: filesystem failures while swapping the binary
- UpdateCancelledError: the caller cancelled or the deadline expired
"""


class SelfUpdateError(Exception):
    """Base class for all self-update errors."""

    pass


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(SelfUpdateError):
    """Raised when the updater is constructed with invalid settings."""

    pass


class InvalidSlugError(ConfigurationError):
    """Raised when a repository slug is empty or cannot be parsed."""

    def __init__(self, message: str = "invalid slug") -> None:
        super().__init__(message)


class IncorrectOwnerError(InvalidSlugError):
    """Raised when the owner part of a slug is missing."""

    def __init__(self) -> None:
        super().__init__('incorrect parameter "owner"')


class IncorrectRepoError(InvalidSlugError):
    """Raised when the repository part of a slug is missing."""

    def __init__(self) -> None:
        super().__init__('incorrect parameter "repo"')


class InvalidRepositoryIDError(ConfigurationError):
    """Raised when a numeric repository ID is used where a slug is needed."""

    def __init__(self) -> None:
        super().__init__("invalid repository ID: a slug is required")


class InvalidVersionError(ConfigurationError):
    """Raised when a version string is not a semantic version."""

    pass


# =============================================================================
# Sources
# =============================================================================


class SourceError(SelfUpdateError):
    """Raised when the release provider returns an error."""

    pass


class InvalidReleaseError(SourceError):
    """Raised when an operation receives no release."""

    def __init__(self) -> None:
        super().__init__("invalid release: no release given")


class AssetNotFoundError(SourceError):
    """Raised when an asset ID is unknown to the release."""

    pass


class ValidationAssetNotFoundError(SelfUpdateError):
    """Raised when the expected validation asset is not part of the release."""

    pass


# =============================================================================
# Validation
# =============================================================================


class ValidationError(SelfUpdateError):
    """Raised when downloaded content cannot be trusted."""

    pass


class IncorrectChecksumFileError(ValidationError):
    """Raised when a checksum file is malformed."""

    def __init__(self, message: str = "incorrect checksum file format") -> None:
        super().__init__(message)


class ChecksumValidationFailedError(ValidationError):
    """Raised when the computed digest does not match the expected one."""

    pass


class HashNotFoundError(ValidationError):
    """Raised when a checksum file has no entry for the file."""

    pass


class ECDSAKeyNotSetError(ValidationError):
    """Raised when ECDSA validation runs without a public key."""

    def __init__(self) -> None:
        super().__init__("ECDSA public key not set")


class InvalidECDSASignatureError(ValidationError):
    """Raised when the signature bytes are not a DER encoded (r, s) pair."""

    def __init__(self) -> None:
        super().__init__("invalid ECDSA signature")


class ECDSAValidationFailedError(ValidationError):
    """Raised when an ECDSA signature does not verify."""

    def __init__(self) -> None:
        super().__init__("ECDSA signature verification failed")


class PGPKeyRingNotSetError(ValidationError):
    """Raised when PGP validation runs without a key ring."""

    def __init__(self) -> None:
        super().__init__("PGP key ring not set")


class InvalidPGPSignatureError(ValidationError):
    """Raised when the PGP signature is empty or truncated."""

    def __init__(self) -> None:
        super().__init__("invalid PGP signature")


class PGPValidationFailedError(ValidationError):
    """Raised when a PGP signature does not verify."""

    pass


class ValidatorNotFoundError(ValidationError):
    """Raised when no pattern of a PatternValidator matches a file."""

    pass


class ValidationNestingTooDeepError(ValidationError):
    """Raised when a validation chain grows past its maximum length."""

    pass


# =============================================================================
# Decompression
# =============================================================================


class DecompressionError(SelfUpdateError):
    """Raised when the executable cannot be extracted from the asset."""

    pass


class CannotDecompressFileError(DecompressionError):
    """Raised when the archive or compressed stream is corrupt."""

    pass


class ExecutableNotFoundInArchiveError(DecompressionError):
    """Raised when no archive member matches the executable name."""

    pass


# =============================================================================
# Filesystem
# =============================================================================


class ApplyError(SelfUpdateError):
    """Raised when the new binary cannot be written in place of the old one."""

    pass


class RollbackError(ApplyError):
    """Raised when the update failed and restoring the old binary failed too.

    The filesystem is left without an executable at the target path: the old
    binary is still parked at its backup location and must be recovered
    manually.
    """

    def __init__(self, original_error: BaseException, rollback_error: BaseException) -> None:
        super().__init__(
            f"update failed: {original_error}; rollback failed: {rollback_error}"
        )
        self.original_error = original_error
        self.rollback_error = rollback_error


def rollback_error(err: BaseException | None) -> BaseException | None:
    """Return the error met while rolling back, if ``err`` carries one.

    Returns None when no rollback was needed or when it succeeded.
    """
    if isinstance(err, RollbackError):
        return err.rollback_error
    return None


# =============================================================================
# Cancellation
# =============================================================================


class UpdateCancelledError(SelfUpdateError):
    """Raised when the caller cancels an in-flight update."""

    def __init__(self, message: str = "update cancelled") -> None:
        super().__init__(message)


class DeadlineExceededError(UpdateCancelledError):
    """Raised when an update runs past its deadline."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)
