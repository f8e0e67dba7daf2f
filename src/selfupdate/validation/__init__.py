"""Validation of downloaded assets against checksums and signatures."""

from selfupdate.validation.chain import (
    MAX_VALIDATION_CHAIN,
    build_validation_chain,
    validate_chain,
)
from selfupdate.validation.validators import (
    ChecksumValidator,
    ECDSAValidator,
    PatternValidator,
    PGPValidator,
    RecursiveValidator,
    SHAValidator,
    Validator,
    find_checksum,
    new_checksum_with_ecdsa_validator,
    new_checksum_with_pgp_validator,
)

__all__ = [
    "MAX_VALIDATION_CHAIN",
    "ChecksumValidator",
    "ECDSAValidator",
    "PGPValidator",
    "PatternValidator",
    "RecursiveValidator",
    "SHAValidator",
    "Validator",
    "build_validation_chain",
    "find_checksum",
    "new_checksum_with_ecdsa_validator",
    "new_checksum_with_pgp_validator",
    "validate_chain",
]
