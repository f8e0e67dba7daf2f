"""Atomic replacement of an executable on disk, with rollback."""

from selfupdate.apply.options import ApplyOptions, Verifier, verify_ecdsa_signature
from selfupdate.apply.swap import apply, hide_file

__all__ = [
    "ApplyOptions",
    "Verifier",
    "apply",
    "hide_file",
    "verify_ecdsa_signature",
]
