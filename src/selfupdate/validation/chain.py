"""Multi-step validation: asset -> checksum list -> its signature -> ...

The chain is built from the release metadata at detection time, so a
missing validation asset is reported before anything is downloaded. It is
then replayed on the downloaded bytes at update time.
"""

import logging
from collections.abc import Callable

from selfupdate.domain.models import SourceRelease, ValidationHop
from selfupdate.errors import (
    ValidationAssetNotFoundError,
    ValidationError,
    ValidationNestingTooDeepError,
)
from selfupdate.validation.validators import RecursiveValidator, Validator

logger = logging.getLogger(__name__)

# Bounds chains built from misconfigured pattern validators
MAX_VALIDATION_CHAIN = 20


def build_validation_chain(
    validator: Validator,
    release: SourceRelease,
    asset_name: str,
    log: logging.Logger | None = None,
) -> list[ValidationHop]:
    """Return every validation asset needed to trust ``asset_name``.

    Raises:
        ValidationAssetNotFoundError: If an expected asset is not in the release.
        ValidationNestingTooDeepError: If the chain needs more than
            MAX_VALIDATION_CHAIN hops.
    """
    log = log or logger
    chain: list[ValidationHop] = []
    validation_name = validator.get_validation_asset_name(asset_name)

    while True:
        if len(chain) >= MAX_VALIDATION_CHAIN:
            raise ValidationNestingTooDeepError(
                f"recursive validation nesting depth exceeded ({MAX_VALIDATION_CHAIN} hops) "
                f"while looking for {validation_name!r}"
            )

        validation_asset = release.find_asset(validation_name)
        if validation_asset is None:
            raise ValidationAssetNotFoundError(
                f"validation asset not found: {validation_name!r}"
            )
        chain.append(
            ValidationHop(
                asset_id=validation_asset.id,
                asset_name=validation_asset.name,
                asset_url=validation_asset.browser_download_url,
            )
        )
        log.debug("Validation hop %d: %s", len(chain), validation_name)

        if not isinstance(validator, RecursiveValidator):
            break
        if not validator.must_continue_validation(validation_name):
            break
        next_name = validator.get_validation_asset_name(validation_name)
        if next_name == validation_name:
            break
        validation_name = next_name

    return chain


def validate_chain(
    validator: Validator,
    asset_name: str,
    data: bytes,
    chain: list[ValidationHop],
    download: Callable[[int], bytes],
) -> None:
    """Validate ``data`` hop by hop along ``chain``.

    Each hop's payload becomes the data validated by the next hop.

    Raises:
        ValidationError: Wrapping the failure of the first hop that fails.
    """
    validation_name = asset_name
    for index, hop in enumerate(chain, start=1):
        validation_data = download(hop.asset_id)
        try:
            validator.validate(validation_name, data, validation_data)
        except ValidationError as err:
            raise ValidationError(
                f"failed validating asset content {validation_name!r} "
                f"against {hop.asset_name!r} (hop {index}): {err}"
            ) from err

        validation_name = hop.asset_name
        data = validation_data
