"""Converters for transforming crawler records to validated models."""

import logging
from typing import List, Optional

from pydantic import ValidationError

from zameen_finder.scraper.base import ListingRecord
from .models import ListingModel

logger = logging.getLogger(__name__)


def record_to_validated(record: ListingRecord) -> Optional[ListingModel]:
    """Convert a ListingRecord to a validated ListingModel.

    If validation fails, the error is logged and None is returned.

    Args:
        record: Finalized record from the crawler

    Returns:
        Validated ListingModel, or None if validation fails
    """
    try:
        return ListingModel(**record.to_dict())
    except ValidationError as e:
        logger.warning(
            f"Validation failed for listing {record.identity_key}: {e.error_count()} errors"
        )
        logger.debug(f"Validation errors: {e.errors()}")
        return None


def records_to_validated_batch(
    records: List[ListingRecord],
) -> tuple[List[ListingModel], List[ListingRecord]]:
    """Validate a batch of records.

    Returns:
        Tuple of (validated_listings, failed_records)
    """
    validated = []
    failed = []

    for record in records:
        result = record_to_validated(record)
        if result is not None:
            validated.append(result)
        else:
            failed.append(record)

    if records:
        logger.info(
            f"Batch validation complete: {len(validated)} succeeded, "
            f"{len(failed)} failed ({len(failed)/len(records)*100:.1f}% failure rate)"
        )

    return validated, failed
