"""Data validation module using Pydantic models.

Main exports:
- ListingModel: Validated listing record
- record_to_validated: Convert a ListingRecord to ListingModel
- records_to_validated_batch: Convert a batch of ListingRecords

Example usage:
    from zameen_finder.validation import record_to_validated

    listing = record_to_validated(record)
    if listing is not None:
        print(listing.model_dump_json())
"""

from .models import ListingModel
from .converters import record_to_validated, records_to_validated_batch

__all__ = [
    "ListingModel",
    "record_to_validated",
    "records_to_validated_batch",
]
