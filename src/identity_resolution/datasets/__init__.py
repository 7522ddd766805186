from identity_resolution.datasets.profiles import (
    DONOR_DIRECT_SCHEMA,
    GIVEBUTTER_SCHEMA,
    KEAP_SCHEMA,
    SOURCE_SCHEMAS,
    STRIPE_SCHEMA,
)
from identity_resolution.datasets.reference import ReferenceDatasetGenerator

__all__ = [
    "DONOR_DIRECT_SCHEMA",
    "GIVEBUTTER_SCHEMA",
    "KEAP_SCHEMA",
    "SOURCE_SCHEMAS",
    "STRIPE_SCHEMA",
    "ReferenceDatasetGenerator",
]
