from identity_resolution.steps.backfill import FactTableSpec, LinkageBackfill, backfill_store
from identity_resolution.steps.clustering import SignalClusterer
from identity_resolution.steps.crosswalk import CrosswalkWriter
from identity_resolution.steps.households import HouseholdAssigner
from identity_resolution.steps.signals import SignalIndexBuilder
from identity_resolution.steps.synthesis import CanonicalSynthesizer

__all__ = [
    "CanonicalSynthesizer",
    "CrosswalkWriter",
    "FactTableSpec",
    "HouseholdAssigner",
    "LinkageBackfill",
    "SignalClusterer",
    "SignalIndexBuilder",
    "backfill_store",
]
