from identity_resolution.runners.local import LocalResolutionPipeline

__all__ = ["LocalResolutionPipeline"]
