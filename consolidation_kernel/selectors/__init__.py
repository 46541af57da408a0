"""Read-only selectors returning domain DTOs."""

from consolidation_kernel.selectors.snapshot_selector import SnapshotSelector

__all__ = ["SnapshotSelector"]
