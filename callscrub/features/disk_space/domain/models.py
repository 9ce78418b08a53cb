from dataclasses import dataclass

@dataclass(frozen=True)
class CapacityReport:
    """
    Result of a scratch-space check for one job.
    """
    ok: bool
    available_bytes: int
    total_bytes: int
    required_bytes: int

@dataclass(frozen=True)
class DiskUsage:
    total_bytes: int
    used_bytes: int
    free_bytes: int
