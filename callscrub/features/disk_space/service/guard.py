import logging
import math
from pathlib import Path
from typing import Optional

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import CapacityError
from ..data.local_fs import LocalDiskUsageProbe
from ..domain.interfaces import IDiskUsageProbe
from ..domain.models import CapacityReport

logger = logging.getLogger(__name__)


def format_size(num_bytes: int) -> str:
    """1536 -> '1.50 KB'"""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 ** 2:
        return f"{num_bytes / 1024:.2f} KB"
    if num_bytes < 1024 ** 3:
        return f"{num_bytes / 1024 ** 2:.2f} MB"
    return f"{num_bytes / 1024 ** 3:.2f} GB"


class DiskSpaceGuard:
    """
    Verifies there is enough scratch space before a redaction run starts.
    Stateless: every call re-reads the filesystem, since concurrent jobs
    consume space as they go.
    """

    def __init__(self, probe: Optional[IDiskUsageProbe] = None, multiplier: Optional[float] = None):
        self.probe = probe or LocalDiskUsageProbe()
        self.multiplier = settings.SCRATCH_SPACE_MULTIPLIER if multiplier is None else multiplier

    def estimate_requirement(self, source_path: Path) -> int:
        """Decode + re-encode + final artifact: a multiple of the source size."""
        return int(math.ceil(Path(source_path).stat().st_size * self.multiplier))

    def check_capacity(self, working_directory: Path, estimated_bytes: int) -> CapacityReport:
        usage = self.probe.usage(Path(working_directory))
        report = CapacityReport(
            ok=usage.free_bytes >= estimated_bytes,
            available_bytes=usage.free_bytes,
            total_bytes=usage.total_bytes,
            required_bytes=estimated_bytes
        )
        logger.info(
            f"Disk space check: Available: {format_size(report.available_bytes)}, "
            f"Required: {format_size(report.required_bytes)}"
        )
        return report

    def ensure_capacity(self, working_directory: Path, source_path: Path) -> CapacityReport:
        """
        Raises CapacityError when the job cannot fit; callers must not spawn
        any external process after a failure here.
        """
        report = self.check_capacity(working_directory, self.estimate_requirement(source_path))
        if not report.ok:
            raise CapacityError(
                f"Insufficient scratch space in {working_directory}: "
                f"{format_size(report.available_bytes)} available, {format_size(report.required_bytes)} required",
                required_bytes=report.required_bytes,
                available_bytes=report.available_bytes
            )
        return report
