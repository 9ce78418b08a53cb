import shutil
from pathlib import Path
from ..domain.interfaces import IDiskUsageProbe
from ..domain.models import DiskUsage

class LocalDiskUsageProbe(IDiskUsageProbe):
    def usage(self, directory: Path) -> DiskUsage:
        """
        Walks up to the nearest existing ancestor so a not-yet-created
        work directory still reports the filesystem it will live on.
        """
        probe_path = Path(directory).resolve()
        while not probe_path.exists() and probe_path != probe_path.parent:
            probe_path = probe_path.parent

        total, used, free = shutil.disk_usage(probe_path)
        return DiskUsage(total_bytes=total, used_bytes=used, free_bytes=free)
