from abc import ABC, abstractmethod
from pathlib import Path
from .models import DiskUsage

class IDiskUsageProbe(ABC):
    """
    Contract for reading filesystem usage.
    """
    @abstractmethod
    def usage(self, directory: Path) -> DiskUsage:
        """Returns total/used/free bytes of the filesystem holding directory."""
        pass
