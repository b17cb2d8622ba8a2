# Local imports
from chunkdm.datasets.dataset import Dataset

__all__ = ["Dataset"]
