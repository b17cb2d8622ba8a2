# Local imports
from chunkdm.managers.manager import DataManager

__all__ = ["DataManager"]
