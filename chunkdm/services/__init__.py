# Service layer exports
from chunkdm.services.display_service import DisplayService as DisplayService
from chunkdm.services.execution_service import ExecutionEngine as ExecutionEngine

__all__ = [
    "DisplayService",
    "ExecutionEngine",
]
