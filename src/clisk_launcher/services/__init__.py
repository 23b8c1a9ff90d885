from .command_executor import CommandRetryExecutor
from .pilot_service import PilotService
from .worker_service import WorkerService

__all__ = ["CommandRetryExecutor", "PilotService", "WorkerService"]
