from __future__ import annotations

__all__: list[str] = [
    "OwnershipService",
    "ScanOrchestrator",
    "StatusCache",
    "WorkerCoordinator",
]

from sampicker.services.ownership_service import OwnershipService
from sampicker.services.scan_orchestrator import ScanOrchestrator
from sampicker.services.status_cache import StatusCache
from sampicker.services.worker_coordinator import WorkerCoordinator
