"""
The task registry and the coordinator owning it
"""

from subworlds.scheduler.coordinator import Coordinator, CoordinatorClient, coordinator_address
from subworlds.scheduler.queue import TaskQueue

__all__ = ["Coordinator", "CoordinatorClient", "TaskQueue", "coordinator_address"]
