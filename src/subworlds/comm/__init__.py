"""
Collective communication contexts of process groups

The `mpi` backend is deliberately not imported here, so that `mpi4py` stays an optional dependency
"""

from subworlds.comm.api import Communicator
from subworlds.comm.local import LocalComm, launch_local

__all__ = ["Communicator", "LocalComm", "launch_local"]
