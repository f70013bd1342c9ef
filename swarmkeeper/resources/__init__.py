"""
Swarmkeeper Resources - Pydantic models for declarative swarm services.
"""

from .service import PlacementPolicy, RestartPolicy, ServiceResource, UpdatePolicy

__all__ = [
    "PlacementPolicy",
    "RestartPolicy",
    "ServiceResource",
    "UpdatePolicy",
]
