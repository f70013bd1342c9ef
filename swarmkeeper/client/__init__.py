"""
Swarmkeeper client - access to the Docker Engine/Swarm API.
"""

from .base import SwarmClient, get_active_nodes
from .docker_cli import DockerCliClient

__all__ = [
    "DockerCliClient",
    "SwarmClient",
    "get_active_nodes",
]
