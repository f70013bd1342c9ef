"""
Swarmkeeper - Declarative Docker Swarm services that converge.

Describe a service once and Swarmkeeper creates or updates it on the swarm.
With a converge configuration it then waits until every replica runs, or
until the swarm rolled the update back, paused it, or the timeout elapsed.
A service that fails to converge after a create is removed again.
"""

from .reconciler import ServiceReconciler
from .settings import SwarmkeeperSettings, get_settings, reload_settings

__version__ = "0.1.0"
__all__ = [
    "ServiceReconciler",
    "SwarmkeeperSettings",
    "get_settings",
    "reload_settings",
]
