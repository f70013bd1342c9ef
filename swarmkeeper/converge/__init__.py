"""Service convergence engine.

Polls a swarm service after a create or update until its tasks reach the
desired replica count, the swarm reports a rollback or pause, or the
configured timeout elapses.
"""
