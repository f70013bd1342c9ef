"""
Swarmkeeper Test Suite

Unit tests for the convergence engine, the reconciler, the docker CLI
client and the command line interface. All tests run without a swarm.
"""
