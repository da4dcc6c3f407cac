"""
Integration tests: end-to-end scenarios per topology.

Pools are built from Settings through the same factory an application uses,
with fake servers standing in for the cache endpoints.
"""
