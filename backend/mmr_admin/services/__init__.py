"""Core services: config resolution, credential handshake, admin API client, task monitor.

There is no module-level registry; callers own the instances (see ``session``).
"""
