"""Scheduling package: admission control, priority queue and generation queue."""
