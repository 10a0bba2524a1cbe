"""
Core application engine for orchestrating parallel builds.

This package contains the primary logic. The `BuildOrchestrator` acts as the
session coordinator, running one `BuildTaskWorker` per device; each worker
drives a `BuildPoller` and then downloads the finished images.
"""
