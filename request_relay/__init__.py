"""
Request Relay

Tenant-isolated pipeline that executes HTTP requests now or at a future
instant: intake, durable delayed scheduling with crash recovery, execution
and outcome reconciliation over a shared message bus.
"""

__version__ = "1.0.0"
