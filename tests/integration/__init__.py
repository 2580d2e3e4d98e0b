"""
Integration tests.

Run every pipeline component against the in-memory bus and stores, wired
the way the service runner wires them.
"""
