"""
Station telemetry core.

Normalizes battery-swap-station sensor readings, estimates state of charge
and charging phase, keeps bounded chart windows per entity, and supervises a
live telemetry feed with automatic fallback to a simulated source.

CHANGELOG:
- 2026-10-12: Add rover fleet simulator and fleet monitor
- 2026-10-05: Initial creation

TODO:
- None
"""
