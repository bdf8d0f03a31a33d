"""
FlightCTL - mission orchestration for MAVLink autopilots

Connects to a vehicle, waits for it to be flight ready, uploads a
QGroundControl plan and runs it while streaming telemetry to the caller.
"""

__version__ = "0.1.0"
