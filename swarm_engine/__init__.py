"""Swarm coordination engine.

Formation planning, multi-agent steering, leadership consensus, task
allocation and behavior optimization for fleets of autonomous agents.
The engine is transport-agnostic: it consumes agent snapshots and
inbound messages, and publishes outbound SwarmMessage values on a
MessageBus.
"""

__version__ = "0.1.0"
