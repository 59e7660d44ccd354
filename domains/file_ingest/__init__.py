"""
File Ingestion Domain

Monitors the downloads directory for newly arrived files:
- Collectors: inbox listing policy and the watchdog/timer scheduler
- Processors: extension routing, collision-free naming, the move engine
- State: per-file registry, installer lifecycle tracker, activity log

``service.InboxOrganizer`` wires them together on one serialized lane.
"""

__all__ = ["collectors", "processors", "state"]
