"""
Notification subsystem.

Components:
- notification_models.py: Notification record, kinds, FanoutEvent/FanoutResult
- fanout.py: truncation + atomic fan-out + best-effort push
- inbox.py: per-recipient listing and read-state transitions
- api.py: notify_section helper and AuthoringResult used by authoring flows
"""
