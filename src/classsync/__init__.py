"""
ClassSync core.

Subsystems:
- activities: task model, Priority Engine, task authoring/listing/stats
- notifications: fan-out builder, inbox (read-state), authoring result helpers
- sections / announcements / polls: the other authoring flows
- storage, push: adapters behind the core ports
"""
