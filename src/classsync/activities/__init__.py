"""
Activity (task) subsystem.

Components:
- activity_models.py: Activity dataclass, enums, input coercion
- priority.py: Priority Engine (classify / sort / next urgent / grouping)
- activity_service.py: authoring, listing, ranking and stats for a section
"""
