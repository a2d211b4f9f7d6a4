"""
Notes subsystem.

Components:
- api.py: high-level helpers used by screens (add/delete notebooks and notes,
  edit text, background content transforms) and the list query specs
"""
