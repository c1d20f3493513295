"""
Dashboard module.

Read-only aggregates for the admin home screen and the per-site overview.
"""
