"""
Validation module.

Korean field formats and construction-site business rules.
"""
