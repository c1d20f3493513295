"""
Sites module.

Construction sites and the user assignments that scope access to them.
"""
