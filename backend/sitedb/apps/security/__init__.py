"""
Security module.

IP block list, export ledger, error tracker and the production security
monitor.
"""
