"""
Materials module.

Material master, per-site stock, movement ledger, requests, production
batches and outbound shipments.
"""
