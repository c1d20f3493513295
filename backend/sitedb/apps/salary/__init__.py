"""
Salary module.

Worker pay settings, tax rates, per-day payroll calculation and batch
calculation from daily report labour entries.
"""
