"""
Attendance module.

Daily check-in/check-out, manager bulk entry and attendance summaries.
"""
