# backend/sitedb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Organizations (head office, partner companies, suppliers)
- User accounts and roles
- Login, lockout and access tokens
- Public auth endpoints (login, current user, first admin bootstrap)
- Admin endpoints (manage users and organizations)

Other apps depend on these models for anything related to
"who is allowed to do what".
"""
