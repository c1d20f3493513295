#!/usr/bin/env python3
import argparse
from typing import Iterable

from sitedb.database import SessionLocal
from sitedb.security import get_password_hash
from sitedb.apps.accounts import models


def _is_known_hash(value: str | None) -> bool:
    if not value:
        return False
    return value.startswith("$argon2") or value.startswith(("$2a$", "$2b$", "$2y$"))


def _iter_target_users(
    session,
    *,
    organization_id: str | None,
    email: str | None,
) -> Iterable[models.User]:
    query = session.query(models.User)
    if organization_id:
        query = query.filter(models.User.organization_id == organization_id)
    if email:
        query = query.filter(models.User.email == email.strip().lower())
    return query.order_by(models.User.email.asc()).all()


def rehash_passwords(
    session,
    *,
    password: str,
    organization_id: str | None = None,
    email: str | None = None,
    force: bool = False,
) -> tuple[list[models.User], list[models.User]]:
    """
    Apply `password` to users whose stored hash is not argon2/bcrypt
    (rows imported by hand) and force a change at next login.

    Returns (updated, skipped). The caller decides whether to commit.
    """
    updated: list[models.User] = []
    skipped: list[models.User] = []
    for user in _iter_target_users(session, organization_id=organization_id, email=email):
        if not force and _is_known_hash(user.hashed_password):
            skipped.append(user)
            continue
        user.hashed_password = get_password_hash(password)
        user.must_change_password = True
        user.login_attempts = 0
        user.locked_until = None
        updated.append(user)
    return updated, skipped


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Re-hash user passwords that were manually inserted into the database."
    )
    parser.add_argument(
        "--password",
        required=True,
        help="The plaintext password to apply before forcing a change on next login.",
    )
    parser.add_argument("--organization-id", help="Restrict to one organization.")
    parser.add_argument("--email", help="Restrict to a single user email.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-hash even if the stored hash already looks valid.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which users would be updated without writing changes.",
    )
    args = parser.parse_args()

    session = SessionLocal()
    try:
        updated, skipped = rehash_passwords(
            session,
            password=args.password,
            organization_id=args.organization_id,
            email=args.email,
            force=args.force,
        )

        if not updated and not skipped:
            print("No users matched the supplied filters.")
            return

        if args.dry_run:
            session.rollback()
            print("Dry run complete.")
            print(f"Would update {len(updated)} user(s).")
            for user in updated:
                print(f"- {user.email} ({user.id})")
            print(f"Skipped {len(skipped)} user(s) with valid hashes.")
            return

        session.commit()
        print(f"Updated {len(updated)} user(s).")
        if skipped:
            print(f"Skipped {len(skipped)} user(s) with valid hashes.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
