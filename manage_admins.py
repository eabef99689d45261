#!/usr/bin/env python3
"""
Manage the admin allow-list (admin_emails). Admins download without spending credits.

Run from project root with DATABASE_URL set:
  python manage_admins.py list
  python manage_admins.py add owner@example.com
  python manage_admins.py remove owner@example.com
"""
import argparse
import sys

from sqlalchemy import func

from app.db.session import SessionLocal
from app.models.admin_email import AdminEmail


def list_admins(db) -> int:
    rows = db.query(AdminEmail).order_by(AdminEmail.created_at).all()
    if not rows:
        print("No admin emails configured.")
    for row in rows:
        print(f"  {row.email}  (since {row.created_at})")
    return 0


def add_admin(db, email: str) -> int:
    email = email.strip().lower()
    existing = db.query(AdminEmail).filter(func.lower(AdminEmail.email) == email).first()
    if existing:
        print(f"{email} is already an admin")
        return 0
    db.add(AdminEmail(email=email))
    db.commit()
    print(f"✅ Added admin {email}")
    return 0


def remove_admin(db, email: str) -> int:
    deleted = (
        db.query(AdminEmail)
        .filter(func.lower(AdminEmail.email) == email.strip().lower())
        .delete(synchronize_session=False)
    )
    db.commit()
    if not deleted:
        print(f"{email} was not an admin")
        return 1
    print(f"✅ Removed admin {email}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List admin emails")
    add = sub.add_parser("add", help="Add an admin email")
    add.add_argument("email")
    remove = sub.add_parser("remove", help="Remove an admin email")
    remove.add_argument("email")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        if args.command == "list":
            return list_admins(db)
        if args.command == "add":
            return add_admin(db, args.email)
        return remove_admin(db, args.email)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
