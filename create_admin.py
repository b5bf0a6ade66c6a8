#!/usr/bin/env python3
"""
Script to create an administrator account
"""
import sys
from pathlib import Path

app_dir = Path(__file__).parent
if str(app_dir) not in sys.path:
    sys.path.insert(0, str(app_dir))

from app import app, db
from models import User, ROLE_ADMIN, KYC_APPROVED


def create_admin(full_name, email, password):
    """Create a new administrator account. Returns the user, or None if the email is taken."""
    email = email.strip().lower()
    with app.app_context():
        existing = User.query.filter_by(email=email).first()
        if existing:
            print(f"Account with email '{email}' already exists (role {existing.role}).")
            return None

        admin = User(
            full_name=full_name,
            email=email,
            role=ROLE_ADMIN,
            kyc_status=KYC_APPROVED,
        )
        admin.set_password(password)

        db.session.add(admin)
        db.session.commit()

        print("Admin account created successfully!")
        print(f"   Name: {full_name}")
        print(f"   Email: {email}")
        print(f"   User ID: {admin.id}")
        return admin


if __name__ == '__main__':
    print("=" * 60)
    print("CREATE ADMIN ACCOUNT")
    print("=" * 60)

    full_name = input("Enter full name (default: Administrator): ").strip() or "Administrator"
    email = input("Enter email (default: admin@example.com): ").strip() or "admin@example.com"
    password = input("Enter password (default: Admin1234): ").strip() or "Admin1234"

    print()
    create_admin(full_name, email, password)
