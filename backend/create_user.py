#!/usr/bin/env python3
"""
Create (or update) an account and print an access token for it.

Usage:
    python create_user.py admin@bf.com "Ops Admin" admin
    python create_user.py shop@bf.com "Accra Outlet" outlet --outlet-name "Accra Central"
"""
import argparse
import logging
import os
import sys

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from breakfast_api.core.database import SessionLocal, init_db
from breakfast_api.core.log_config import configure_logging
from breakfast_api.core.order_number_service import ensure_counter
from breakfast_api.core.roles import Role
from breakfast_api.core.security import create_access_token
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.user import User


logger = logging.getLogger("breakfast_api.create_user")


def create_user(email: str, name: str, role: str, outlet_name: str = None) -> str:
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.name = name
            user.role = role
            logger.info("updating existing user %s", email)
        else:
            user = User(email=email, name=name, role=role)
            db.add(user)
        db.flush()

        if role == Role.outlet.value:
            outlet = db.query(Outlet).filter(Outlet.owner_id == user.id).first()
            if not outlet:
                outlet = Outlet(name=outlet_name or name, owner_id=user.id, email=email)
                db.add(outlet)
                db.flush()
                ensure_counter(db, outlet.id)
                logger.info("outlet '%s' created with id %s", outlet.name, outlet.id)

        db.commit()
        db.refresh(user)
        return create_access_token(user.id, role=user.role)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an account and print its access token")
    parser.add_argument("email")
    parser.add_argument("name")
    parser.add_argument("role", choices=[r.value for r in Role])
    parser.add_argument("--outlet-name", default=None)
    args = parser.parse_args()

    configure_logging()
    init_db()
    token = create_user(args.email, args.name, args.role, args.outlet_name)
    print(f"{'='*50}")
    print(f"Email: {args.email}")
    print(f"Role: {args.role}")
    print(f"Access token: {token}")
    print(f"{'='*50}")


if __name__ == '__main__':
    main()
