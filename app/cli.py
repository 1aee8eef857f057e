"""Small maintenance utilities: ``python -m app.cli --initdb --seed``."""

import argparse
import os
from datetime import date

from app.core.config import configure_logging
from app.core.database import Base, SessionLocal, engine
from app.core.security import hash_password
from app.models.models import Book, Category, Role, User

logger = configure_logging()


def seed(db) -> User:
    """Idempotently create the admin account and a small catalog; returns the admin."""
    admin = db.query(User).filter(User.role == Role.ADMIN).order_by(User.id).first()
    if admin is None:
        admin = User(
            username=os.getenv("LIBRARY_ADMIN_USERNAME", "admin"),
            name="Administrator",
            email="admin@library.local",
            password_hash=hash_password(os.getenv("LIBRARY_ADMIN_PASSWORD", "admin123")),
            role=Role.ADMIN,
        )
        db.add(admin)
    if db.query(Category).count() == 0:
        category = Category(name="Software Engineering", description="Programming and system design")
        db.add(category)
        db.flush()
        db.add_all([
            Book(title='Data Engineering with Python', author='J. Reader', isbn='978-1111111111',
                 publish_date=date(2019, 10, 1), quantity=3, available_quantity=3, category_id=category.id),
            Book(title='Designing Data-Intensive Applications', author='Martin Kleppmann',
                 isbn='978-0980000000', publish_date=date(2017, 3, 16), quantity=2, available_quantity=2,
                 category_id=category.id),
        ])
    db.commit()
    db.refresh(admin)
    return admin


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Library borrowing service utilities')
    parser.add_argument('--initdb', action='store_true', help='Create tables')
    parser.add_argument('--seed', action='store_true', help='Seed the admin account and sample books (needs the tables)')
    args = parser.parse_args(argv)
    if args.initdb:
        Base.metadata.create_all(bind=engine)
        logger.info('Created database tables (if not present)')
    if args.seed:
        db = SessionLocal()
        try:
            admin = seed(db)
            logger.info(f'Seeded sample data; set LIBRARY_ADMIN_ID={admin.id}')
        finally:
            db.close()
    print('Done')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
