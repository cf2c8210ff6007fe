# make_admin.py
# Usage: python make_admin.py   (or: flask --app app seed)

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from hunt.audit import AuditLogHelper
from models import User, UserRole


def seed_admin(email=None, password=None):
    """Create the admin account from ADMIN_EMAIL / ADMIN_PASSWORD. Returns (user, created)."""
    email = (email or current_app.config["ADMIN_EMAIL"]).strip().lower()
    password = password or current_app.config["ADMIN_PASSWORD"]

    user = User.query.filter_by(email=email).first()
    if user:
        if user.role != UserRole.ADMIN:
            user.role = UserRole.ADMIN
            AuditLogHelper.record("USER_PROMOTED_ADMIN", "USER", user.id, new_values={"role": UserRole.ADMIN})
            db.session.commit()
            current_app.logger.info(f"Promoted existing user {user.id} to admin")
        return user, False

    try:
        user = User(
            email=email,
            first_name="Admin",
            last_name="User",
            role=UserRole.ADMIN,
            email_verified=True,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        AuditLogHelper.record("ADMIN_SEEDED", "USER", user.id, new_values={"email": email})
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another process
        db.session.rollback()
        return User.query.filter_by(email=email).one(), False

    current_app.logger.info(f"Created admin user {user.id} ({email})")
    return user, True


if __name__ == "__main__":
    from app import app

    with app.app_context():
        admin, created = seed_admin()
        print(f"Admin {admin.email} {'created' if created else 'already exists'}. Change the password after first login.")
