"""
User model with secure password storage and a role claim.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, one_of

USER_ROLES = ("user", "organizer", "admin")
SIGNUP_ROLES = ("user", "organizer")


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(one_of("role", USER_ROLES), name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
