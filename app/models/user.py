from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.types import UTCDateTime, utcnow


class User(Base):
    """
    User model synchronized with Supabase Auth.

    Note: Passwords are not stored here - Supabase Auth manages authentication.
    This model only stores user metadata used by checkout (billing prefill)
    and the admin role check.
    """
    __tablename__ = "users"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Supabase Auth UUID (auth.users.id)
    supabase_user_id = Column(String(255), unique=True, index=True, nullable=False)

    # User email address
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Display name, used to prefill billing contact
    full_name = Column(String(255), nullable=True)

    # User role: 'user', 'admin'
    role = Column(String(50), nullable=False, default="user")

    # Account status
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships: One user can have multiple subscriptions (historical)
    subscriptions = relationship(
        "UserSubscription",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="select"
    )

    # Relationships: checkout sessions started by this user
    checkout_sessions = relationship(
        "CheckoutSession",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="select"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
