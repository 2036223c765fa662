from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from finwrk.app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    company_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    clients = relationship("Client", back_populates="owner", cascade="all, delete-orphan", foreign_keys="Client.owner_id")
    invoices = relationship("Invoice", back_populates="owner", cascade="all, delete-orphan", foreign_keys="Invoice.owner_id")
    payments = relationship("Payment", back_populates="owner", cascade="all, delete-orphan", foreign_keys="Payment.owner_id")
    recurring_templates = relationship(
        "RecurringTemplate", back_populates="owner", cascade="all, delete-orphan", foreign_keys="RecurringTemplate.owner_id"
    )
    reminders = relationship("Reminder", back_populates="owner", cascade="all, delete-orphan", foreign_keys="Reminder.owner_id")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
