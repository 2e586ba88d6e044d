"""
In-app notifications generated when a booking is completed
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer

from core.database import Base


class NotificationLibrary(Base):
    """Message template, e.g. '[guest_name] arrives on [arrival_date]'"""
    __tablename__ = "notification_library"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    notification = Column(Text, nullable=False)
    notification_to = Column(String(255), nullable=True)
    alert_type = Column(String(20), default="admin")
    date_factor = Column(Integer, default=0)  # days from now until dispatch
    enabled = Column(Boolean, default=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_to = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    link = Column(String(512), nullable=True)
    dispatch_date = Column(DateTime, nullable=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "notification_to": self.notification_to,
            "message": self.message,
            "link": self.link,
            "dispatch_date": self.dispatch_date.isoformat() if self.dispatch_date else None,
            "read": bool(self.read),
        }
