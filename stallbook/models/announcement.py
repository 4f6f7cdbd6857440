import datetime

from sqlalchemy import Column, String, Text, DateTime
from stallbook.core.database import Base


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(String, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(
        DateTime, nullable=False, default=datetime.datetime.utcnow, index=True
    )
