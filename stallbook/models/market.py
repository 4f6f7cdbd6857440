from sqlalchemy import Column, String
from stallbook.core.database import Base


class Market(Base):
    __tablename__ = "markets"

    id = Column(String, primary_key=True, index=True)
    city = Column(String, nullable=False)
    name = Column(String, nullable=False)
