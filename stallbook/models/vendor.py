from sqlalchemy import Column, String, Boolean, BigInteger
from stallbook.core.database import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String, nullable=True)
    chat_id = Column(BigInteger, unique=True, nullable=True)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
