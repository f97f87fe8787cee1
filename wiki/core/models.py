from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from wiki.core.database import Base


# =========================
# User (credential store)
# =========================
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    username = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="reader")

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
