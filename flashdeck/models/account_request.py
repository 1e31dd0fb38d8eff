# flashdeck/models/account_request.py
from sqlalchemy import Column, DateTime, String

from flashdeck.db.base import Base


class AccountRequest(Base):
    __tablename__ = "account_requests"

    id = Column(String(32), primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    password = Column(String(255), nullable=False)
    requested_role = Column(String(20), nullable=False, default="student")
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False)
