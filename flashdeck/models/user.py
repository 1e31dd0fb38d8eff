# flashdeck/models/user.py
from sqlalchemy import Column, String

from flashdeck.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    # normalized "first last", used for login lookup
    name_key = Column(String(201), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="student")  # admin / teacher / student
    subject = Column(String(50), nullable=True)
