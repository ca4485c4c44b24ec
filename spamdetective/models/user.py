from sqlalchemy import Column, Integer, String, DateTime, JSON, func
from spamdetective.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_login = Column(String(60), nullable=False, index=True)
    user_email = Column(String(100), nullable=False, index=True)

    display_name = Column(String(250), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    user_registered = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    roles = Column(JSON, nullable=True)              # ["subscriber"], ["customer", "editor"]

    post_count = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)  # completed/processing/on-hold orders

    registration_ip = Column(String(45), nullable=True, index=True)  # stored at signup when tracking is on
