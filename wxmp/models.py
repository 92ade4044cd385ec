"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
Reply message models live in replies.py.
"""

from sqlalchemy import BigInteger, Column, String, Text

from wxmp.storage import Base


class StagedReply(Base):
    """
    Reply prepared out of band for a pushed message.

    Table: staged_replies
    Primary Key: (account_id, msg_id); a message has at most one staged reply
    """
    __tablename__ = "staged_replies"

    account_id = Column(String, primary_key=True)
    msg_id = Column(String, primary_key=True)
    msg_type = Column(String, nullable=False)
    payload = Column(Text, nullable=False)  # ContentReply as JSON
    created_at = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds
