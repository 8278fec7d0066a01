"""Database models for introql tests (shared).

The ORM is only used to create and seed the tables; introql itself sees them
through reflection.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Team(Base):
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(200), nullable=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True)


class Post(Base):
    __tablename__ = 'posts'

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    author_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    reviewer_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())


# No primary key: rows can be read and inserted but never re-selected
audit_log = Table(
    'audit_log',
    Base.metadata,
    Column('event', String(50), nullable=False),
    Column('detail', String(200)),
)
