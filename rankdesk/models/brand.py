"""Brand and app models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from ..database import Base


class Platform(str, Enum):
    """App store platform."""
    ANDROID = "ANDROID"
    IOS = "IOS"


class Role(str, Enum):
    """Caller role supplied by the identity layer."""
    ADMIN = "ADMIN"
    SEO = "SEO"
    WRITER = "WRITER"


class Brand(Base):
    """A client brand managed by the agency."""

    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    domain = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    backlinks = relationship("Backlink", back_populates="brand", cascade="all, delete-orphan")
    apps = relationship("App", back_populates="brand", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Brand(id={self.id}, name='{self.name}')>"


class App(Base):
    """A mobile app belonging to a brand."""

    __tablename__ = "apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    platform = Column(SQLEnum(Platform), default=Platform.ANDROID)

    created_at = Column(DateTime, default=datetime.utcnow)

    brand = relationship("Brand", back_populates="apps")
    rankings = relationship("AppRanking", back_populates="app", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<App(id={self.id}, name='{self.name}', platform={self.platform})>"
