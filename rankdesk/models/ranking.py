"""Keyword rank tracking models."""

from datetime import datetime

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import Base


class RankTracker(Base):
    """A (keyword, country, domain) combination tracked against a ranking provider."""

    __tablename__ = "rank_trackers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(500), nullable=False)
    country = Column(String(10), nullable=False)  # provider database, e.g. "us"
    domain = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    last_checked = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    history = relationship("RankTrackerHistory", back_populates="rank_tracker", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("keyword", "country", "domain", name="uq_rank_tracker_keyword_country_domain"),
    )

    def __repr__(self):
        return f"<RankTracker(id={self.id}, keyword='{self.keyword}', country='{self.country}')>"


class RankTrackerHistory(Base):
    """One daily observation of a tracker's position."""

    __tablename__ = "rank_tracker_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rank_tracker_id = Column(Integer, ForeignKey("rank_trackers.id"), nullable=False)

    position = Column(Integer, nullable=False, default=0)  # 0 = not ranked
    url = Column(String(1000))
    traffic = Column(Integer)
    search_volume = Column(Integer)
    difficulty = Column(Integer)
    cpc = Column(Float)
    competition = Column(Float)
    trend = Column(Integer)
    date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    rank_tracker = relationship("RankTracker", back_populates="history")

    __table_args__ = (
        UniqueConstraint("rank_tracker_id", "date", name="uq_rank_history_tracker_date"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "rank_tracker_id": self.rank_tracker_id,
            "position": self.position,
            "url": self.url,
            "traffic": self.traffic,
            "search_volume": self.search_volume,
            "difficulty": self.difficulty,
            "cpc": self.cpc,
            "date": self.date.isoformat() if self.date else None,
        }


class AppRanking(Base):
    """App-store ranking of an app for a keyword in a country on a day."""

    __tablename__ = "app_rankings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(Integer, ForeignKey("apps.id"), nullable=False)
    keyword = Column(String(500), nullable=False)
    country = Column(String(10), nullable=False)
    rank = Column(Integer, nullable=False, default=0)  # 0 = not ranked
    score = Column(Integer)
    traffic = Column(Integer)
    date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    app = relationship("App", back_populates="rankings")

    __table_args__ = (
        UniqueConstraint("app_id", "keyword", "country", "date", name="uq_app_ranking_app_keyword_country_date"),
        Index("idx_app_ranking_date", "date"),
    )

    def __repr__(self):
        return f"<AppRanking(app_id={self.app_id}, keyword='{self.keyword}', rank={self.rank}, date={self.date})>"
