"""Backlink, prospect, link directory and competitor import models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean, Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from ..database import Base


class ProspectStatus(str, Enum):
    """Outreach status of a backlink prospect."""
    NOT_CONTACTED = "NOT_CONTACTED"
    CONTACTED = "CONTACTED"
    RESPONDED = "RESPONDED"
    NEGOTIATING = "NEGOTIATING"
    DEAL_LOCKED = "DEAL_LOCKED"
    REJECTED = "REJECTED"
    NO_RESPONSE = "NO_RESPONSE"


class ContactMethod(str, Enum):
    """How a site owner was contacted."""
    EMAIL = "EMAIL"
    CONTACT_FORM = "CONTACT_FORM"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    OTHER = "OTHER"


class LinkDirectoryDomain(Base):
    """Canonical record of everything known about one root domain."""

    __tablename__ = "link_directory_domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    root_domain = Column(String(255), nullable=False, unique=True, index=True)
    example_url = Column(String(1000))

    # Metrics
    domain_rating = Column(Integer)
    domain_traffic = Column(Integer)
    nofollow = Column(Boolean, default=False)

    # Contact
    contacted_on = Column(DateTime)
    contact_method = Column(SQLEnum(ContactMethod))
    contact_email = Column(String(255))
    contact_form_url = Column(String(1000))
    remarks = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    backlinks = relationship("Backlink", back_populates="directory_domain")
    prospects = relationship("BacklinkProspect", back_populates="directory_domain")

    def __repr__(self):
        return f"<LinkDirectoryDomain(id={self.id}, root_domain='{self.root_domain}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "root_domain": self.root_domain,
            "example_url": self.example_url,
            "domain_rating": self.domain_rating,
            "domain_traffic": self.domain_traffic,
            "nofollow": self.nofollow,
            "contacted_on": self.contacted_on.isoformat() if self.contacted_on else None,
            "contact_method": self.contact_method.value if self.contact_method else None,
            "contact_email": self.contact_email,
            "contact_form_url": self.contact_form_url,
            "remarks": self.remarks,
        }


class Backlink(Base):
    """A live backlink secured for a brand."""

    __tablename__ = "backlinks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False, index=True)

    referring_page_url = Column(String(1000), nullable=False)
    root_domain = Column(String(255), nullable=False, index=True)
    domain_rating = Column(Integer)
    domain_traffic = Column(Integer)
    link_type = Column(String(50))  # dofollow / nofollow

    link_directory_domain_id = Column(Integer, ForeignKey("link_directory_domains.id"), index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    brand = relationship("Brand", back_populates="backlinks")
    directory_domain = relationship("LinkDirectoryDomain", back_populates="backlinks")

    def __repr__(self):
        return f"<Backlink(id={self.id}, root_domain='{self.root_domain}')>"


class BacklinkProspect(Base):
    """A candidate backlink source moving through outreach."""

    __tablename__ = "backlink_prospects"

    id = Column(Integer, primary_key=True, autoincrement=True)

    referring_page_url = Column(String(1000), nullable=False, unique=True)
    root_domain = Column(String(255), nullable=False, index=True)
    domain_rating = Column(Integer)
    domain_traffic = Column(Integer)
    nofollow = Column(Boolean, default=False)

    # Outreach
    contacted_on = Column(DateTime)
    contact_method = Column(SQLEnum(ContactMethod))
    contact_email = Column(String(255))
    contact_form_url = Column(String(1000))
    remarks = Column(Text)

    status = Column(SQLEnum(ProspectStatus), default=ProspectStatus.NOT_CONTACTED, index=True)
    source = Column(String(255))  # e.g. "ahrefs-rival.com"

    link_directory_domain_id = Column(Integer, ForeignKey("link_directory_domains.id"), index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    directory_domain = relationship("LinkDirectoryDomain", back_populates="prospects")

    def __repr__(self):
        return f"<BacklinkProspect(id={self.id}, root_domain='{self.root_domain}', status={self.status})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "referring_page_url": self.referring_page_url,
            "root_domain": self.root_domain,
            "domain_rating": self.domain_rating,
            "domain_traffic": self.domain_traffic,
            "nofollow": self.nofollow,
            "status": self.status.value if self.status else None,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CompetitorImport(Base):
    """Audit copy of one competitor backlink row from an import batch."""

    __tablename__ = "competitor_imports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    import_batch_id = Column(String(64), nullable=False, index=True)
    competitor_domain = Column(String(255), nullable=False, index=True)

    referring_page_url = Column(String(1000), nullable=False)
    root_domain = Column(String(255), nullable=False)
    domain_rating = Column(Integer, index=True)
    domain_traffic = Column(Integer)
    anchor = Column(Text)
    link_type = Column(String(50))
    classification = Column(String(50))

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<CompetitorImport(id={self.id}, batch='{self.import_batch_id}', root_domain='{self.root_domain}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "import_batch_id": self.import_batch_id,
            "competitor_domain": self.competitor_domain,
            "referring_page_url": self.referring_page_url,
            "root_domain": self.root_domain,
            "domain_rating": self.domain_rating,
            "domain_traffic": self.domain_traffic,
            "anchor": self.anchor,
            "link_type": self.link_type,
            "classification": self.classification,
        }
