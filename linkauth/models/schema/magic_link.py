from sqlalchemy import Column, ForeignKey, Index, Integer, String

from linkauth.database import Base, UTCDateTime


class MagicLinkEntry(Base):
    __tablename__ = "magic_links"

    id = Column(Integer, primary_key=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    expires_at = Column(UTCDateTime, nullable=False)
    consumed_at = Column(UTCDateTime, nullable=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (Index("ix_magic_links_expires_at", "expires_at"),)
