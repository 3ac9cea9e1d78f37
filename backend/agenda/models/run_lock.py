from sqlalchemy import Column, String
from agenda.core.database import Base, UTCDateTime, utcnow


class RunLockEntry(Base):
    __tablename__ = "run_locks"

    key = Column(String, primary_key=True)

    # Random token of the current holder; release only deletes its own row
    holder = Column(String(36), nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    acquired_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<RunLockEntry(key={self.key}, expires_at={self.expires_at})>"
