import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from skieshare.core.database import Base


class DownloadLog(Base):
    __tablename__ = "download_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey("files.id"), nullable=False, index=True)
    shared_link_id = Column(String(36), ForeignKey("shared_links.id"), nullable=True, index=True)
    download_method = Column(String(32), nullable=False, default="direct")
    downloaded_at = Column(DateTime, default=datetime.utcnow, index=True)
    downloader_ip = Column(String(64), nullable=True)
    downloader_user_agent = Column(String, nullable=True)
