import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text

from ugcstudio.db.base import Base, JSONType


class VideoRequestStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    IDEATION = "IDEATION"
    PRE_REVIEW_PENDING = "PRE_REVIEW_PENDING"
    PRE_APPROVED = "PRE_APPROVED"
    GENERATING = "GENERATING"
    EDITING = "EDITING"
    POST_REVIEW_PENDING = "POST_REVIEW_PENDING"
    POST_APPROVED = "POST_APPROVED"
    READY = "READY"
    EXPORTED = "EXPORTED"
    FAILED = "FAILED"


# Forward pipeline; FAILED is reachable from every non-terminal state.
STATUS_PIPELINE = [
    VideoRequestStatus.QUEUED,
    VideoRequestStatus.IDEATION,
    VideoRequestStatus.PRE_REVIEW_PENDING,
    VideoRequestStatus.PRE_APPROVED,
    VideoRequestStatus.GENERATING,
    VideoRequestStatus.EDITING,
    VideoRequestStatus.POST_REVIEW_PENDING,
    VideoRequestStatus.POST_APPROVED,
    VideoRequestStatus.READY,
    VideoRequestStatus.EXPORTED,
]
TERMINAL_STATUSES = {VideoRequestStatus.EXPORTED, VideoRequestStatus.FAILED}


def can_transition(old: VideoRequestStatus, new: VideoRequestStatus) -> bool:
    if old in TERMINAL_STATUSES:
        return False
    if new == VideoRequestStatus.FAILED:
        return True
    idx = STATUS_PIPELINE.index(old)
    return idx + 1 < len(STATUS_PIPELINE) and STATUS_PIPELINE[idx + 1] == new


class VideoRequestBatch(Base):
    __tablename__ = "video_request_batches"

    batch_id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, nullable=False, index=True)
    idempotency_key = Column(String, nullable=False, unique=True)
    brief_id = Column(String, nullable=False)
    video_count = Column(Integer, nullable=False)
    custom_instructions = Column(Text, nullable=True)
    asset_ids = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class VideoRequest(Base):
    __tablename__ = "video_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, nullable=False, index=True)
    batch_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=VideoRequestStatus.QUEUED.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
