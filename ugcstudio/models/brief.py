"""
Intake data written by the form layer; read-only for the billing core.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from ugcstudio.db.base import Base, JSONType


class UgcBrief(Base):
    __tablename__ = "ugc_briefs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, nullable=False, index=True)
    client_name = Column(String, nullable=True)
    video_duration = Column(String, nullable=True)   # 15s, 30s, 60s, 90s, custom
    target_audience = Column(String, nullable=True)
    main_objective = Column(String, nullable=True)
    recording_formats = Column(JSONType, nullable=False, default=list)
    details = Column(JSONType, nullable=False, default=dict)  # remaining free-form answers
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    REQUIRED_FIELDS = ("client_name", "video_duration", "target_audience", "main_objective")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED_FIELDS if not (getattr(self, name) or "").strip()]

    def as_payload(self) -> dict:
        data = dict(self.details or {})
        data.update(
            client_name=self.client_name,
            video_duration=self.video_duration,
            target_audience=self.target_audience,
            main_objective=self.main_objective,
            recording_formats=list(self.recording_formats or []),
        )
        return data


class BrandingAsset(Base):
    __tablename__ = "branding_assets"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)  # logo, broll, b-roll, other
    storage_path = Column(String, nullable=False)  # "<bucket>/<path>"
    asset_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
