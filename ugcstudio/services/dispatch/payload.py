"""
Automation payload contract (X-Contract-Version: 1).

Brief + signed asset URLs + batch metadata, in the shape the video automation
workflow consumes.
"""
from datetime import datetime, timezone
from typing import Any

from ugcstudio.models.brief import BrandingAsset, UgcBrief
from ugcstudio.models.video_request import VideoRequestBatch
from ugcstudio.services.storage.signer import AssetUrlSigner

DURATION_SECONDS = {"15s": 15, "30s": 30, "60s": 60, "90s": 90}
DEFAULT_DURATION_SECONDS = 60

VERTICAL_FORMATS = ("Vertical (9:16)", "TikTok/Instagram Stories")
SQUARE_FORMATS = ("Square (1:1)", "Instagram Feed")

LOGO_TYPES = ("logo",)
BROLL_TYPES = ("broll", "b-roll")


def parse_duration(duration: str | None) -> int:
    return DURATION_SECONDS.get(duration or "", DEFAULT_DURATION_SECONDS)


def parse_ratio(formats: list[str] | None) -> str:
    if not formats:
        return "16:9"
    if any(f in formats for f in VERTICAL_FORMATS):
        return "9:16"
    if any(f in formats for f in SQUARE_FORMATS):
        return "1:1"
    return "16:9"


def build_payload(
    batch: VideoRequestBatch,
    brief: UgcBrief,
    assets: list[BrandingAsset],
    signer: AssetUrlSigner,
    callback_url: str = "",
) -> dict[str, Any]:
    logo = next((a for a in assets if a.type in LOGO_TYPES), None)
    brolls = [a for a in assets if a.type in BROLL_TYPES]
    return {
        "idempotency_key": batch.idempotency_key,
        "request_id": batch.batch_id,
        "account_id": batch.account_id,
        "branding": {
            "logo_url": signer.sign(logo.storage_path) if logo else None,
            "palette": (logo.asset_metadata or {}).get("palette") if logo else None,
        },
        "brolls": [signer.sign(a.storage_path) for a in brolls],
        "ugc_brief": brief.as_payload(),
        "video_generation": {
            "video_count": batch.video_count,
            "custom_instructions": batch.custom_instructions or "",
            "batch_id": batch.batch_id,
        },
        "constraints": {
            "duration_sec": parse_duration(brief.video_duration),
            "ratio": parse_ratio(brief.recording_formats),
        },
        "callback_url": callback_url,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
