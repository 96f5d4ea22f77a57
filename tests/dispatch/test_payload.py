"""Tests for the automation payload contract."""
from urllib.parse import parse_qs, urlparse

import pytest

from ugcstudio.models.brief import BrandingAsset, UgcBrief
from ugcstudio.models.video_request import VideoRequestBatch
from ugcstudio.services.dispatch.payload import build_payload, parse_duration, parse_ratio
from ugcstudio.services.storage.signer import AssetUrlSigner


@pytest.fixture
def signer():
    return AssetUrlSigner(secret="payload-test-secret-123456", base_url="https://cdn.test/assets/", ttl_seconds=60)


def _batch(**kwargs):
    fields = dict(
        batch_id="batch-1",
        account_id="acct-1",
        idempotency_key="key-1",
        brief_id="brief-1",
        video_count=3,
        custom_instructions=None,
        asset_ids=[],
    )
    fields.update(kwargs)
    return VideoRequestBatch(**fields)


def _brief(**kwargs):
    fields = dict(
        id="brief-1",
        account_id="acct-1",
        client_name="Acme",
        video_duration="30s",
        target_audience="Students",
        main_objective="Awareness",
        recording_formats=["Square (1:1)"],
        details={"tone": "calm"},
    )
    fields.update(kwargs)
    return UgcBrief(**fields)


class TestParsers:
    @pytest.mark.parametrize(
        "value, expected",
        [("15s", 15), ("30s", 30), ("60s", 60), ("90s", 90), ("custom", 60), (None, 60), ("", 60)],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize(
        "formats, expected",
        [
            (["Vertical (9:16)"], "9:16"),
            (["TikTok/Instagram Stories", "Square (1:1)"], "9:16"),
            (["Instagram Feed"], "1:1"),
            (["Square (1:1)"], "1:1"),
            (["Horizontal (16:9)"], "16:9"),
            ([], "16:9"),
            (None, "16:9"),
        ],
    )
    def test_parse_ratio(self, formats, expected):
        assert parse_ratio(formats) == expected


class TestBuildPayload:
    def test_contract_fields(self, signer):
        assets = [
            BrandingAsset(id="a1", account_id="acct-1", type="logo", storage_path="branding/acct-1/logo.png",
                          asset_metadata={"palette": ["#112233", "#ffffff"]}),
            BrandingAsset(id="a2", account_id="acct-1", type="broll", storage_path="branding/acct-1/b 1.mp4",
                          asset_metadata={}),
            BrandingAsset(id="a3", account_id="acct-1", type="b-roll", storage_path="branding/acct-1/b2.mp4",
                          asset_metadata={}),
        ]
        payload = build_payload(
            _batch(custom_instructions="Use the red mug"),
            _brief(),
            assets,
            signer,
            callback_url="https://api.test/callbacks/video",
        )

        assert payload["idempotency_key"] == "key-1"
        assert payload["request_id"] == "batch-1"
        assert payload["account_id"] == "acct-1"
        assert payload["branding"]["palette"] == ["#112233", "#ffffff"]
        assert payload["branding"]["logo_url"].startswith("https://cdn.test/assets/branding/acct-1/logo.png?token=")
        assert len(payload["brolls"]) == 2
        assert payload["brolls"][0].startswith("https://cdn.test/assets/branding/acct-1/b%201.mp4?token=")
        assert payload["ugc_brief"]["client_name"] == "Acme"
        assert payload["ugc_brief"]["tone"] == "calm"
        assert payload["video_generation"] == {
            "video_count": 3,
            "custom_instructions": "Use the red mug",
            "batch_id": "batch-1",
        }
        assert payload["constraints"] == {"duration_sec": 30, "ratio": "1:1"}
        assert payload["callback_url"] == "https://api.test/callbacks/video"
        assert payload["created_at"]

    def test_signed_urls_verify_back_to_storage_path(self, signer):
        logo = BrandingAsset(id="a1", account_id="acct-1", type="logo", storage_path="branding/x.png", asset_metadata={})
        payload = build_payload(_batch(), _brief(), [logo], signer)

        token = parse_qs(urlparse(payload["branding"]["logo_url"]).query)["token"][0]
        assert signer.verify(token) == "branding/x.png"
        assert signer.verify(token + "tampered") is None

    def test_without_logo(self, signer):
        broll = BrandingAsset(id="a2", account_id="acct-1", type="broll", storage_path="b.mp4", asset_metadata={})
        payload = build_payload(_batch(), _brief(), [broll], signer)

        assert payload["branding"] == {"logo_url": None, "palette": None}
        assert payload["video_generation"]["custom_instructions"] == ""
