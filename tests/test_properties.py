"""Tests for property accessors, sync keys and the draft policy."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from crosspost.sync.keys import parse_sync_key, sync_key
from crosspost.sync.models import PublishMode
from crosspost.sync.policies import DRAFT_SCHEDULE_OFFSET, DraftPolicy
from crosspost.sync.properties import PropertyBag, resolve_cover_url


class TestPropertyBag:
    def test_text_from_rich_text_or_title(self):
        bag = PropertyBag(
            {
                "A": {"rich_text": [{"plain_text": "from rich"}]},
                "B": {"title": [{"text": {"content": "from title"}}]},
            }
        )
        assert bag.text("A") == "from rich"
        assert bag.text("B") == "from title"

    def test_missing_and_malformed_return_defaults(self):
        bag = PropertyBag({"A": "not a dict", "B": {"rich_text": "nope"}, "N": {"number": True}})
        assert bag.text("A") == ""
        assert bag.text("B") == ""
        assert bag.text("missing") == ""
        assert bag.number("N") is None
        assert bag.tags("missing") == []
        assert bag.date("missing") == ""

    def test_non_dict_bag(self):
        assert PropertyBag(None).text("A") == ""

    def test_url_falls_back_to_text(self):
        bag = PropertyBag(
            {
                "U": {"url": "https://a.b"},
                "T": {"url": None, "rich_text": [{"plain_text": "https://c.d"}]},
            }
        )
        assert bag.url("U") == "https://a.b"
        assert bag.url("T") == "https://c.d"

    def test_tags_select_and_multi_select(self):
        bag = PropertyBag(
            {
                "S": {"select": {"name": "rpg"}},
                "M": {"multi_select": [{"name": "a"}, {"bad": 1}, {"name": "b"}]},
            }
        )
        assert bag.tags("S") == ["rpg"]
        assert bag.tags("M") == ["a", "b"]

    def test_number(self):
        assert PropertyBag({"R": {"number": 7}}).number("R") == 7

    def test_date_start_or_created(self):
        bag = PropertyBag(
            {
                "D": {"date": {"start": "2024-01-02"}},
                "C": {"created_time": "2024-02-03T00:00:00Z"},
            }
        )
        assert bag.date("D") == "2024-01-02"
        assert bag.date("C") == "2024-02-03T00:00:00Z"


class TestResolveCoverUrl:
    def test_page_cover_first(self):
        cover = {"type": "file", "file": {"url": "https://s3/cover.png"}}
        props = {"Cover": {"url": "https://other/x.png"}}
        assert resolve_cover_url(cover, props) == "https://s3/cover.png"

    def test_cover_files_property(self):
        props = {"Cover": {"files": [{"type": "external", "external": {"url": "https://e/c.png"}}]}}
        assert resolve_cover_url(None, props) == "https://e/c.png"

    def test_main_image_fallback(self):
        props = {"MainImage": {"rich_text": [{"plain_text": "https://m/i.png"}]}}
        assert resolve_cover_url(None, props) == "https://m/i.png"

    def test_empty_cover_property_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert resolve_cover_url(None, {"Cover": {"files": []}}) == ""
        assert "Cover" in caplog.text

    def test_nothing(self):
        assert resolve_cover_url(None, None) == ""


class TestSyncKeys:
    def test_primary_target_uses_bare_id(self):
        assert sync_key("A1", "wechat", "wechat") == "A1"

    def test_other_target_prefixed(self):
        assert sync_key("A1", "blog", "wechat") == "blog:A1"

    def test_keys_case_sensitive(self):
        assert sync_key("a1", "blog", "wechat") != sync_key("A1", "blog", "wechat")

    @pytest.mark.parametrize(
        "item_id,target,message",
        [("", "blog", "item_id"), ("A1", "", "target"), ("A1", "b:log", "cannot contain")],
    )
    def test_invalid(self, item_id, target, message):
        with pytest.raises(ValueError, match=message):
            sync_key(item_id, target, "wechat")

    def test_parse(self):
        assert parse_sync_key("A1", "wechat") == ("A1", "wechat")
        assert parse_sync_key("blog:A1", "wechat") == ("A1", "blog")


class TestDraftPolicy:
    def test_publish_untouched(self):
        decision = DraftPolicy().resolve(PublishMode.PUBLISH, "bilibili", False)
        assert decision.mode == PublishMode.PUBLISH
        assert decision.scheduled_at is None

    def test_draft_supported(self):
        decision = DraftPolicy().resolve(PublishMode.DRAFT, "wechat", True)
        assert decision.mode == PublishMode.DRAFT
        assert decision.scheduled_at is None

    def test_draft_unsupported_scheduled(self, caplog):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        with caplog.at_level(logging.WARNING):
            decision = DraftPolicy().resolve(PublishMode.DRAFT, "bilibili", False, now=now)
        assert decision.mode == PublishMode.PUBLISH
        assert decision.scheduled_at == now + timedelta(days=14)
        assert DRAFT_SCHEDULE_OFFSET == timedelta(days=14)
        assert "bilibili has no drafts" in caplog.text

    def test_custom_offset(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        decision = DraftPolicy(timedelta(hours=1)).resolve(
            PublishMode.DRAFT, "bilibili", False, now=now
        )
        assert decision.scheduled_at == now + timedelta(hours=1)
