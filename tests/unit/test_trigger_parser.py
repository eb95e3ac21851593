"""Tests for repo_pilot/engine/trigger_parser.py."""

import pytest

from repo_pilot.config.settings import TriggerConfig
from repo_pilot.engine.trigger_parser import parse_comment
from repo_pilot.models.domain import EventType

REPO = "octo/widgets"
ALLOWED = ["alice", "bob"]


@pytest.fixture
def triggers() -> TriggerConfig:
    return TriggerConfig()


class TestParseComment:
    @pytest.mark.parametrize(
        "body,expected",
        [
            ("@repo-pilot please take a look", EventType.MENTION),
            ("/approve", EventType.APPROVE),
            ("/reject please keep the old API", EventType.REJECT),
            ("/abort", EventType.ABORT),
            ("LGTM /APPROVE", EventType.APPROVE),
            ("@Repo-Pilot can you handle this?", EventType.MENTION),
        ],
    )
    def test_keyword_classification(self, make_comment, triggers, body, expected):
        event = parse_comment(make_comment(1, body), REPO, triggers, ALLOWED)

        assert event is not None
        assert event.type is expected

    def test_event_carries_comment_fields(self, make_comment, triggers):
        comment = make_comment(1001, "/approve", author="bob", issue_number=7, minutes=3)

        event = parse_comment(comment, REPO, triggers, ALLOWED)

        assert event.repo == REPO
        assert event.issue_number == 7
        assert event.source_comment_id == 1001
        assert event.author == "bob"
        assert event.body == "/approve"
        assert event.created_at == comment.created_at

    @pytest.mark.parametrize(
        "body,expected",
        [
            ("@repo-pilot /approve", EventType.APPROVE),
            ("/reject and /abort", EventType.REJECT),
            ("@repo-pilot /abort", EventType.ABORT),
            ("/approve? no, /reject", EventType.APPROVE),
        ],
    )
    def test_priority_order(self, make_comment, triggers, body, expected):
        assert parse_comment(make_comment(1, body), REPO, triggers, ALLOWED).type is expected

    def test_no_keyword_is_discarded(self, make_comment, triggers):
        assert parse_comment(make_comment(1, "Thanks for the report!"), REPO, triggers, ALLOWED) is None

    def test_signed_comment_is_discarded(self, make_comment, triggers):
        body = f"## 📋 Implementation Plan\n\nReply /approve\n\n{triggers.signature}"

        assert parse_comment(make_comment(1, body), REPO, triggers, ALLOWED) is None

    def test_author_not_allowed_is_discarded(self, make_comment, triggers):
        assert parse_comment(make_comment(1, "/approve", author="mallory"), REPO, triggers, ALLOWED) is None

    def test_author_match_is_exact(self, make_comment, triggers):
        assert parse_comment(make_comment(1, "/approve", author="Alice"), REPO, triggers, ALLOWED) is None

    def test_custom_keywords(self, make_comment):
        triggers = TriggerConfig(mention="@bot", approve="lgtm", reject="nope", abort="stop")

        assert parse_comment(make_comment(1, "LGTM"), REPO, triggers, ALLOWED).type is EventType.APPROVE
        assert parse_comment(make_comment(2, "/approve"), REPO, triggers, ALLOWED) is None
