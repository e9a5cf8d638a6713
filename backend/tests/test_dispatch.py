"""Tests for delivering review decisions to the remote engine."""

from __future__ import annotations

import pytest
import requests

from backend.flowgate.extensions import db
from backend.flowgate.models.review import ReviewRequest
from backend.flowgate.reviews.dispatch import build_decision, dispatch
from backend.flowgate.utils.clock import utcnow


def _decided(review_factory, status: str, feedback: str | None = None) -> ReviewRequest:
    review = review_factory()
    review.status = status
    review.feedback = feedback
    review.reviewer_id = "7"
    review.reviewed_at = utcnow()
    db.session.commit()
    return review


def test_dispatch_posts_decision_once(engine, review_factory):
    review = _decided(review_factory, "rejected", feedback="Wrong tone")

    assert dispatch(review) is True

    assert len(engine.resumes) == 1
    body = engine.resumes[0]["json"]
    assert body["decision"] == "abort"
    assert body["approved"] is False
    assert body["feedback"] == "Wrong tone"
    assert body["reviewerId"] == "7"
    assert body["reviewedAt"].endswith("Z")
    assert engine.resumes[0]["timeout"] == 5


def test_dispatch_failure_is_logged_not_raised(engine, review_factory, caplog):
    review = _decided(review_factory, "approved")
    engine.fail("POST", "webhook-waiting", requests.Timeout("slow"))

    with caplog.at_level("ERROR"):
        assert dispatch(review) is False

    assert "Failed to resume execution exec-1" in caplog.text
    assert len(engine.resumes) == 1


def test_pending_review_has_nothing_to_dispatch(review_factory):
    with pytest.raises(ValueError):
        build_decision(review_factory())
