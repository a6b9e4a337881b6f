from termvoice.models import Verdict
from termvoice.services.approval import ApprovalTracker
from termvoice.services.classifier import GarbageClassifier


def test_prompt_opens_context_until_deadline() -> None:
    tracker = ApprovalTracker(timeout_seconds=10)

    state = tracker.observe(Verdict.APPROVAL_PROMPT, now=100.0)

    assert state.active
    assert state.deadline == 110.0
    assert tracker.current(105.0).active
    assert not tracker.current(111.0).active


def test_content_does_not_open_context() -> None:
    tracker = ApprovalTracker()

    assert not tracker.observe(Verdict.CONTENT, now=0.0).active
    assert not tracker.observe(Verdict.GARBAGE, now=1.0).active


def test_latest_approval_verdict_extends_deadline() -> None:
    tracker = ApprovalTracker(timeout_seconds=10)
    tracker.observe(Verdict.APPROVAL_PROMPT, now=0.0)

    tracker.observe(Verdict.APPROVAL_OPTION, now=8.0)

    assert tracker.current(15.0).active
    assert not tracker.current(18.5).active


def test_expiry_is_lazy_and_sticky() -> None:
    tracker = ApprovalTracker(timeout_seconds=1)
    tracker.activate(0.0)

    assert not tracker.current(5.0).active
    # Going back in time after expiry does not resurrect the context
    assert not tracker.current(0.5).active


def test_reset_clears_immediately() -> None:
    tracker = ApprovalTracker()
    tracker.activate(0.0)

    tracker.reset()

    assert not tracker.current(0.1).active


def test_expired_context_no_longer_affects_classification() -> None:
    classifier = GarbageClassifier()
    tracker = ApprovalTracker(timeout_seconds=10)
    tracker.observe(Verdict.APPROVAL_PROMPT, now=0.0)

    assert classifier.classify("ok sounds good", tracker.current(1.0)) is Verdict.GARBAGE
    assert classifier.classify("ok sounds good", tracker.current(11.0)) is Verdict.CONTENT
