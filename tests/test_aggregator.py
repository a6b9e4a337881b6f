from termvoice.models import Verdict
from termvoice.services.aggregator import AggregatorState, MessageAggregator
from termvoice.services.classifier import GarbageClassifier


def _run(aggregator: MessageAggregator, classifier: GarbageClassifier, lines):
    spoken = []
    for i, line in enumerate(lines):
        spoken.extend(aggregator.feed(line, classifier.classify(line), now=float(i)))
    spoken.extend(aggregator.finish(now=float(len(lines))))
    return [u.text for u in spoken]


def test_block_is_joined_until_stop_glyph(classifier: GarbageClassifier) -> None:
    aggregator = MessageAggregator(classifier.classify)

    texts = _run(
        aggregator,
        classifier,
        [
            "⏺ Building the cache layer now",
            "It uses a write-ahead log",
            "✻ Thinking…",
        ],
    )

    assert texts == ["Building the cache layer now It uses a write-ahead log"]
    assert aggregator.state is AggregatorState.IDLE


def test_new_marker_flushes_and_starts_atomically(classifier: GarbageClassifier) -> None:
    aggregator = MessageAggregator(classifier.classify)

    first = aggregator.feed("⏺ Here is the first answer", Verdict.CONTENT, now=0.0)
    second = aggregator.feed("⏺ And here is the second one", Verdict.CONTENT, now=1.0)

    assert first == []
    assert [u.text for u in second] == ["Here is the first answer"]
    assert aggregator.collecting
    assert aggregator.buffer == ["And here is the second one"]
    assert [u.text for u in aggregator.finish(now=2.0)] == ["And here is the second one"]


def test_short_or_non_content_remainder_does_not_start(classifier: GarbageClassifier) -> None:
    aggregator = MessageAggregator(classifier.classify)

    aggregator.feed("⏺ Done.", Verdict.CONTENT, now=0.0)
    assert not aggregator.collecting

    aggregator.feed("⏺ Updating todo list", Verdict.TOOL_CHATTER, now=1.0)
    assert not aggregator.collecting


def test_tool_chatter_and_garbage_end_a_block(classifier: GarbageClassifier) -> None:
    for stop_line in ["Reading file: src/app.py", "2k1a", "", "Do you want to proceed?"]:
        aggregator = MessageAggregator(classifier.classify)
        aggregator.feed("⏺ Let me look at the parser", Verdict.CONTENT, now=0.0)

        emitted = aggregator.feed(stop_line, classifier.classify(stop_line), now=1.0)

        assert [u.text for u in emitted] == ["Let me look at the parser"], stop_line
        assert not aggregator.collecting


def test_status_markers_end_a_block(content_only) -> None:
    for stop_line in ["│ > prompt box", "Read 120 lines (ctrl+r to expand) 2.1k tokens", "esc to interrupt"]:
        aggregator = MessageAggregator(content_only)
        aggregator.feed("⏺ Let me look at the parser", Verdict.CONTENT, now=0.0)

        emitted = aggregator.feed(stop_line, Verdict.CONTENT, now=1.0)

        assert len(emitted) == 1, stop_line


def test_lines_outside_a_block_are_ignored(classifier: GarbageClassifier) -> None:
    aggregator = MessageAggregator(classifier.classify)

    texts = _run(aggregator, classifier, ["The answer is 42", "Here is the solution"])

    assert texts == []


def test_end_of_stream_flushes_open_block(content_only) -> None:
    aggregator = MessageAggregator(content_only)
    aggregator.feed("⏺ Wrapping up the refactor", Verdict.CONTENT, now=0.0)
    aggregator.feed("everything passes", Verdict.CONTENT, now=1.0)

    (utterance,) = aggregator.finish(now=5.0)

    assert utterance.text == "Wrapping up the refactor everything passes"
    assert utterance.produced_at == 5.0
    assert aggregator.finish(now=6.0) == []


def test_reset_abandons_buffer(content_only) -> None:
    aggregator = MessageAggregator(content_only)
    aggregator.feed("⏺ Wrapping up the refactor", Verdict.CONTENT, now=0.0)

    aggregator.reset()

    assert aggregator.buffer == []
    assert aggregator.finish(now=1.0) == []


def test_custom_marker(content_only) -> None:
    aggregator = MessageAggregator(content_only, marker="●")

    aggregator.feed("● Custom marker narration", Verdict.CONTENT, now=0.0)

    assert aggregator.collecting
