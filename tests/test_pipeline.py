"""End-to-end tests for the narration pipeline coordinator."""

import asyncio

import pytest

from termvoice.config import Settings
from termvoice.models import RawEvent, SourceKind
from termvoice.pipeline import NarrationPipeline
from termvoice.services.classifier import GarbageClassifier
from termvoice.services.speech_queue import PlaybackState, SpeechQueue

from conftest import FakeClock, RecordingSpeaker

BLOCK = (
    b"\x1b[2K\x1b[1G\xe2\x8f\xba Building the cache layer now\r\n"
    b"  It uses a write-ahead log\r\n"
    b"\xe2\x9c\xbb Thinking\xe2\x80\xa6 (esc to interrupt)\r\n"
)
BLOCK_TEXT = "Building the cache layer now It uses a write-ahead log"


def make_pipeline(clock: FakeClock, speaker: RecordingSpeaker, **kwargs) -> NarrationPipeline:
    queue = SpeechQueue(speaker.speak, speaker.cancel)
    return NarrationPipeline(GarbageClassifier(), queue, clock=clock, **kwargs)


async def _drain(pipeline: NarrationPipeline) -> None:
    await asyncio.wait_for(pipeline.queue.wait_idle(), timeout=1)


@pytest.mark.anyio
async def test_terminal_block_is_spoken_once(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_event(RawEvent(payload=BLOCK, source_kind=SourceKind.TERMINAL))
    await _drain(pipeline)

    assert speaker.completed == [BLOCK_TEXT]


@pytest.mark.anyio
async def test_chunk_boundaries_do_not_change_speech(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    for i in range(0, len(BLOCK), 7):
        pipeline.handle_chunk(BLOCK[i:i + 7])
    await _drain(pipeline)

    assert speaker.completed == [BLOCK_TEXT]


@pytest.mark.anyio
async def test_redrawn_block_is_deduplicated_within_window(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_chunk(BLOCK)
    clock.advance(2)
    pipeline.handle_chunk(BLOCK)
    await _drain(pipeline)
    assert speaker.completed == [BLOCK_TEXT]

    clock.advance(10)
    pipeline.handle_chunk(BLOCK)
    await _drain(pipeline)
    assert speaker.completed == [BLOCK_TEXT, BLOCK_TEXT]


@pytest.mark.anyio
async def test_noise_and_tool_chatter_are_never_spoken(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    for line in ["2k1a", "?1004l", "Updating todo list", "Reading file: src/app.py", "Here is the solution"]:
        pipeline.handle_line(line)
    pipeline.finish()
    await _drain(pipeline)

    assert speaker.completed == []


@pytest.mark.anyio
async def test_stop_token_cancels_and_forgets(clock: FakeClock) -> None:
    speaker = RecordingSpeaker(blocking=True)
    pipeline = make_pipeline(clock, speaker)
    pipeline.handle_chunk(BLOCK)
    pipeline.handle_line("⏺ Now writing the second part of the answer")
    await asyncio.sleep(0)
    assert pipeline.queue.state is PlaybackState.PLAYING

    pipeline.handle_line("please //stfu")

    assert pipeline.queue.state is PlaybackState.IDLE
    assert speaker.cancel_calls == 1
    assert pipeline.spoken_history() == []
    assert not pipeline.state.aggregator.collecting

    # The cleared cache lets the same narration be spoken again
    speaker.blocking = False
    pipeline.handle_chunk(BLOCK)
    await _drain(pipeline)
    assert speaker.completed == [BLOCK_TEXT]


@pytest.mark.anyio
async def test_approval_prompt_is_spoken_and_options_are_not(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    for line in [
        "⏺ Let me check the migration script",
        "Do you want to proceed?",
        "❯ 1. Yes",
        "2. Yes, and don't ask again this session",
        "yes go ahead",
    ]:
        pipeline.handle_line(line)
    await _drain(pipeline)

    assert speaker.completed == ["Let me check the migration script", "Do you want to proceed?"]
    assert pipeline.state.approval.current(clock()).active


@pytest.mark.anyio
async def test_approval_prompts_can_be_muted(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker, speak_approval_prompts=False)

    pipeline.handle_line("Do you want to proceed?")
    await _drain(pipeline)

    assert speaker.completed == []
    assert pipeline.state.approval.current(clock()).active


def test_focus_tracking_sequence_opens_approval_context(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_chunk(b"\x1b[?1004l")

    assert pipeline.state.approval.current(clock()).active
    clock.advance(11)
    assert not pipeline.state.approval.current(clock()).active


@pytest.mark.anyio
async def test_compact_transition_clears_history_and_skips_echo(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)
    pipeline.handle_chunk(BLOCK)
    await _drain(pipeline)

    pipeline.handle_line("Conversation compacted")
    assert pipeline.spoken_history() == []

    pipeline.handle_line("⏺ Summarizing where we are now")
    pipeline.handle_line("Human: please summarize the earlier work")
    pipeline.handle_line("Assistant: Here is what we did before")
    pipeline.handle_line("2025-01-14 09:30 session resumed")
    clock.advance(1)
    pipeline.handle_chunk(BLOCK)
    await _drain(pipeline)

    assert speaker.completed == [BLOCK_TEXT, "Summarizing where we are now", BLOCK_TEXT]


@pytest.mark.anyio
async def test_plan_transition_clears_approval(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)
    pipeline.state.approval.activate(clock())

    pipeline.handle_line("Here's my plan:")

    assert not pipeline.state.approval.current(clock()).active
    assert speaker.calls == []


def test_focus_tracking_sequence_split_across_reads(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_chunk(b"abc\x1b[?10")
    pipeline.handle_chunk(b"04l\n")

    assert pipeline.state.approval.current(clock()).active


def test_partial_focus_sequences_do_not_open_approval(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_chunk(b"abc\x1b[?10")
    pipeline.handle_chunk(b"05h\n")

    assert not pipeline.state.approval.current(clock()).active


@pytest.mark.parametrize("line", ["cvstfu!", "ok //stfu now"])
def test_default_stop_tokens(clock: FakeClock, line: str) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    assert pipeline.stop_requested(line)
    assert speaker.cancel_calls == 1


@pytest.mark.anyio
async def test_marked_approval_prompt_is_spoken_without_glyph(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_line("⏺ Do you want to apply these edits?")
    await _drain(pipeline)

    assert speaker.completed == ["Do you want to apply these edits?"]


@pytest.mark.anyio
async def test_short_utterances_are_dropped(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker, min_narration_length=0)

    pipeline.handle_line("⏺ All done.")
    pipeline.finish()
    await _drain(pipeline)

    assert speaker.completed == []


@pytest.mark.anyio
async def test_finish_flushes_partial_line_and_open_block(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_chunk("⏺ Wrapping up the refactor now".encode("utf-8"))
    await asyncio.sleep(0)
    assert speaker.calls == []

    pipeline.finish()
    await _drain(pipeline)

    assert speaker.completed == ["Wrapping up the refactor now"]


@pytest.mark.anyio
async def test_structured_block_is_spoken_sentence_by_sentence(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_event(
        RawEvent(
            payload="I fixed the bug in the parser. Updating todo list now.\nThe tests pass again!",
            source_kind=SourceKind.STRUCTURED,
        )
    )
    await _drain(pipeline)

    assert speaker.completed == ["I fixed the bug in the parser.", "The tests pass again!"]


@pytest.mark.anyio
async def test_structured_stop_token_is_not_spoken(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)

    pipeline.handle_text_block("cvstfu! please, no more talking now")
    await _drain(pipeline)

    assert speaker.completed == []


@pytest.mark.anyio
async def test_from_settings_wires_session_dedup() -> None:
    speaker = RecordingSpeaker()
    settings = Settings(
        dedup_mode="session",
        dedup_max_entries=10,
        stop_tokens=["!!quiet"],
        _env_file=None,
    )

    pipeline = NarrationPipeline.from_settings(settings, speaker.speak, speaker.cancel)

    assert pipeline.state.dedup.window_seconds is None
    assert pipeline.state.dedup.max_entries == 10
    assert pipeline.stop_tokens == ("!!quiet",)


@pytest.mark.anyio
async def test_each_narration_block_is_spoken_in_order(clock: FakeClock) -> None:
    speaker = RecordingSpeaker()
    pipeline = make_pipeline(clock, speaker)
    stream = (
        "⏺ First I looked at the failing parser\n"
        "and found an off-by-one error\n"
        "\n"
        "⏺ Then I wrote a regression for it\n"
        "⏺ Finally everything passes again\n"
        "✻ Thinking…\n"
    ).encode("utf-8")

    pipeline.handle_chunk(stream)
    pipeline.finish()
    await _drain(pipeline)

    assert speaker.completed == [
        "First I looked at the failing parser and found an off-by-one error",
        "Then I wrote a regression for it",
        "Finally everything passes again",
    ]
