"""
Narration pipeline services.

    terminal bytes ──▶ normalizer ──▶ lines ──┐
                                              ▼
                    patterns ──▶ classifier ──▶ approval tracker
                                              │
                                              ▼
                                         aggregator ──▶ dedup ──▶ speech_queue ──▶ tts_service
                                              ▲
    structured text ──▶ text_segmenter ───────┘ (sentences skip the aggregator)
"""

from .aggregator import MessageAggregator
from .approval import ApprovalTracker
from .classifier import GarbageClassifier
from .dedup import DedupCache
from .normalizer import StreamNormalizer
from .speech_queue import SpeechQueue
from .text_segmenter import TextSegmenter

__all__ = [
    "ApprovalTracker",
    "DedupCache",
    "GarbageClassifier",
    "MessageAggregator",
    "SpeechQueue",
    "StreamNormalizer",
    "TextSegmenter",
]
