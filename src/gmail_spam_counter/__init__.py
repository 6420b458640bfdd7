"""Gmail Spam Counter - Count spam messages per day over a lookback window."""

from gmail_spam_counter.core.backoff import BackoffPolicy
from gmail_spam_counter.core.models import (
    DateHistogram,
    FetchProgress,
    MessagePage,
    MessageQuery,
    MessageRecord,
    PipelineConfig,
)
from gmail_spam_counter.pipeline.aggregator import DateAggregator
from gmail_spam_counter.pipeline.orchestrator import SpamCountPipeline, run_pipeline

__all__ = [
    "BackoffPolicy",
    "DateAggregator",
    "DateHistogram",
    "FetchProgress",
    "MessagePage",
    "MessageQuery",
    "MessageRecord",
    "PipelineConfig",
    "SpamCountPipeline",
    "run_pipeline",
]
