"""
Insertion hook: clean right after raw rows arrive.

Subscribed to ``RawSource.insert``, it runs synchronously in the inserting
caller. ``full`` mode calls the same ``run`` entry point as the scheduler,
rescanning the whole raw table; ``incremental`` mode pushes only the new
rows through normalization and an (id, TimeStamp) existence check. Both
leave the cleaned table in the same invariant state.

By default the hook does not wait for an in-flight run: it returns a
``skipped`` report and the next trigger picks the rows up.
"""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from income_cleaning.cleaning import CleaningPipeline, CleaningReport
from income_cleaning.config import settings
from income_cleaning.store import RawSource


TRIGGER = "insert"
MODES = ("full", "incremental")


class InsertionHook:
    """Callable subscriber for the raw source's insert notifications."""

    def __init__(self, pipeline: CleaningPipeline, mode: str | None = None, blocking: bool | None = None):
        mode = mode or settings.cleaning.hook_mode
        if mode not in MODES:
            raise ValueError(f"Unknown hook mode: {mode} (expected one of {MODES})")
        self.pipeline = pipeline
        self.mode = mode
        self.blocking = settings.cleaning.hook_blocking if blocking is None else blocking
        self.last_report: CleaningReport | None = None

    def __call__(self, rows: list[Mapping[str, Any]]) -> CleaningReport:
        logger.debug(f"Insert hook fired for {len(rows)} rows (mode={self.mode})")
        if self.mode == "incremental":
            report = self.pipeline.process_inserted(rows, trigger=TRIGGER, blocking=self.blocking)
        else:
            report = self.pipeline.run(trigger=TRIGGER, blocking=self.blocking)
        self.last_report = report
        return report

    def attach(self, raw_source: RawSource | None = None) -> "InsertionHook":
        """Subscribe to ``raw_source`` (the pipeline's own by default)."""
        (raw_source or self.pipeline.raw_source).subscribe(self)
        return self

    def detach(self, raw_source: RawSource | None = None) -> None:
        (raw_source or self.pipeline.raw_source).unsubscribe(self)
