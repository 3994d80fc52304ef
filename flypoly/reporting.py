"""Reporting collaborators.

The simulation core only produces StageReport tuples; everything
user-facing lives here. A Reporter receives:

  record(report)          once per life stage per generation
  finish(report, reason)  exactly once, the final tagged report

Implementations:
  - MemoryReporter: keeps everything in lists (tests, result assembly)
  - CsvReporter: one row per generation,
        generation,eggAA,eggAB,eggBB,adultAA,adultAB,adultBB
  - ConsoleReporter: progress lines through `logging`
  - MultiReporter: fan-out to several reporters
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import IO, List, Optional, Protocol, Tuple, Union

from flypoly.types import LifeStage, StageReport, TerminationReason

logger = logging.getLogger(__name__)

CSV_HEADER = ('generation', 'eggAA', 'eggAB', 'eggBB', 'adultAA', 'adultAB', 'adultBB')


class Reporter(Protocol):
    """Receives per-stage snapshots and the final tagged report."""

    def record(self, report: StageReport) -> None:
        ...

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        ...


class NullReporter:
    """Discards everything."""

    def record(self, report: StageReport) -> None:
        pass

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        pass


class MemoryReporter:
    """Keeps every report in memory."""

    def __init__(self):
        self.records: List[StageReport] = []
        self.final: Optional[StageReport] = None
        self.reason: Optional[TerminationReason] = None

    def record(self, report: StageReport) -> None:
        self.records.append(report)

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        self.final = report
        self.reason = reason

    def stage(self, stage: LifeStage) -> List[StageReport]:
        """Records of one life stage, in generation order."""
        return [r for r in self.records if r.stage == stage]


class CsvReporter:
    """Writes one CSV row per generation.

    Egg fields come first, then adult fields on the same row. Egg fields are
    empty for generation 1, which has no egg stage. A row is written when its
    adult stage arrives. A run that stops on fixation gets one more row,
    tagged with the next generation, holding the fixated egg pool with blank
    adult fields.

    Args:
        path: Output file (parent directories are created) or an open
            text stream.
        precision: Decimal places for proportions.
    """

    def __init__(self, path: Union[str, Path, IO[str]], precision: int = 6):
        if isinstance(path, (str, Path)):
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(path, 'w', newline='')
            self._owns_fh = True
            self.path: Optional[Path] = path
        else:
            self._fh = path
            self._owns_fh = False
            self.path = None
        self.precision = precision
        self._writer = csv.writer(self._fh)
        self._writer.writerow(CSV_HEADER)
        self._pending_generation: Optional[int] = None
        self._pending_egg: Tuple[str, str, str] = ('', '', '')
        self.closed = False

    def _fmt(self, proportions) -> Tuple[str, str, str]:
        return tuple(f"{p:.{self.precision}f}" for p in proportions)

    def _flush_pending(self, adult: Tuple[str, str, str] = ('', '', '')) -> None:
        if self._pending_generation is None:
            return
        self._writer.writerow((self._pending_generation,) + self._pending_egg + adult)
        self._pending_generation = None
        self._pending_egg = ('', '', '')

    def record(self, report: StageReport) -> None:
        if self._pending_generation is not None and self._pending_generation != report.generation:
            self._flush_pending()
        self._pending_generation = report.generation
        if report.stage == LifeStage.EGG:
            self._pending_egg = self._fmt(report.proportions)
        else:
            self._flush_pending(self._fmt(report.proportions))

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        self._flush_pending()
        if reason == TerminationReason.FIXATED:
            # The fixated egg pool would have entered the next generation
            self._writer.writerow(
                (report.generation + 1,) + self._fmt(report.proportions) + ('', '', '')
            )
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self._fh.flush()
        if self._owns_fh:
            self._fh.close()
        self.closed = True


class ConsoleReporter:
    """Logs progress through the `logging` module."""

    def __init__(self, log: Optional[logging.Logger] = None, label: str = ""):
        self.log = log or logger
        self.label = f"[{label}] " if label else ""

    def record(self, report: StageReport) -> None:
        p_aa, p_ab, p_bb = report.proportions
        self.log.info(
            "%sGeneration %5d %-5s n=%-6d AA=%.4f AB=%.4f BB=%.4f",
            self.label, report.generation, report.stage.value,
            report.population_size, p_aa, p_ab, p_bb,
        )

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        p_aa, p_ab, p_bb = report.proportions
        self.log.info(
            "%sFinal generation %d (%s, %s stage) n=%d AA=%.4f AB=%.4f BB=%.4f",
            self.label, report.generation, reason.value, report.stage.value,
            report.population_size, p_aa, p_ab, p_bb,
        )


class MultiReporter:
    """Forwards every call to each of several reporters, in order."""

    def __init__(self, *reporters: Reporter):
        self.reporters = [r for r in reporters if r is not None]

    def record(self, report: StageReport) -> None:
        for r in self.reporters:
            r.record(report)

    def finish(self, report: StageReport, reason: TerminationReason) -> None:
        for r in self.reporters:
            r.finish(report, reason)
