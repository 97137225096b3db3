"""
Burst Detector

Segments an ordered keystroke stream into bursts: maximal runs of keystrokes
whose interior gaps are all shorter than the short-interval threshold. A
burst whose preceding gap exceeded the long-pause threshold is flagged; that
is the shape of someone reading elsewhere and then typing a prepared reply
in one go.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from integrity.config import EngineSettings
from integrity.schemas.inputs import Keystroke
from integrity.schemas.outputs import BurstMetrics


@dataclass(frozen=True)
class Burst:
    """One detected burst."""
    start_index: int
    size: int
    after_long_pause: bool


class BurstDetector:
    """
    Detects typing bursts and post-pause bursts.

    Args:
        long_pause_ms: Gap strictly above this is a long pause.
        short_interval_ms: Gaps strictly below this keep a burst going.
        min_burst_size: Runs shorter than this are not bursts.
    """

    def __init__(
        self,
        long_pause_ms: float = 2000.0,
        short_interval_ms: float = 200.0,
        min_burst_size: int = 3,
    ) -> None:
        self.long_pause_ms = long_pause_ms
        self.short_interval_ms = short_interval_ms
        self.min_burst_size = max(2, min_burst_size)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "BurstDetector":
        return cls(
            long_pause_ms=settings.long_pause_ms,
            short_interval_ms=settings.short_interval_ms,
            min_burst_size=settings.min_burst_size,
        )

    def find_bursts(self, keystrokes: Sequence[Keystroke]) -> List[Burst]:
        """Return every burst in keystroke order."""
        bursts: List[Burst] = []
        if len(keystrokes) < 2:
            return bursts

        run_start = 0
        # Gap that preceded the current run (None for the first run)
        preceding_gap: Optional[float] = None

        for i in range(1, len(keystrokes)):
            gap = keystrokes[i].timestamp - keystrokes[i - 1].timestamp
            if gap < self.short_interval_ms:
                continue
            self._close_run(bursts, run_start, i, preceding_gap)
            run_start = i
            preceding_gap = gap

        self._close_run(bursts, run_start, len(keystrokes), preceding_gap)
        return bursts

    def detect(self, keystrokes: Sequence[Keystroke]) -> BurstMetrics:
        """Summarize bursts into BurstMetrics."""
        bursts = self.find_bursts(keystrokes)
        if not bursts:
            return BurstMetrics(long_pause_threshold_ms=self.long_pause_ms)

        sizes = [b.size for b in bursts]
        return BurstMetrics(
            burst_count=len(bursts),
            avg_burst_size=sum(sizes) / len(sizes),
            max_burst_size=max(sizes),
            bursts_after_long_pause=sum(1 for b in bursts if b.after_long_pause),
            long_pause_threshold_ms=self.long_pause_ms,
        )

    def _close_run(
        self,
        bursts: List[Burst],
        start: int,
        end: int,
        preceding_gap: Optional[float],
    ) -> None:
        size = end - start
        if size < self.min_burst_size:
            return
        after_pause = preceding_gap is not None and preceding_gap > self.long_pause_ms
        bursts.append(Burst(start_index=start, size=size, after_long_pause=after_pause))
