import enum
import logging
from typing import Tuple, Dict
from dataclasses import dataclass

from .meta import Level, DesignPredicates, RunOptions

logger = logging.getLogger(__name__)

ALIGN = "align"
MERGE_REPLICATE = "merge_replicate"
MERGE_CONDITION = "merge_condition"
BIGWIG_REPLICATE = "bigwig_replicate"
BIGWIG_CONDITION = "bigwig_condition"
CALL_PEAKS_REPLICATE = "call_peaks_replicate"
CALL_PEAKS_CONDITION = "call_peaks_condition"
ANNOTATE_PEAKS_REPLICATE = "annotate_peaks_replicate"
ANNOTATE_PEAKS_CONDITION = "annotate_peaks_condition"
CONSENSUS_REPLICATE = "consensus_replicate"
CONSENSUS_CONDITION = "consensus_condition"
ANNOTATE_CONSENSUS_REPLICATE = "annotate_consensus_replicate"
ANNOTATE_CONSENSUS_CONDITION = "annotate_consensus_condition"
DIFFERENTIAL_REPLICATE = "differential_replicate"
DIFFERENTIAL_CONDITION = "differential_condition"


class Mode(enum.Enum):
    # one task per key of the stage level
    PER_KEY = "per-key"
    # a single run-scoped task over all keys of the stage level
    FAN_IN = "fan-in"


@dataclass(frozen=True)
class Stage:
    name: str
    level: Level
    mode: Mode
    upstream: Tuple[str, ...]
    active: bool

    @property
    def fanin(self) -> bool:
        return self.mode == Mode.FAN_IN


@dataclass(frozen=True)
class StageGraph:
    # topologically ordered, upstream stages always come first
    stages: Tuple[Stage, ...]

    def __post_init__(self):
        seen = set()
        for s in self.stages:
            assert s.name not in seen, f"Duplicated stage {s.name}"
            assert all(u in seen for u in s.upstream), f"Upstream of {s.name} must be declared before it"
            seen.add(s.name)

    def __getitem__(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    def __contains__(self, name: str) -> bool:
        """Whether the stage is planned for execution"""
        return any(s.name == name and s.active for s in self.stages)

    @property
    def active(self) -> Tuple[Stage, ...]:
        return tuple(s for s in self.stages if s.active)

    def upstream(self, name: str) -> Tuple[Stage, ...]:
        return tuple(self[u] for u in self[name].upstream)

    def describe(self) -> Dict[str, bool]:
        return {s.name: s.active for s in self.stages}


def plan(predicates: DesignPredicates, options: RunOptions) -> StageGraph:
    """
    Decide once, before anything runs, which stages are executed for the given design and options
    """
    replicates, conditions = predicates.replicates_exist, predicates.multiple_conditions
    merge_condition = not options.skip_merge_replicates and replicates
    peaks = options.peak_calling
    consensus_replicate = peaks and (conditions or replicates)
    consensus_condition = peaks and merge_condition and conditions
    differential = conditions and replicates and not options.skip_diff_analysis

    R, C, PK, FI = Level.REPLICATE, Level.CONDITION, Mode.PER_KEY, Mode.FAN_IN
    stages = (
        Stage(ALIGN, Level.LIBRARY, PK, (), True),
        Stage(MERGE_REPLICATE, R, PK, (ALIGN,), True),
        Stage(MERGE_CONDITION, C, PK, (MERGE_REPLICATE,), merge_condition),

        Stage(BIGWIG_REPLICATE, R, PK, (MERGE_REPLICATE,), not options.skip_bigwig),
        Stage(BIGWIG_CONDITION, C, PK, (MERGE_CONDITION,), merge_condition and not options.skip_bigwig),

        Stage(CALL_PEAKS_REPLICATE, R, PK, (MERGE_REPLICATE,), peaks),
        Stage(CALL_PEAKS_CONDITION, C, PK, (MERGE_CONDITION,), peaks and merge_condition),
        Stage(ANNOTATE_PEAKS_REPLICATE, R, PK, (CALL_PEAKS_REPLICATE,), peaks and options.annotation),
        Stage(ANNOTATE_PEAKS_CONDITION, C, PK, (CALL_PEAKS_CONDITION,),
              peaks and merge_condition and options.annotation),

        Stage(CONSENSUS_REPLICATE, R, FI, (CALL_PEAKS_REPLICATE,), consensus_replicate),
        Stage(CONSENSUS_CONDITION, C, FI, (CALL_PEAKS_CONDITION,), consensus_condition),
        Stage(ANNOTATE_CONSENSUS_REPLICATE, R, FI, (CONSENSUS_REPLICATE,),
              consensus_replicate and options.annotation),
        Stage(ANNOTATE_CONSENSUS_CONDITION, C, FI, (CONSENSUS_CONDITION,),
              consensus_condition and options.annotation),

        # counting is always done over replicate-level alignments, the level selects the consensus intervals
        Stage(DIFFERENTIAL_REPLICATE, R, FI, (CONSENSUS_REPLICATE, MERGE_REPLICATE),
              consensus_replicate and differential),
        Stage(DIFFERENTIAL_CONDITION, C, FI, (CONSENSUS_CONDITION, MERGE_REPLICATE),
              consensus_condition and differential),
    )
    graph = StageGraph(stages)
    for s in graph.active:
        assert all(u.active for u in graph.upstream(s.name)), f"{s.name} is active, but some upstream stages are not"
    logger.info(f"Planned stages: {', '.join(s.name for s in graph.active)}")
    return graph
