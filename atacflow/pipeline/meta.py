import os
import enum
from typing import Tuple, Union, Optional
from dataclasses import dataclass

from .config import MIN_MAPQ, BROAD_CUTOFF, DESEQ2_SCRIPT


class Level(enum.Enum):
    LIBRARY = "library"
    REPLICATE = "replicate"
    CONDITION = "condition"


@dataclass(frozen=True, order=True)
class ConditionKey:
    condition: str

    level = Level.CONDITION

    @property
    def name(self) -> str:
        return self.condition


@dataclass(frozen=True, order=True)
class ReplicateKey:
    condition: str
    replicate: int

    level = Level.REPLICATE

    @property
    def condition_key(self) -> ConditionKey:
        return ConditionKey(self.condition)

    @property
    def name(self) -> str:
        return f"{self.condition}_R{self.replicate}"


@dataclass(frozen=True, order=True)
class SampleKey:
    """
    Finest key, one row of input reads. Parent keys are obtained by truncation:
    (condition, replicate, technical) -> (condition, replicate) -> (condition, )
    """
    condition: str
    replicate: int
    technical: int

    level = Level.LIBRARY

    @property
    def replicate_key(self) -> ReplicateKey:
        return ReplicateKey(self.condition, self.replicate)

    @property
    def condition_key(self) -> ConditionKey:
        return ConditionKey(self.condition)

    @property
    def name(self) -> str:
        return f"{self.condition}_R{self.replicate}_T{self.technical}"


AnyKey = Union[SampleKey, ReplicateKey, ConditionKey]
_DEPTH = {Level.CONDITION: 1, Level.REPLICATE: 2, Level.LIBRARY: 3}


def project(key: AnyKey, level: Level) -> AnyKey:
    """Truncate the key to the given (coarser or equal) aggregation level"""
    if _DEPTH[level] > _DEPTH[key.level]:
        raise ValueError(f"Can't project {key} to the finer level {level.value}")
    if level == key.level:
        return key
    if level == Level.REPLICATE:
        return key.replicate_key
    return key.condition_key


@dataclass(frozen=True)
class DesignRow:
    key: SampleKey
    # one path for single-end data, two for paired-end
    reads: Tuple[str, ...]


@dataclass(frozen=True)
class DesignPredicates:
    # any condition has more than one replicate
    replicates_exist: bool
    # more than one distinct condition
    multiple_conditions: bool


@dataclass(frozen=True)
class DesignTable:
    rows: Tuple[DesignRow, ...]
    paired: bool
    predicates: DesignPredicates

    def keys(self, level: Level = Level.LIBRARY) -> Tuple[AnyKey, ...]:
        """Distinct keys of the level in the lexicographic order of their names"""
        return tuple(sorted({project(r.key, level) for r in self.rows}, key=lambda k: k.name))

    def members(self, key: AnyKey, level: Level) -> Tuple[AnyKey, ...]:
        """Keys of the finer `level` which truncate to the given key"""
        return tuple(k for k in self.keys(level) if project(k, key.level) == key)

    def reads(self, key: SampleKey) -> Tuple[str, ...]:
        for r in self.rows:
            if r.key == key:
                return r.reads
        raise KeyError(key)

    def __len__(self):
        return len(self.rows)


@dataclass(frozen=True)
class BamArtifact:
    """
    Alignment artifact at some aggregation level. Each merge produces a new artifact, inputs are never mutated.
    If a group contains a single artifact, it is aliased - the same path is used by the next level.
    """
    path: str
    key: AnyKey
    level: Level
    # provenance: paths and keys of the source artifacts, filters applied so far
    sources: Tuple[str, ...] = ()
    source_keys: Tuple[AnyKey, ...] = ()
    filters: Tuple[str, ...] = ()

    @property
    def identifier(self) -> str:
        return os.path.basename(self.path)

    @property
    def index(self) -> str:
        return self.path + ".bai"


@dataclass(frozen=True)
class RunOptions:
    fasta: str
    bwa_index: str
    gtf: Optional[str] = None
    blacklist: Optional[str] = None
    mito_name: Optional[str] = None
    keep_mito: bool = False

    # peak calling is enabled only when the effective genome size is given
    macs_gsize: Optional[str] = None
    broad_peak: bool = False
    broad_cutoff: float = BROAD_CUTOFF
    # macs2 -p, takes precedence over the -q threshold
    macs_pvalue: Optional[float] = None
    macs_fdr: Optional[float] = None
    min_reps_consensus: int = 1

    skip_merge_replicates: bool = False
    skip_peak_annotation: bool = False
    skip_diff_analysis: bool = False
    skip_bigwig: bool = False

    keep_dups: bool = False
    keep_multi_map: bool = False
    min_mapq: int = MIN_MAPQ
    # externally supplied declarative (bamtools JSON) filter rules
    bamtools_filter_config: Optional[str] = None
    only_fr_pairs: bool = False

    # JVM heap for picard, e.g. "8g"
    memory: Optional[str] = None
    maxthreads: int = -1
    maxjobs: int = -1
    deseq2_script: str = DESEQ2_SCRIPT
    force: bool = False

    @property
    def references(self) -> Tuple[str, ...]:
        """Shared read-only inputs, all of them must exist before any task starts"""
        return tuple([self.fasta] + [f for f in (self.gtf, self.blacklist, self.bamtools_filter_config) if f])

    @property
    def peak_calling(self) -> bool:
        return bool(self.macs_gsize)

    @property
    def annotation(self) -> bool:
        return self.gtf is not None and not self.skip_peak_annotation

    @property
    def peaks_format(self) -> str:
        return "broadPeak" if self.broad_peak else "narrowPeak"
