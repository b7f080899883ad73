import os
import asyncio
import logging
from itertools import combinations
from typing import Sequence, Dict
from dataclasses import dataclass

from ..wrappers import subread, deseq2
from .meta import BamArtifact, Level, RunOptions
from .peak_calling import ConsensusFiles
from .errors import AggregationError
from .config import FRACTION_OVERLAP, CONSENSUS_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DifferentialResult:
    level: Level
    counts: str
    # comparison name (AvsB) -> output folder
    comparisons: Dict[str, str]


def comparisons(conditions: Sequence[str]) -> [(str, str)]:
    """All pairs of distinct conditions, in the lexicographic order"""
    return list(combinations(sorted(set(conditions)), 2))


async def differential(consensus: ConsensusFiles, bams: Sequence[BamArtifact], saveto: str, options: RunOptions,
                       paired: bool, threads: int = 1, force: bool = False) -> DifferentialResult:
    """
    Count replicate-level reads over the consensus intervals and run DESeq2 for each pair of conditions
    :param saveto: folder for counts, each comparison gets its own sub-folder
    """
    assert os.path.isdir(saveto) and bams
    if any(b.level != Level.REPLICATE for b in bams):
        raise AggregationError("Differential analysis requires replicate-level alignments")
    bams = sorted(bams, key=lambda b: b.path)
    counts = os.path.join(saveto, f"{CONSENSUS_PREFIX}.featureCounts.txt")
    if not os.path.isfile(counts) or force:
        await subread.featureCounts(consensus.saf, [b.path for b in bams], paired, fraction=FRACTION_OVERLAP,
                                    threads=threads, saveto=counts)

    pairs = comparisons([b.key.condition for b in bams])
    folders = {f"{a}vs{b}": os.path.join(saveto, f"{a}vs{b}") for a, b in pairs}
    coro = []
    for (a, b), (name, folder) in zip(pairs, folders.items()):
        os.makedirs(folder, exist_ok=True)
        selected = [bam for bam in bams if bam.key.condition in (a, b)]
        done = os.path.join(folder, f"{name}.done")
        if os.path.isfile(done) and not force:
            continue
        coro.append(_deseq2(options.deseq2_script, counts, selected, folder, name, done, threads))
    await asyncio.gather(*coro)
    logger.info(f"Differential analysis at the {consensus.level.value} level: {', '.join(folders)}")
    return DifferentialResult(consensus.level, counts, folders)


async def _deseq2(script: str, counts: str, bams: [BamArtifact], folder: str, name: str, done: str, threads: int):
    # featureCounts uses paths of the BAM files as column names
    await deseq2.deseq2(script, counts, [b.path for b in bams], [b.key.condition for b in bams],
                        outdir=folder, prefix=name, threads=threads)
    open(done, 'w').close()
