import os
import logging
from typing import Sequence
from dataclasses import dataclass

from ..wrappers import macs2, sambamba, homer
from ..utils.bed import PeakSet, build_consensus, to_bed, to_matrix, to_saf
from .meta import BamArtifact, AnyKey, Level, RunOptions
from .path import make_filename
from .config import CONSENSUS_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalledPeaks:
    key: AnyKey
    path: str
    peaks: int
    # reads in peaks and the fraction of reads in peaks
    inpeaks: int
    total: int

    @property
    def frip(self) -> float:
        return self.inpeaks / self.total if self.total > 0 else 0.0


@dataclass(frozen=True)
class ConsensusFiles:
    level: Level
    bed: str
    saf: str
    matrix: str
    intervals: int
    # names of the peak sets, i.e. keys
    sources: tuple


def _numpeaks(path: str) -> int:
    with open(path, 'r') as file:
        return sum(1 for line in file if line.strip() and not line.startswith(("#", "track")))


async def frip(bam: str, peaks: str, threads: int = 1) -> (int, int):
    total = await sambamba.numreads(bam, threads=threads)
    inpeaks = await sambamba.numreads(bam, regions=peaks, threads=threads) if _numpeaks(peaks) > 0 else 0
    return inpeaks, total


async def call_peaks(artifact: BamArtifact, saveto: str, options: RunOptions, paired: bool, threads: int = 1,
                     force: bool = False) -> CalledPeaks:
    """
    Peaks for a single replicate/condition artifact
    :param saveto: folder for peaks
    """
    assert options.peak_calling and os.path.isdir(saveto)
    peaks = make_filename(saveto, key=artifact.key, format=options.peaks_format)
    if not os.path.isfile(peaks) or force:
        await macs2.callpeak([artifact.path], options.macs_gsize, paired, isbroad=options.broad_peak,
                             saveto=peaks, pcutoff=options.macs_pvalue, fdrcutoff=options.macs_fdr,
                             broad_cutoff=options.broad_cutoff)
    inpeaks, total = await frip(artifact.path, peaks, threads)
    result = CalledPeaks(artifact.key, peaks, _numpeaks(peaks), inpeaks, total)
    logger.info(f"{artifact.key.name}: {result.peaks} peaks, FRiP {result.frip:.3f}")
    return result


async def annotate(peaks: str, options: RunOptions, threads: int = 1, force: bool = False) -> str:
    assert options.annotation
    saveto = peaks + ".annotatePeaks.txt"
    if not os.path.isfile(saveto) or force:
        await homer.annotatePeaks(peaks, options.fasta, options.gtf, threads=threads, saveto=saveto)
    return saveto


def consensus(peaks: Sequence[CalledPeaks], saveto: str, level: Level, min_support: int = 1,
              force: bool = False) -> ConsensusFiles:
    """
    Consensus of all peak sets of the level, peak sets are combined in the lexicographic order of their names.
    :param saveto: folder for the consensus files
    """
    assert peaks and os.path.isdir(saveto)
    peaks = sorted(peaks, key=lambda p: p.key.name)
    sources = tuple(p.key.name for p in peaks)
    prefix = os.path.join(saveto, f"{CONSENSUS_PREFIX}.{_peaks_format(peaks[0].path)}")
    bed, saf, matrix = prefix + ".bed", prefix + ".saf", prefix + ".boolean.txt"

    if any(not os.path.isfile(f) for f in (bed, saf, matrix)) or force:
        merged = build_consensus([PeakSet.load(p.key.name, p.path) for p in peaks], min_support)
        to_bed(merged, bed)
        to_saf(merged, saf)
        to_matrix(merged, matrix)
        logger.info(f"Consensus at the {level.value} level: {len(merged)} intervals from {len(peaks)} peak sets")
    return ConsensusFiles(level, bed, saf, matrix, _numpeaks(bed), sources)


def _peaks_format(peaks: str) -> str:
    # narrowPeak / broadPeak
    return os.path.splitext(peaks)[1].lstrip(".")
