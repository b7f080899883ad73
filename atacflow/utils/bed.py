from dataclasses import dataclass
from typing import Tuple, Sequence

import numpy as np
from pybedtools import BedTool, Interval

CONSENSUS_ID_PREFIX = "Interval"


def _field(interval: Interval, ind: int, default: str = ".") -> str:
    return interval.fields[ind] if len(interval.fields) > ind else default


@dataclass(frozen=True)
class PeakSet:
    name: str
    intervals: Tuple[Interval, ...]

    @staticmethod
    def load(name: str, path: str) -> 'PeakSet':
        return PeakSet(name, tuple(BedTool(path)))

    def __len__(self):
        return len(self.intervals)


@dataclass(frozen=True, eq=False)
class ConsensusPeakSet:
    # names of the source peak sets, columns of the support matrix
    sources: Tuple[str, ...]
    # BED6: name -> interval id, score -> number of supporting peak sets
    intervals: Tuple[Interval, ...]
    # [intervals x sources] boolean presence matrix
    support: np.ndarray
    # comma separated metadata of the merged peaks
    names: Tuple[str, ...]
    scores: Tuple[str, ...]
    strands: Tuple[str, ...]

    def __len__(self):
        return len(self.intervals)


def build_consensus(peaks: Sequence[PeakSet], min_support: int = 1) -> ConsensusPeakSet:
    """
    Merge peak sets into non-overlapping intervals supported by at least `min_support` sets.
    # |▓▓▓▓▓|    |▓|
    #     |▓▓▓▓▓|
    #                      |▓▓▓|
    # -----------------------------
    # |▓▓▓▓▓▓▓▓▓|  -> support 2
    #                      |▓▓▓|  -> support 1
    Touching (book-ended) intervals are merged as well. Peaks are ordered by (chrom, start, end, peak set, position),
    so that the collapsed metadata doesn't depend on the order of peaks inside the files.
    """
    assert peaks and min_support >= 1
    records = [
        (interval.chrom, interval.start, interval.end, source, position, interval)
        for source, peakset in enumerate(peaks) for position, interval in enumerate(peakset.intervals)
    ]
    records.sort(key=lambda r: r[:5])

    # [chrom, start, end, sources, peaks]
    clusters = []
    for chrom, start, end, source, _, interval in records:
        if clusters and clusters[-1][0] == chrom and start <= clusters[-1][2]:
            cluster = clusters[-1]
            cluster[2] = max(cluster[2], end)
            cluster[3].add(source)
            cluster[4].append(interval)
        else:
            clusters.append([chrom, start, end, {source}, [interval]])

    support = np.zeros((len(clusters), len(peaks)), dtype=bool)
    for ind, cluster in enumerate(clusters):
        support[ind, sorted(cluster[3])] = True
    mask = support.sum(axis=1) >= min_support
    clusters, support = [c for c, keep in zip(clusters, mask) if keep], support[mask]

    intervals, names, scores, strands = [], [], [], []
    for ind, (cluster, row) in enumerate(zip(clusters, support), start=1):
        chrom, start, end, _, merged = cluster
        strand = {_field(i, 5) for i in merged}
        strand = strand.pop() if len(strand) == 1 and strand <= {"+", "-"} else "."
        intervals.append(Interval(chrom, start, end, name=f"{CONSENSUS_ID_PREFIX}_{ind}",
                                  score=str(int(row.sum())), strand=strand))
        names.append(",".join(_field(i, 3) for i in merged))
        scores.append(",".join(_field(i, 4) for i in merged))
        strands.append(",".join(_field(i, 5) for i in merged))
    return ConsensusPeakSet(
        tuple(p.name for p in peaks), tuple(intervals), support, tuple(names), tuple(scores), tuple(strands)
    )


def to_bed(consensus: ConsensusPeakSet, saveto: str) -> str:
    BedTool(list(consensus.intervals)).saveas(saveto)
    return saveto


def to_matrix(consensus: ConsensusPeakSet, saveto: str) -> str:
    """Tab separated boolean presence matrix, one TRUE/FALSE column per source peak set"""
    header = ["interval_id", "chrom", "start", "end", *consensus.sources, "num_samples", "names", "scores", "strands"]
    with open(saveto, 'w') as file:
        file.write("\t".join(header) + "\n")
        for interval, row, names, scores, strands in zip(consensus.intervals, consensus.support, consensus.names,
                                                         consensus.scores, consensus.strands):
            flags = ["TRUE" if x else "FALSE" for x in row]
            line = [interval.name, interval.chrom, str(interval.start), str(interval.end),
                    *flags, str(int(row.sum())), names, scores, strands]
            file.write("\t".join(line) + "\n")
    return saveto


def to_saf(consensus: ConsensusPeakSet, saveto: str) -> str:
    """featureCounts annotation, coordinates are 1-based and inclusive"""
    with open(saveto, 'w') as file:
        file.write("\t".join(["GeneID", "Chr", "Start", "End", "Strand"]) + "\n")
        for interval in consensus.intervals:
            strand = interval.strand if interval.strand in ("+", "-") else "+"
            file.write(f"{interval.name}\t{interval.chrom}\t{interval.start + 1}\t{interval.end}\t{strand}\n")
    return saveto
