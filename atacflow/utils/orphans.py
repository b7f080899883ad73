import os
import logging
from itertools import groupby

import pysam

logger = logging.getLogger(__name__)


def _is_fr(first: pysam.AlignedSegment, second: pysam.AlignedSegment) -> bool:
    # mates on the same contig, forward mate upstream of the reverse one
    if first.reference_id != second.reference_id or first.is_reverse == second.is_reverse:
        return False
    forward, reverse = (first, second) if not first.is_reverse else (second, first)
    return forward.reference_start <= reverse.reference_start


def _is_pair(reads: [pysam.AlignedSegment], only_fr_pairs: bool) -> bool:
    primary = [r for r in reads if not r.is_secondary and not r.is_supplementary and not r.is_unmapped]
    read1 = [r for r in primary if r.is_read1]
    read2 = [r for r in primary if r.is_read2]
    if len(read1) != 1 or len(read2) != 1:
        return False
    return not only_fr_pairs or _is_fr(read1[0], read2[0])


def remove_orphans(path: str, saveto: str, only_fr_pairs: bool = False) -> (int, int):
    """
    Keep only reads whose mate also survived the filtering. The BAM file must be sorted by query name.
    :param only_fr_pairs: keep only pairs on the same contig in forward-reverse orientation
    :return: number of kept and removed records
    """
    assert os.path.isfile(path)
    kept, removed = 0, 0
    with pysam.AlignmentFile(path, "rb") as source, pysam.AlignmentFile(saveto, "wb", template=source) as target:
        for name, reads in groupby(source.fetch(until_eof=True), key=lambda r: r.query_name):
            reads = list(reads)
            if _is_pair(reads, only_fr_pairs):
                for r in reads:
                    target.write(r)
                kept += len(reads)
            else:
                removed += len(reads)
    logger.debug(f"Orphans removal for {path}: kept {kept}, removed {removed} records")
    return kept, removed
