import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


def filter_rule(paired: bool, keep_dups: bool = False, keep_multi_map: bool = False, min_mapq: int = 1) -> str:
    """
    sambamba filter expression for the flag-based alignment filter.
    Multi-mapping reads are kept together with secondary alignments, i.e. keep_multi_map disables both
    the mapping quality threshold and the secondary/supplementary check.
    """
    assert min_mapq >= 0
    rule = ["not unmapped", "not failed_quality_control"]
    if not keep_multi_map:
        rule += ["not secondary_alignment", "not supplementary", f"mapping_quality >= {min_mapq}"]
    if not keep_dups:
        rule.append("not duplicate")
    if paired:
        rule += ["paired", "not mate_is_unmapped", "proper_pair"]
    return " and ".join(rule)


async def filter(path: str, rule: str, regions: str = None, threads: int = 1, saveto: str = None) -> str:
    assert os.path.exists(path)
    assert threads > 0
    assert regions is None or os.path.isfile(regions)

    saveto = saveto if saveto else tempfile.mkstemp(suffix=".bam")[1]
    cmd = ["sambamba", "view", "--with-header", "--show-progress", "--compression-level=9",
           f"--nthreads={threads}", f'--filter={rule}', "--format=bam", f"--output-filename={saveto}"]
    if regions:
        cmd.append(f"--regions={regions}")
    cmd.append(path)
    await run(cmd, logger, logbefore=f"Start sambamba view for {path} with rule {rule}", logafter="view finished")
    return saveto


async def numreads(bam: str, regions: str = None, threads: int = 1) -> int:
    """Number of reads, optionally only reads overlapping the BED regions (each read is counted once)"""
    assert os.path.isfile(bam) and threads >= 1
    cmd = ["sambamba", "view", "-c", f"--nthreads={threads}"]
    if regions:
        cmd.append(f"--regions={regions}")
    cmd.append(bam)
    result = await run(cmd, logger, f"count reads with cmd: {' '.join(cmd)}", "numreads finished")
    return int(result.stdout.decode())
