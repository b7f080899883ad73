import os
import logging
from subprocess import CalledProcessError

from ..wrappers import bwa, samtools
from .meta import SampleKey, BamArtifact, Level
from .path import make_filename, mktemp
from .errors import AlignmentError
from .config import SORTED_SUFFIX

logger = logging.getLogger(__name__)


def readgroup(key: SampleKey) -> str:
    # bwa expects escaped tabs
    return f"@RG\\tID:{key.name}\\tSM:{key.replicate_key.name}\\tLB:{key.name}\\tPL:ILLUMINA\\tPU:1"


async def align(key: SampleKey, reads: [str], bwaindex: str, saveto: str, threads: int = 1,
                force: bool = False) -> BamArtifact:
    """
    Align one technical library: bwa mem -> coordinate sort -> index
    :param saveto: folder for the sorted BAM file
    """
    assert 1 <= len(reads) <= 2 and threads >= 1 and os.path.isdir(saveto)
    bam = make_filename(saveto, key=key, suffix=[SORTED_SUFFIX])
    if not os.path.isfile(bam) or not os.path.isfile(bam + ".bai") or force:
        sam = await bwa.mem(bwaindex, *reads, readgroup=readgroup(key), threads=threads,
                            saveto=mktemp(saveto, suffix=".sam"))
        try:
            await samtools.sort(sam, saveto=bam, threads=threads)
        finally:
            os.remove(sam)
        try:
            await samtools.index(bam, threads=threads)
        except CalledProcessError as e:
            raise AlignmentError(f"Failed to index {bam}") from e
    return BamArtifact(bam, key, Level.LIBRARY, sources=tuple(reads), filters=())
