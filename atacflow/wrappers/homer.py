import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


async def annotatePeaks(peaks: str, fasta: str, gtf: str, threads: int = 1, saveto: str = None) -> str:
    """Annotate intervals with the nearest genomic features, HOMER tab-separated output"""
    assert os.path.isfile(peaks) and os.path.isfile(fasta) and os.path.isfile(gtf)
    saveto = saveto if saveto else tempfile.mkstemp(suffix=".annotatePeaks.txt")[1]
    with open(saveto, 'w') as file:
        await run(["annotatePeaks.pl", peaks, fasta, "-gid", "-gtf", gtf, "-cpu", threads], logger,
                  logbefore=f"HOMER annotatePeaks for {peaks}", logafter="annotatePeaks finished",
                  logstdout=False, stdout=file)
    return saveto
