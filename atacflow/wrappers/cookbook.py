import os
import shlex
import logging
import tempfile
from .utils import shell

logger = logging.getLogger(__name__)


async def bam_to_bigwig(bam: str, chrominfo: str, scale: float, paired: bool, saveto: str) -> str:
    """Scaled coverage track, scale is usually 1e6 / mapped reads"""
    assert os.path.isfile(bam) and os.path.isfile(chrominfo) and scale > 0
    fd, tmp = tempfile.mkstemp(suffix=".bedGraph")
    os.close(fd)
    fragments = "-pc " if paired else ""
    cmd = f'bedtools genomecov -ibam {shlex.quote(bam)} -bg {fragments}-scale {scale} | ' \
          f'LC_COLLATE=C sort -k1,1 -k2,2n > {shlex.quote(tmp)} && ' \
          f'bedGraphToBigWig {shlex.quote(tmp)} {shlex.quote(chrominfo)} {shlex.quote(saveto)}'
    try:
        await shell(cmd, logger, logbefore=f"bigwig for {bam} with scale {scale}", logafter="bigwig finished")
    finally:
        os.remove(tmp)
    assert os.path.exists(saveto)
    return saveto
