import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


# Read counting for SAF intervals. Reads overlapping several intervals are counted for each of them,
# at least `fraction` of the read must overlap the interval.
async def featureCounts(saf: str, bams: [str], paired: bool, fraction: float = 0.2, threads: int = 1,
                        saveto: str = None) -> str:
    assert os.path.isfile(saf) and bams and all(os.path.isfile(b) for b in bams)
    assert 0 < fraction <= 1 and threads > 0
    saveto = saveto if saveto else tempfile.mkstemp(suffix=".featureCounts.txt")[1]
    cmd = ["featureCounts", "-F", "SAF", "-O", "--fracOverlap", fraction, "-T", threads, "-a", saf, "-o", saveto]
    if paired:
        cmd.append("-p")
    cmd += bams
    await run(cmd, logger, logbefore=f"Start featureCounts for {len(bams)} files over {saf}",
              logafter="featureCounts finished")
    return saveto
