import os
import logging
from .utils import run

logger = logging.getLogger(__name__)


async def deseq2(script: str, counts: str, samples: [str], conditions: [str], outdir: str, prefix: str,
                 threads: int = 1) -> str:
    """
    Run the external DESeq2 Rscript over the featureCounts table. Only samples listed in `samples` are used,
    conditions[i] is the condition of samples[i]
    """
    assert os.path.isfile(counts) and os.path.isdir(outdir)
    assert len(samples) == len(conditions) and len(set(conditions)) == 2
    cmd = [
        "Rscript", script, f"--featurecount_file={counts}", f"--samples={','.join(samples)}",
        f"--conditions={','.join(conditions)}", f"--outdir={outdir}", f"--outprefix={prefix}", f"--cores={threads}"
    ]
    await run(cmd, logger, logbefore=f"Start DESeq2 for {prefix}", logafter="DESeq2 finished")
    return outdir
