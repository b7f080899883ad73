import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


# Filters which are not expressible as plain flags (insert size, orientation, mismatches etc),
# rules are given by the external bamtools JSON script
async def filter(path: str, script: str, saveto: str = None) -> str:
    assert os.path.isfile(path) and os.path.isfile(script)
    saveto = saveto if saveto else tempfile.mkstemp(suffix=".bam")[1]
    await run(["bamtools", "filter", "-in", path, "-out", saveto, "-script", script], logger,
              logbefore=f"Start bamtools filter for {path} with script {script}", logafter="bamtools filter finished")
    return saveto
