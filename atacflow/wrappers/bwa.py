import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


async def mem(index: str, fastq1: str, fastq2: str = None, readgroup: str = None, threads: int = 1,
              saveto: str = None) -> str:
    """Align single or paired end reads, unsorted SAM output"""
    assert os.path.isfile(fastq1) and (fastq2 is None or os.path.isfile(fastq2))
    assert threads >= 1
    saveto = saveto if saveto is not None else tempfile.mkstemp(suffix=".sam")[1]
    cmd = ["bwa", "mem", "-t", threads, "-M"]
    if readgroup:
        cmd += ["-R", readgroup]
    cmd += [index, fastq1]
    if fastq2:
        cmd.append(fastq2)
    with open(saveto, 'w') as file:
        await run(
            cmd, logger, f"Running bwa mem with cmd {' '.join(str(x) for x in cmd)}", "Alignment finished",
            logstdout=False, stdout=file
        )
    return saveto
