import os
import re
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)

_FLAGSTAT_LINE = re.compile(r"^(\d+) \+ (\d+) (.+)$")


async def faidx(fasta: str, saveto: str = None) -> str:
    assert os.path.isfile(fasta)
    saveto = saveto if saveto else fasta + ".fai"
    await run(["samtools", "faidx", fasta, "--fai-idx", saveto], logger,
              logbefore=f"samtools faidx {fasta}", logafter="fasta index building is finished")
    return saveto


async def merge(files: [str], threads: int = 1, saveto: str = None) -> str:
    assert threads > 0 and len(files) >= 2 and all(os.path.exists(f) for f in files)
    saveto = saveto if saveto else tempfile.mkstemp(suffix=".bam")[1]
    await run(["samtools", "merge", "-f", f"--threads={threads}", saveto, *files], logger,
              logbefore=f"start samtools merge for {files}, saved in {saveto}", logafter="samtools merge finished")
    assert os.path.exists(saveto)
    return saveto


async def sort(path: str, saveto: str = None, threads: int = 1, byname: bool = False) -> str:
    """Coordinate sort by default, query name sort if byname is set"""
    assert os.path.exists(path) and threads > 0
    saveto = saveto if saveto else tempfile.mkstemp(suffix=".bam")[1]
    cmd = ["samtools", "sort", f"--threads={threads}", "-o", saveto]
    if byname:
        cmd.append("-n")
    cmd.append(path)
    await run(cmd, logger, logbefore=f"Start samtools sort for {path} (byname={byname})",
              logafter="samtools sort finished")
    return saveto


async def index(bam: str, threads: int = 1) -> str:
    assert os.path.exists(bam) and threads > 0
    await run(["samtools", "index", "-@", threads, bam], logger,
              logbefore=f"Indexing file {bam}", logafter="finished indexing")
    return bam + ".bai"


async def _report(tool: str, file: str, saveto: str = None) -> str:
    assert os.path.exists(file)
    saveto = saveto if saveto else tempfile.mkstemp()[1]
    report = (await run(
        ["samtools", tool, file], logger, logbefore=f"Start samtools {tool} for {file}",
        logafter=f"samtools {tool} finished", logstdout=False
    )).stdout.decode()
    with open(saveto, 'w') as stream:
        stream.write(report)
    return saveto


# samtools flagstat in.bam -> simple stats mapped/unmapped/passed etc
async def flagstat(file: str, saveto: str = None) -> str:
    return await _report("flagstat", file, saveto)


# samtools idxstats -> per-contig mapped reads, requires index
async def idxstats(file: str, saveto: str = None) -> str:
    assert os.path.exists(file + ".bai")
    return await _report("idxstats", file, saveto)


# samtools stats -> statistics about alignment etc
async def stats(file: str, saveto: str = None) -> str:
    return await _report("stats", file, saveto)


def parse_flagstat(path: str) -> {str: int}:
    """
    Parse samtools flagstat report into {category: QC-passed reads}.
    Trailing percentages are dropped, i.e. "mapped (99.50% : N/A)" -> "mapped"
    """
    result = {}
    with open(path, 'r') as file:
        for line in file:
            match = _FLAGSTAT_LINE.match(line.strip())
            if match is None:
                continue
            passed, category = int(match.group(1)), match.group(3)
            if category.endswith(")") and " (" in category:
                head, inner = category.rsplit(" (", 1)
                if ":" in inner or "QC-passed" in inner:
                    category = head
            result[category] = passed
    return result
