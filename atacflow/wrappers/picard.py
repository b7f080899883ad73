import os
import tempfile
import logging
from .utils import run

logger = logging.getLogger(__name__)


async def MarkDuplicates(path: str, memory: str, remove: bool = False, saveto: str = None,
                         metrics: str = None) -> (str, str):
    """
    Flag (or remove, if asked) duplicated reads in the coordinate sorted BAM file.
    :param memory: JVM heap size, e.g. 4g
    :return: paths to the resulting BAM file and the picard metrics file
    """
    assert os.path.exists(path) and memory

    saveto = saveto if saveto else tempfile.mkstemp(suffix=".bam")[1]
    metrics = metrics if metrics else tempfile.mkstemp(suffix=".metrics.txt")[1]
    await run([
            "picard", f"-Xmx{memory}", "MarkDuplicates", f"I={path}", f"O={saveto}", f"M={metrics}",
            f"REMOVE_DUPLICATES={'true' if remove else 'false'}", "ASSUME_SORTED=true",
            "VALIDATION_STRINGENCY=LENIENT", "TMP_DIR=" + tempfile.gettempdir()
        ], logger, logbefore=f"Start picard MarkDuplicates for {path}, remove duplicates: {remove}",
        logafter="MarkDuplicates finished"
    )
    return saveto, metrics


def parse_metrics(path: str) -> {str: float}:
    """Parse the single library row of picard MarkDuplicates metrics"""
    with open(path, 'r') as file:
        lines = [line.rstrip("\n") for line in file]
    header = [ind for ind, line in enumerate(lines) if line.startswith("LIBRARY\t")]
    if not header or header[0] + 1 >= len(lines) or not lines[header[0] + 1]:
        return {}
    keys, values = lines[header[0]].split("\t"), lines[header[0] + 1].split("\t")
    result = {}
    for key, value in zip(keys[1:], values[1:]):
        try:
            result[key] = float(value)
        except ValueError:
            continue
    return result
