import os
import tempfile
from .meta import Level, AnyKey
from .config import LOGS_DIR, REFERENCES_DIR, LIBRARY_DIR, REPLICATE_DIR, CONDITION_DIR, ALIGNMENT_DIR, \
    FILTERING_DIR, BAM_QC_DIR, BIGWIG_DIR, PEAK_CALLING_DIR, CONSENSUS_DIR, DIFFERENTIAL_DIR

LEVEL_DIRS = {Level.LIBRARY: LIBRARY_DIR, Level.REPLICATE: REPLICATE_DIR, Level.CONDITION: CONDITION_DIR}
STAGE_DIRS = {
    Level.LIBRARY: (ALIGNMENT_DIR, BAM_QC_DIR),
    Level.REPLICATE: (ALIGNMENT_DIR, FILTERING_DIR, BAM_QC_DIR, BIGWIG_DIR, PEAK_CALLING_DIR, CONSENSUS_DIR,
                      DIFFERENTIAL_DIR),
    Level.CONDITION: (ALIGNMENT_DIR, BAM_QC_DIR, BIGWIG_DIR, PEAK_CALLING_DIR, CONSENSUS_DIR, DIFFERENTIAL_DIR),
}


def make_filename(*path: [str], key: AnyKey, suffix: [str] = (), format: str = "bam") -> str:
    """<path>/<key name>.<suffix 1>.<suffix 2>...<format>, i.e. make_filename(root, key=A_R1, suffix=['markdup'])"""
    filename = ".".join([key.name, *suffix, format])
    return os.path.join(*path, filename)


def stagedir(root: str, level: Level, stage: str) -> str:
    return os.path.join(root, LEVEL_DIRS[level], stage)


def mktemp(folder: str, suffix: str = ".bam") -> str:
    """Temporary file inside the given folder, intermediate files are kept next to the final ones"""
    fd, path = tempfile.mkstemp(suffix=suffix, dir=folder)
    os.close(fd)
    return path


def mktree(root: str):
    """
    Setup directories tree for the given run root
    Overall structure looks like this:
        ── logs
        ── references
        ── library
        │   ├── alignment
        │   └── qc
        ── replicate
        │   ├── alignment
        │   ├── filtering
        │   ├── qc
        │   ├── bigwig
        │   ├── peak-calling
        │   ├── consensus
        │   └── differential
        │       ├── AvsB
        │       .......
        └── condition
            ├── alignment
            ├── qc
            .......
    :param root: path to the run root
    """
    os.makedirs(root, exist_ok=True)
    for d in (LOGS_DIR, REFERENCES_DIR):
        os.makedirs(os.path.join(root, d), exist_ok=True)

    for level, stages in STAGE_DIRS.items():
        for d in stages:
            os.makedirs(stagedir(root, level, d), exist_ok=True)
