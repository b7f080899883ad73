import os
import shutil
import logging
import tempfile
from .utils import run

logger = logging.getLogger(__name__)


# duplicates -> already handled upstream, keep everything
# paired-end -> fragments are taken from the BAMPE format, single-end -> fixed 150bp shifted fragments
async def callpeak(data: [str], gsize: str, paired: bool, isbroad: bool = False, saveto: str = None,
                   pcutoff: float = None, fdrcutoff: float = None, broad_cutoff: float = 0.1) -> str:
    assert all(os.path.isfile(f) for f in data) and gsize
    saveto = saveto if saveto is not None else tempfile.mkstemp(suffix=".broadPeak" if isbroad else ".narrowPeak")[1]
    output = tempfile.mkdtemp(dir=os.path.abspath(os.path.dirname(saveto)))
    cmd = [
        "macs2", "callpeak", "-t", *data, "-g", gsize, f"--outdir={output}", "-n", "NA",
        "--seed=123", "--keep-dup=all", "--nomodel", f"--format={'BAMPE' if paired else 'BAM'}"
    ]
    if not paired:
        cmd += ["--shift", "-75", "--extsize", "150"]
    if isbroad:
        cmd += ["--broad", f"--broad-cutoff={broad_cutoff}"]
    if pcutoff is not None:
        cmd += ["-p", pcutoff]
    elif fdrcutoff is not None:
        cmd += ["-q", fdrcutoff]
    await run(cmd, logger, logbefore=f"Starting macs2 callpeak with cmd {' '.join(str(x) for x in cmd)}",
              logafter="Finished macs2")

    peaks = os.path.join(output, "NA_peaks.broadPeak" if isbroad else "NA_peaks.narrowPeak")
    shutil.move(peaks, saveto)
    xls = os.path.join(output, "NA_peaks.xls")
    if os.path.exists(xls):
        shutil.move(xls, saveto + ".xls")

    # cleanup
    shutil.rmtree(output)
    return saveto
