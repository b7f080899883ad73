import os
import asyncio

import pytest

from atacflow import cli
from atacflow.wrappers import sambamba, samtools, picard, macs2, subread, deseq2


class Recorder:
    def __init__(self, effect=None):
        self.cmds, self.effect = [], effect

    async def __call__(self, cmd, *args, **kwargs):
        cmd = [str(x) for x in cmd]
        self.cmds.append(cmd)
        if self.effect:
            self.effect(cmd)


def test_filter_rule():
    rule = sambamba.filter_rule(paired=False)
    assert rule == "not unmapped and not failed_quality_control and not secondary_alignment and " \
                   "not supplementary and mapping_quality >= 1 and not duplicate"

    rule = sambamba.filter_rule(paired=True, keep_dups=True, keep_multi_map=True)
    assert "duplicate" not in rule and "mapping_quality" not in rule and "secondary_alignment" not in rule
    assert rule.endswith("paired and not mate_is_unmapped and proper_pair")
    assert "mapping_quality >= 30" in sambamba.filter_rule(paired=False, min_mapq=30)


def test_parse_flagstat(tmp_path):
    report = tmp_path / "flagstat"
    report.write_text(
        "2000 + 5 in total (QC-passed reads + QC-failed reads)\n"
        "10 + 0 secondary\n"
        "1990 + 5 mapped (99.50% : N/A)\n"
        "1800 + 0 properly paired (90.00% : N/A)\n"
        "12 + 0 with mate mapped to a different chr (mapQ>=5)\n"
    )
    stats = samtools.parse_flagstat(str(report))
    assert stats["in total"] == 2000 and stats["mapped"] == 1990 and stats["properly paired"] == 1800
    assert stats["secondary"] == 10
    assert stats["with mate mapped to a different chr (mapQ>=5)"] == 12


def test_parse_markdup_metrics(tmp_path):
    report = tmp_path / "metrics.txt"
    report.write_text(
        "## htsjdk.samtools.metrics.StringHeader\n\n"
        "## METRICS CLASS\tpicard.sam.DuplicationMetrics\n"
        "LIBRARY\tREAD_PAIRS_EXAMINED\tPERCENT_DUPLICATION\tESTIMATED_LIBRARY_SIZE\n"
        "A_R1\t5000\t0.125\t\n\n"
        "## HISTOGRAM\tjava.lang.Double\n"
    )
    assert picard.parse_metrics(str(report)) == {"READ_PAIRS_EXAMINED": 5000.0, "PERCENT_DUPLICATION": 0.125}


def test_callpeak_command(tmp_path, monkeypatch):
    def effect(cmd):
        outdir = [x for x in cmd if x.startswith("--outdir=")][0].split("=", 1)[1]
        open(os.path.join(outdir, "NA_peaks.narrowPeak"), 'w').close()
        open(os.path.join(outdir, "NA_peaks.xls"), 'w').close()

    recorder = Recorder(effect)
    monkeypatch.setattr(macs2, "run", recorder)
    data = tmp_path / "A.bam"
    data.write_text("")
    saveto = str(tmp_path / "A.narrowPeak")

    assert asyncio.run(macs2.callpeak([str(data)], "hs", paired=True, saveto=saveto)) == saveto
    assert os.path.isfile(saveto) and os.path.isfile(saveto + ".xls")
    cmd = recorder.cmds[0]
    assert "--format=BAMPE" in cmd and "--keep-dup=all" in cmd and "--shift" not in cmd and "--broad" not in cmd
    # only the peaks are kept
    assert sorted(os.listdir(tmp_path)) == ["A.bam", "A.narrowPeak", "A.narrowPeak.xls"]

    asyncio.run(macs2.callpeak([str(data)], "hs", paired=False, saveto=saveto))
    assert "--format=BAM" in recorder.cmds[1] and "--shift" in recorder.cmds[1]
    assert "-p" not in recorder.cmds[1] and "-q" not in recorder.cmds[1]

    asyncio.run(macs2.callpeak([str(data)], "hs", paired=False, saveto=saveto, pcutoff=0.01, fdrcutoff=0.05))
    assert "-p" in recorder.cmds[2] and "0.01" in recorder.cmds[2] and "-q" not in recorder.cmds[2]
    asyncio.run(macs2.callpeak([str(data)], "hs", paired=False, saveto=saveto, fdrcutoff=0.05))
    assert recorder.cmds[3][recorder.cmds[3].index("-q") + 1] == "0.05"


def test_peak_thresholds_from_command_line():
    args = cli.parser().parse_args(["run", "--design", "design.csv", "--fasta", "genome.fa", "--bwa-index", "genome",
                                    "--macs-pvalue", "0.01"])
    options = cli.options(args)
    assert options.macs_pvalue == 0.01 and options.macs_fdr is None


def test_featurecounts_command(tmp_path, monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(subread, "run", recorder)
    saf, bam = tmp_path / "consensus.saf", tmp_path / "A_R1.bam"
    saf.write_text("")
    bam.write_text("")
    asyncio.run(subread.featureCounts(str(saf), [str(bam)], paired=True, saveto=str(tmp_path / "counts.txt")))
    cmd = recorder.cmds[0]
    assert cmd[:3] == ["featureCounts", "-F", "SAF"] and "-p" in cmd and cmd[-1] == str(bam)


def test_deseq2_requires_two_conditions(tmp_path, monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(deseq2, "run", recorder)
    counts = tmp_path / "counts.txt"
    counts.write_text("")
    asyncio.run(deseq2.deseq2("script.r", str(counts), ["a.bam", "b.bam"], ["A", "B"], str(tmp_path), "AvsB"))
    assert "--conditions=A,B" in recorder.cmds[0]
    with pytest.raises(AssertionError):
        asyncio.run(deseq2.deseq2("script.r", str(counts), ["a.bam", "b.bam"], ["A", "A"], str(tmp_path), "AvsA"))
