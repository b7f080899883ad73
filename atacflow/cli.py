"""Command line entry point: atacflow --design design.csv --fasta genome.fa --bwa-index index/genome OUTDIR"""
import sys
import asyncio
import logging
import argparse

from .pipeline import endtoend
from .pipeline.design import read_design
from .pipeline.meta import RunOptions
from .pipeline.errors import PipelineError
from .pipeline.config import MIN_MAPQ, BROAD_CUTOFF, DESEQ2_SCRIPT

logger = logging.getLogger(__name__)


def parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="atacflow",
        description="Multi-level ATAC-seq processing: alignment, replicate/condition aggregation, peak calling, "
                    "consensus peaks and differential accessibility."
    )
    p.add_argument("root", help="Output folder of the run")
    p.add_argument("--design", required=True, help="CSV with columns condition(or group),replicate,fastq_1,fastq_2")
    p.add_argument("--single-end", action="store_true", help="Reads are single-end, one fastq per row")

    refs = p.add_argument_group("references")
    refs.add_argument("--fasta", required=True)
    refs.add_argument("--bwa-index", required=True, help="Prefix of the bwa index files")
    refs.add_argument("--gtf", default=None, help="Gene annotation, enables HOMER peak annotation")
    refs.add_argument("--blacklist", default=None, help="BED file with regions excluded from the analysis")
    refs.add_argument("--mito-name", default=None, help="Mitochondrial contig, detected automatically if absent")
    refs.add_argument("--keep-mito", action="store_true")

    peaks = p.add_argument_group("peak calling")
    peaks.add_argument("--macs-gsize", default=None, help="Effective genome size, peak calling is skipped if absent")
    peaks.add_argument("--broad-peak", action="store_true")
    peaks.add_argument("--broad-cutoff", type=float, default=BROAD_CUTOFF)
    peaks.add_argument("--macs-pvalue", type=float, default=None, help="macs2 p-value cutoff, overrides --macs-fdr")
    peaks.add_argument("--macs-fdr", type=float, default=None, help="macs2 q-value cutoff")
    peaks.add_argument("--min-reps-consensus", type=int, default=1,
                       help="Minimum number of peak sets supporting a consensus interval")

    filtering = p.add_argument_group("filtering")
    filtering.add_argument("--keep-dups", action="store_true")
    filtering.add_argument("--keep-multi-map", action="store_true")
    filtering.add_argument("--min-mapq", type=int, default=MIN_MAPQ)
    filtering.add_argument("--bamtools-filter-config", default=None, help="bamtools filter JSON script")
    filtering.add_argument("--only-fr-pairs", action="store_true")

    stages = p.add_argument_group("stages")
    stages.add_argument("--skip-merge-replicates", action="store_true")
    stages.add_argument("--skip-peak-annotation", action="store_true")
    stages.add_argument("--skip-diff-analysis", action="store_true")
    stages.add_argument("--skip-bigwig", action="store_true")
    stages.add_argument("--deseq2-script", default=DESEQ2_SCRIPT)

    resources = p.add_argument_group("resources")
    resources.add_argument("--memory", default=None, help="JVM heap for picard, e.g. 8g")
    resources.add_argument("--maxthreads", type=int, default=-1)
    resources.add_argument("--maxjobs", type=int, default=-1)
    resources.add_argument("--force", action="store_true", help="Rerun steps with existing results")
    return p


def options(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        fasta=args.fasta, bwa_index=args.bwa_index, gtf=args.gtf, blacklist=args.blacklist,
        mito_name=args.mito_name, keep_mito=args.keep_mito,
        macs_gsize=args.macs_gsize, broad_peak=args.broad_peak, broad_cutoff=args.broad_cutoff,
        macs_pvalue=args.macs_pvalue, macs_fdr=args.macs_fdr,
        min_reps_consensus=args.min_reps_consensus,
        skip_merge_replicates=args.skip_merge_replicates, skip_peak_annotation=args.skip_peak_annotation,
        skip_diff_analysis=args.skip_diff_analysis, skip_bigwig=args.skip_bigwig,
        keep_dups=args.keep_dups, keep_multi_map=args.keep_multi_map, min_mapq=args.min_mapq,
        bamtools_filter_config=args.bamtools_filter_config, only_fr_pairs=args.only_fr_pairs,
        memory=args.memory, maxthreads=args.maxthreads, maxjobs=args.maxjobs,
        deseq2_script=args.deseq2_script, force=args.force
    )


def main(argv: [str] = None) -> int:
    args = parser().parse_args(argv)
    try:
        design = read_design(args.design)
        report = asyncio.run(endtoend.run(args.root, design, options(args), paired=not args.single_end))
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"atacflow: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    if report["failures"]:
        print(f"atacflow: {len(report['failures'])} tasks failed: {', '.join(report['failures'])}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
