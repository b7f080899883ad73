# Global options for the multi-level ATAC-seq processing

LOGS_DIR = "logs"
REFERENCES_DIR = "references"
REPORT_FILENAME = "report.json"

# One artifact directory per aggregation level ...
LIBRARY_DIR = "library"
REPLICATE_DIR = "replicate"
CONDITION_DIR = "condition"

# ... sub-partitioned by stage
ALIGNMENT_DIR = "alignment"
FILTERING_DIR = "filtering"
BAM_QC_DIR = "qc"
BIGWIG_DIR = "bigwig"
PEAK_CALLING_DIR = "peak-calling"
CONSENSUS_DIR = "consensus"
DIFFERENTIAL_DIR = "differential"

# File name suffixes, see path.make_filename
SORTED_SUFFIX = "sorted"
MERGED_SUFFIX = "merged"
MARKDUP_SUFFIX = "markdup"
FILTERED_SUFFIX = "filtered"
DEDUP_SUFFIX = "dedup"

CONSENSUS_PREFIX = "consensus"
INCLUDABLE_REGIONS_FILENAME = "includable-regions.bed"
CHROMINFO_FILENAME = "chrom.sizes"

# Alignment filtering defaults
MIN_MAPQ = 1
MITO_NAMES = ("chrM", "MT", "M", "chrMT")

# JVM heap for picard when the memory hint is absent
DEFAULT_MEMORY = "4g"

# Reads to scale coverage tracks to
SCALE_TO_READS = 1_000_000

# featureCounts: minimum fraction of a read overlapping a consensus interval
FRACTION_OVERLAP = 0.2

BROAD_CUTOFF = 0.1
DESEQ2_SCRIPT = "featurecounts_deseq2.r"
