from atacflow.utils.orphans import remove_orphans

from .bamfiles import write_bam, names

# read1 forward / read2 reverse
R1F, R2R = 0x1 | 0x2 | 0x20 | 0x40, 0x1 | 0x2 | 0x10 | 0x80
# read1 reverse / read2 forward
R1R, R2F = 0x1 | 0x2 | 0x10 | 0x40, 0x1 | 0x2 | 0x20 | 0x80
UNMAPPED_R2 = 0x1 | 0x4 | 0x80
SECONDARY = 0x100


def test_only_complete_pairs_survive(tmp_path):
    reads = [
        ("pair", R1F, 0, 100, 0, 300), ("pair", R2R, 0, 300, 0, 100),
        # mate was filtered out
        ("lonely", R1F, 0, 500, 0, 700),
        # mate is unmapped
        ("halfmapped", R1F, 0, 900, 0, 900), ("halfmapped", UNMAPPED_R2, 0, 900, 0, 900),
        # secondary alignments stay with the pair
        ("multi", R1F, 1, 100, 1, 200), ("multi", R2R, 1, 200, 1, 100), ("multi", R1F | SECONDARY, 1, 5000, 1, 200),
    ]
    source = write_bam(str(tmp_path / "byname.bam"), reads, order="queryname")
    kept, removed = remove_orphans(source, str(tmp_path / "pairs.bam"))
    assert names(str(tmp_path / "pairs.bam")) == ["pair", "pair", "multi", "multi", "multi"]
    assert (kept, removed) == (5, 3)


def test_only_fr_pairs(tmp_path):
    reads = [
        ("fr", R1F, 0, 100, 0, 300), ("fr", R2R, 0, 300, 0, 100),
        # reverse mate upstream of the forward one
        ("rf", R1R, 0, 100, 0, 300), ("rf", R2F, 0, 300, 0, 100),
        # same strand
        ("ff", R1F, 0, 100, 0, 300), ("ff", R2F, 0, 300, 0, 100),
        # different contigs
        ("chimeric", R1F, 0, 100, 1, 300), ("chimeric", R2R, 1, 300, 0, 100),
    ]
    source = write_bam(str(tmp_path / "byname.bam"), reads, order="queryname")

    remove_orphans(source, str(tmp_path / "all.bam"), only_fr_pairs=False)
    assert names(str(tmp_path / "all.bam")) == [r[0] for r in reads]

    kept, removed = remove_orphans(source, str(tmp_path / "fr.bam"), only_fr_pairs=True)
    assert names(str(tmp_path / "fr.bam")) == ["fr", "fr"]
    assert (kept, removed) == (2, 6)
