from pybedtools import Interval

from atacflow.utils.bed import PeakSet, build_consensus, to_bed, to_saf, to_matrix


def _peaks(name, *intervals):
    return PeakSet(name, tuple(Interval(chrom, start, end, name=f"{name}_{ind}", score=str(ind), strand=".")
                               for ind, (chrom, start, end) in enumerate(intervals)))


def _coords(consensus):
    return [(i.chrom, i.start, i.end) for i in consensus.intervals]


def test_min_support():
    a = _peaks("A", ("chr1", 100, 200))
    b = _peaks("B", ("chr1", 150, 250))
    c = _peaks("C", ("chr1", 900, 950))
    consensus = build_consensus([a, b, c], min_support=2)
    assert _coords(consensus) == [("chr1", 100, 250)]
    assert consensus.support.tolist() == [[True, True, False]]
    assert consensus.intervals[0].name == "Interval_1" and consensus.intervals[0].score == "2"

    consensus = build_consensus([a, b, c], min_support=1)
    assert _coords(consensus) == [("chr1", 100, 250), ("chr1", 900, 950)]
    assert consensus.support.sum(axis=1).tolist() == [2, 1]


def test_single_set_is_merged_with_itself():
    peaks = _peaks("A", ("chr1", 500, 600), ("chr1", 100, 200), ("chr1", 150, 300), ("chr2", 10, 20))
    consensus = build_consensus([peaks], 1)
    assert _coords(consensus) == [("chr1", 100, 300), ("chr1", 500, 600), ("chr2", 10, 20)]
    assert consensus.support.all()

    again = build_consensus([PeakSet("A", consensus.intervals)], 1)
    assert _coords(again) == _coords(consensus)


def test_sorted_and_non_overlapping():
    sets = [
        _peaks("A", ("chr2", 0, 50), ("chr1", 40, 80), ("chr1", 300, 310)),
        _peaks("B", ("chr1", 0, 10), ("chr1", 10, 20), ("chr2", 49, 60)),
        _peaks("C", ("chr1", 75, 90), ("chr1", 200, 250)),
    ]
    coords = _coords(build_consensus(sets, 1))
    assert coords == sorted(coords)
    for (c1, _, e1), (c2, s2, _) in zip(coords, coords[1:]):
        assert c1 != c2 or e1 < s2
    # book-ended intervals are merged
    assert ("chr1", 0, 20) in coords and ("chr1", 40, 90) in coords and ("chr2", 0, 60) in coords


def test_metadata_order_is_deterministic():
    a = _peaks("A", ("chr1", 100, 200))
    b = _peaks("B", ("chr1", 100, 150), ("chr1", 100, 200))
    consensus = build_consensus([a, b], 1)
    # ties by end, then by peak set and position
    assert consensus.names == ("B_0,A_0,B_1", )
    assert consensus.scores == ("0,0,1", )
    assert build_consensus([a, b], 1).names == consensus.names


def test_strand():
    plus = PeakSet("A", (Interval("chr1", 0, 10, strand="+"), Interval("chr1", 5, 20, strand="+"),
                         Interval("chr1", 50, 60, strand="+")))
    minus = PeakSet("B", (Interval("chr1", 55, 70, strand="-"), ))
    consensus = build_consensus([plus, minus], 1)
    assert [i.strand for i in consensus.intervals] == ["+", "."]


def test_exports(tmp_path):
    a = _peaks("A", ("chr1", 100, 200), ("chr2", 0, 10))
    b = _peaks("B", ("chr1", 150, 250))
    consensus = build_consensus([a, b], 1)

    to_saf(consensus, str(tmp_path / "consensus.saf"))
    assert (tmp_path / "consensus.saf").read_text().splitlines() == ["GeneID\tChr\tStart\tEnd\tStrand",
                                "Interval_1\tchr1\t101\t250\t+",
                                "Interval_2\tchr2\t1\t10\t+"]

    to_matrix(consensus, str(tmp_path / "matrix.txt"))
    rows = [line.split("\t") for line in (tmp_path / "matrix.txt").read_text().splitlines()]
    assert rows[0][:7] == ["interval_id", "chrom", "start", "end", "A", "B", "num_samples"]
    assert rows[1][:7] == ["Interval_1", "chr1", "100", "250", "TRUE", "TRUE", "2"]
    assert rows[2][:7] == ["Interval_2", "chr2", "0", "10", "TRUE", "FALSE", "1"]
    assert rows[0][7:] == ["names", "scores", "strands"]
    assert rows[1][7:] == ["A_0,B_0", "0,0", ".,."]

    to_bed(consensus, str(tmp_path / "consensus.bed"))
    bed = [line.split("\t") for line in (tmp_path / "consensus.bed").read_text().splitlines()]
    assert bed == [["chr1", "100", "250", "Interval_1", "2", "."], ["chr2", "0", "10", "Interval_2", "1", "."]]
