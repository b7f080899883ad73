import shutil
import asyncio

import pytest

from atacflow import cli

from atacflow.pipeline import genome
from atacflow.pipeline.errors import ConfigurationError
from atacflow.pipeline.meta import RunOptions, ReplicateKey, Level
from atacflow.pipeline.path import make_filename, mktree, stagedir


def _fasta(tmp_path):
    fasta = tmp_path / "genome.fa"
    fasta.write_text(">chr1\nACGT\n")
    (tmp_path / "genome.fa.fai").write_text("chr1\t1000\t6\t4\t5\nchr2\t500\t20\t4\t5\nchrM\t160\t30\t4\t5\n")
    return str(fasta)


def test_includable_regions(tmp_path):
    folder = tmp_path / "references"
    folder.mkdir()
    options = RunOptions(fasta=_fasta(tmp_path), bwa_index="genome")
    reference = asyncio.run(genome.prepare(options, str(folder)))

    assert reference.mito == "chrM"
    assert (folder / "chrom.sizes").read_text() == "chr1\t1000\nchr2\t500\nchrM\t160\n"
    regions = [line.split("\t")[:3] for line in open(reference.includable).read().splitlines()]
    assert regions == [["chr1", "0", "1000"], ["chr2", "0", "500"]]


def test_keep_mito(tmp_path):
    folder = tmp_path / "references"
    folder.mkdir()
    options = RunOptions(fasta=_fasta(tmp_path), bwa_index="genome", keep_mito=True)
    reference = asyncio.run(genome.prepare(options, str(folder)))
    assert len(open(reference.includable).read().splitlines()) == 3


def test_mitochondrial_contig():
    assert genome.mitochondrial(["chr1", "MT"], None) == "MT"
    assert genome.mitochondrial(["chr1", "mito"], "mito") == "mito"
    assert genome.mitochondrial(["chr1"], None) is None
    with pytest.raises(ConfigurationError, match="mito"):
        genome.mitochondrial(["chr1", "chrM"], "mito")


def test_validate(tmp_path):
    fasta = _fasta(tmp_path)
    with pytest.raises(ConfigurationError, match="BWA index"):
        genome.validate(RunOptions(fasta=fasta, bwa_index=str(tmp_path / "genome")))
    for ext in genome.BWA_INDEX_EXTENSIONS:
        (tmp_path / f"genome{ext}").write_text("")
    genome.validate(RunOptions(fasta=fasta, bwa_index=str(tmp_path / "genome")))
    with pytest.raises(ConfigurationError, match="genes.gtf"):
        genome.validate(RunOptions(fasta=fasta, bwa_index=str(tmp_path / "genome"), gtf=str(tmp_path / "genes.gtf")))


def test_layout(tmp_path):
    mktree(str(tmp_path))
    folder = stagedir(str(tmp_path), Level.REPLICATE, "filtering")
    assert (tmp_path / "replicate" / "filtering").is_dir() and (tmp_path / "condition" / "consensus").is_dir()
    assert make_filename(folder, key=ReplicateKey("A", 1), suffix=["markdup"]) == \
        str(tmp_path / "replicate" / "filtering" / "A_R1.markdup.bam")
    assert make_filename("peaks", key=ReplicateKey("A", 1), format="narrowPeak") == "peaks/A_R1.narrowPeak"


requires_bedtools = pytest.mark.skipif(shutil.which("bedtools") is None, reason="bedtools is not installed")


@requires_bedtools
def test_blacklist_is_subtracted(tmp_path):
    folder = tmp_path / "references"
    folder.mkdir()
    blacklist = tmp_path / "blacklist.bed"
    blacklist.write_text("chr1\t100\t200\nchr2\t400\t500\n")
    options = RunOptions(fasta=_fasta(tmp_path), bwa_index="genome", blacklist=str(blacklist))
    reference = asyncio.run(genome.prepare(options, str(folder)))

    regions = [line.split("\t")[:3] for line in open(reference.includable).read().splitlines()]
    assert regions == [["chr1", "0", "100"], ["chr1", "200", "1000"], ["chr2", "0", "400"]]


def test_malformed_index(tmp_path):
    folder = tmp_path / "references"
    folder.mkdir()
    fasta = tmp_path / "broken.fa"
    fasta.write_text(">chr1\nACGT\n")
    (tmp_path / "broken.fa.fai").write_text("chr1\tnot-a-number\t6\t4\t5\n")
    options = RunOptions(fasta=str(fasta), bwa_index="genome")
    with pytest.raises(ConfigurationError, match="broken.fa.fai"):
        asyncio.run(genome.prepare(options, str(folder)))


def _cli(tmp_path, fastq, fasta, *extra):
    for ext in genome.BWA_INDEX_EXTENSIONS:
        (tmp_path / f"genome{ext}").write_text("")
    design = tmp_path / "design.csv"
    design.write_text(f"condition,replicate,fastq_1\nA,1,{fastq('a.fq')}\n")
    root = tmp_path / f"run{len(list(tmp_path.glob('run*')))}"
    return cli.main([str(root), "--design", str(design), "--single-end", "--fasta", fasta,
                     "--bwa-index", str(tmp_path / "genome"), "--memory", "1g", *extra])


def test_cli_rejects_malformed_index(tmp_path, fastq, capsys):
    fasta = tmp_path / "broken.fa"
    fasta.write_text(">chr1\nACGT\n")
    (tmp_path / "broken.fa.fai").write_text("chr1\tnot-a-number\t6\t4\t5\n")
    assert _cli(tmp_path, fastq, str(fasta)) == 1
    assert "broken.fa.fai" in capsys.readouterr().err


def test_cli_rejects_unknown_mito_contig(tmp_path, fastq):
    assert _cli(tmp_path, fastq, _fasta(tmp_path), "--mito-name", "chrMito") == 1


@requires_bedtools
def test_cli_rejects_malformed_blacklist(tmp_path, fastq, capsys):
    blacklist = tmp_path / "blacklist.bed"
    blacklist.write_text("chr1\tstart\tend\n")
    assert _cli(tmp_path, fastq, _fasta(tmp_path), "--blacklist", str(blacklist)) == 1
    assert "blacklist.bed" in capsys.readouterr().err
