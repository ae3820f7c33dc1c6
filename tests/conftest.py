# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
#     "pydantic",
#     "pysam",
#     "pytest",
# ]
# ///
"""
Pytest fixtures and configuration for sam_mapped_length testing.

This module provides shared fixtures for building SAM lines, parsed
records, a reference FASTA, and small SAM/BAM/CRAM files with mate pairs
in a chosen order.
"""

import sys
import tempfile
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

import pysam
import pytest

# Add bin directory to Python path so we can import the modules under test
BIN_DIR = Path(__file__).parent.parent / "bin"
sys.path.insert(0, str(BIN_DIR))

# Now we can import the modules we're testing
from sam_mapped_length import AlignmentRecord

# Common flags: properly paired R1 forward / R2 reverse, and the swapped layout
FLAG_R1_FWD = 99  # paired, proper, mate reverse, first
FLAG_R2_REV = 147  # paired, proper, reverse, second
FLAG_R1_REV = 83  # paired, proper, reverse, first
FLAG_R2_FWD = 163  # paired, proper, mate reverse, second
FLAG_SECONDARY = 0x100
FLAG_SUPPLEMENTARY = 0x800

REFERENCE_LENGTH = 10_000
REFERENCE_SEQUENCE = "ACGT" * (REFERENCE_LENGTH // 4)


def build_sam_line(
    qname: str,
    flag: int = 0,
    rname: str = "chr1",
    pos: int = 1,
    cigar: str = "50M",
    tags: Sequence[str] = (),
    mapq: int = 60,
    seq: str = "*",
) -> str:
    """One tab-separated SAM record (no trailing newline)."""
    fields = [qname, str(flag), rname, str(pos), str(mapq), cigar, "*", "0", "0", seq, "*"]
    fields.extend(tags)
    return "\t".join(fields)


def create_sam_header() -> dict[str, Any]:
    """A minimal SAM header with two references."""
    return {
        "HD": {"VN": "1.6", "SO": "queryname"},
        "SQ": [
            {"SN": "chr1", "LN": REFERENCE_LENGTH},
            {"SN": "chr2", "LN": REFERENCE_LENGTH},
        ],
        "PG": [{"ID": "test", "PN": "sam_mapped_length_test", "VN": "0.1.0"}],
    }


def reference_slice(pos: int, length: int) -> str:
    """Reference bases under a read starting at 1-based `pos`."""
    return REFERENCE_SEQUENCE[pos - 1 : pos - 1 + length]


def write_alignment_file(
    path: Path,
    lines: Sequence[str],
    reference: Path | None = None,
) -> Path:
    """
    Write SAM lines to a SAM, BAM or CRAM file (chosen by suffix) via pysam.
    CRAM needs the reference FASTA the reads were aligned to.
    """
    mode = {".bam": "wb", ".cram": "wc"}.get(path.suffix, "w")
    kwargs = {}
    if reference is not None:
        kwargs["reference_filename"] = str(reference)
    with pysam.AlignmentFile(str(path), mode, header=create_sam_header(), **kwargs) as out:
        for line in lines:
            out.write(pysam.AlignedSegment.fromstring(line, out.header))
    return path


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Scratch directory for SAM/BAM/CRAM inputs, sorted copies and reports."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def reference_fasta(temp_dir: Path) -> Path:
    """An indexed FASTA holding chr1 and chr2 of the test header."""
    fasta = temp_dir / "reference.fa"
    with fasta.open("w") as handle:
        for name in ("chr1", "chr2"):
            handle.write(f">{name}\n")
            for start in range(0, REFERENCE_LENGTH, 60):
                handle.write(REFERENCE_SEQUENCE[start : start + 60] + "\n")
    pysam.faidx(str(fasta))
    return fasta


@pytest.fixture
def sam_line() -> Callable[..., str]:
    """Factory for SAM record lines."""
    return build_sam_line


@pytest.fixture
def make_record() -> Callable[..., AlignmentRecord]:
    """Factory for parsed AlignmentRecords."""

    def _make(*args: Any, **kwargs: Any) -> AlignmentRecord:
        return AlignmentRecord.from_line(build_sam_line(*args, **kwargs))

    return _make


@pytest.fixture
def paired_lines() -> list[str]:
    """
    Name-sorted paired-end records:
    - pair_overlap: fully overlapping mates with NM/nM tags
    - pair_apart: concordant, non-overlapping mates
    - pair_discordant: mates on chr1/chr2
    - orphan: an R2 with no mate
    """
    return [
        build_sam_line("pair_overlap", FLAG_R1_FWD, "chr1", 100, "50M", ["NM:i:1", "nM:i:3"]),
        build_sam_line("pair_overlap", FLAG_R2_REV, "chr1", 100, "50M", ["NM:i:2", "nM:i:3"]),
        build_sam_line("pair_apart", FLAG_R1_FWD, "chr1", 100, "40M", ["nM:i:0"]),
        build_sam_line("pair_apart", FLAG_R2_REV, "chr1", 500, "5S35M"),
        build_sam_line("pair_discordant", FLAG_R1_FWD, "chr1", 100, "30M"),
        build_sam_line("pair_discordant", FLAG_R2_REV, "chr2", 120, "30M"),
        build_sam_line("pair_zorphan", FLAG_R2_REV, "chr1", 700, "25M", ["NM:i:4"]),
    ]


@pytest.fixture
def paired_expected_rows() -> list[str]:
    """Report rows for `paired_lines`, in input order."""
    return [
        "pair_overlap\t100\t50\t3\t50\t50\t1\t2",
        "pair_apart\t75\t75\t0\t40\t35\t\t",
        "pair_discordant\t60\t-1\t\t30\t30\t\t",
        "pair_zorphan\t25\t25\t\t\t25\t\t4",
    ]


@pytest.fixture
def paired_sam_file(temp_dir: Path, paired_lines: list[str]) -> Path:
    """A name-sorted paired-end SAM file."""
    return write_alignment_file(temp_dir / "paired.sam", paired_lines)


@pytest.fixture
def unsorted_bam_file(temp_dir: Path, paired_lines: list[str]) -> Path:
    """The paired records in coordinate-like order, mates not adjacent."""
    lines = [paired_lines[i] for i in (0, 2, 4, 1, 3, 5, 6)]
    return write_alignment_file(temp_dir / "unsorted.bam", lines)


@pytest.fixture
def cram_lines() -> list[str]:
    """
    Name-sorted paired records carrying reference bases:
    - p: fully overlapping mates with NM/nM tags
    - q: concordant, non-overlapping mates
    """
    return [
        build_sam_line(
            "p", FLAG_R1_FWD, "chr1", 100, "50M", ["NM:i:1", "nM:i:3"], seq=reference_slice(100, 50)
        ),
        build_sam_line(
            "p", FLAG_R2_REV, "chr1", 100, "50M", ["NM:i:2", "nM:i:3"], seq=reference_slice(100, 50)
        ),
        build_sam_line("q", FLAG_R1_FWD, "chr1", 300, "40M", seq=reference_slice(300, 40)),
        build_sam_line("q", FLAG_R2_REV, "chr1", 500, "40M", seq=reference_slice(500, 40)),
    ]


@pytest.fixture
def cram_expected_rows() -> list[str]:
    """Report rows for `cram_lines`, in name order."""
    return [
        "p\t100\t50\t3\t50\t50\t1\t2",
        "q\t80\t80\t\t40\t40\t\t",
    ]


@pytest.fixture
def name_sorted_cram_file(temp_dir: Path, cram_lines: list[str], reference_fasta: Path) -> Path:
    """A name-sorted paired-end CRAM file."""
    return write_alignment_file(temp_dir / "paired.cram", cram_lines, reference_fasta)


@pytest.fixture
def unsorted_cram_file(temp_dir: Path, cram_lines: list[str], reference_fasta: Path) -> Path:
    """The CRAM records with mates interleaved across pairs."""
    lines = [cram_lines[i] for i in (0, 2, 1, 3)]
    return write_alignment_file(temp_dir / "unsorted.cram", lines, reference_fasta)


@pytest.fixture
def single_end_sam_file(temp_dir: Path) -> Path:
    """Single-end records, including a secondary and a supplementary alignment."""
    lines = [
        build_sam_line("se_read1", 0, "chr1", 10, "75M"),
        build_sam_line("se_read1", FLAG_SECONDARY, "chr1", 900, "75M"),
        build_sam_line("se_read2", 16, "chr2", 20, "10S60M5I5M", ["NM:i:6", "nM:i:6"]),
        build_sam_line("se_read2", FLAG_SUPPLEMENTARY, "chr1", 300, "10M70H"),
    ]
    return write_alignment_file(temp_dir / "single.sam", lines)


@pytest.fixture(autouse=True)
def configure_logging_for_tests() -> None:
    """Keep only warnings and errors from the report on stderr during tests."""
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level="WARNING")
