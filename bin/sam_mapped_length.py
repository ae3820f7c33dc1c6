#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
#     "pydantic",
#     "pysam",
# ]
# ///
"""
Per-read (SE) or per-pair (PE) mapped length and mismatch report for
SAM/BAM/CRAM alignments.

For every read or read pair one row is written with eight columns:

    1) read ID
    2) raw mapped length of the read/pair
    3) nonoverlapping mapped length of the read/pair
    4) mismatches of the read/pair (tag nM)
    5) mapped length of R1
    6) mapped length of R2
    7) mismatches of R1 (tag NM)
    8) mismatches of R2 (tag NM)

If SE, column 2) equals 3) and 5), and columns 6) and 8) are blank. If PE
and the mates map to different references (discordant), column 2) is the
sum of both mates and column 3) is -1.
"""

from __future__ import annotations

import argparse
import gzip
import re
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple, TextIO

import pysam
from loguru import logger
from pydantic import Field, ValidationError, field_validator
from pydantic.dataclasses import dataclass as validated_dataclass

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

__version__ = "0.3.0"

# ------------------------------- CONSTANTS -------------------------------- #

# SAM flag bits
FLAG_REVERSE = 0x10
FLAG_FIRST_MATE = 0x40
FLAG_SECONDARY = 0x100
FLAG_SUPPLEMENTARY = 0x800

# 0-based SAM columns used by the report
COL_QNAME = 0
COL_FLAG = 1
COL_RNAME = 2
COL_POS = 3
COL_CIGAR = 5
COL_FIRST_TAG = 11
MIN_SAM_FIELDS = 11

# Ops counted towards the mapped length
MAPPED_OPS = frozenset("M=X")
CIGAR_TOKEN = re.compile(r"(\d+)([MIDNSHP=XB])")

# Per-mate mismatches come from NM, per-pair mismatches from STAR's nM
MATE_MISMATCH_TAG = "NM"
PAIR_MISMATCH_TAG = "nM"

DISCORDANT_LENGTH = -1

HEADER_COLUMNS = (
    "ReadID",
    "RawLength",
    "NonoverlapLength",
    "Mismatches",
    "R1_MappedLength",
    "R2_MappedLength",
    "R1_Mismatches",
    "R2_Mismatches",
)

ALIGNMENT_SUFFIXES = (".sam", ".bam", ".cram")

# Emit a progress debug line after processing this many records
DEBUG_EVERY: int = 100_000


# ------------------------------- DATA TYPES -------------------------------- #


class EndType(str, Enum):
    """Sequencing layout of the input."""

    PE = "PE"
    SE = "SE"


class MateRole(str, Enum):
    """Which mate of a pair a record is."""

    R1 = "R1"
    R2 = "R2"


class MalformedRecordError(ValueError):
    """An alignment line is missing mandatory fields or has non-integer ones."""


@validated_dataclass
class RunConfig:
    """Validated settings for one report run."""

    in_path: Path
    out_path: Path | None = None
    end_type: EndType = EndType.PE
    name_sorted: bool = False
    ncores: int = Field(default=1, ge=1)
    reference: Path | None = None

    @field_validator("in_path")
    @classmethod
    def input_is_alignment(cls, v: Path) -> Path:
        if not v.exists():
            error_msg = f"input file {v} doesn't exist"
            raise ValueError(error_msg)
        if v.suffix.lower() not in ALIGNMENT_SUFFIXES:
            error_msg = f"input file {v} doesn't look like SAM, BAM or CRAM"
            raise ValueError(error_msg)
        return v

    @property
    def needs_sorting(self) -> bool:
        """Only paired input has to be grouped by query name."""
        return self.end_type is EndType.PE and not self.name_sorted


# ----------------------------- LOGGING SETUP ------------------------------- #


def configure_logging(verbose: int, quiet: int) -> None:
    """
    Route loguru to stderr at a level picked from the -v/-q counts.

    The default run reports only the SUCCESS summary line; per-record and
    per-pair details need -vvv (TRACE). Delta map:
      +3.. = TRACE
      +2   = DEBUG
      +1   = INFO
       0   = SUCCESS
      -1   = WARNING
      -2   = ERROR
      <=-3 = CRITICAL
    """
    logger.remove()
    delta = verbose - quiet
    match delta:
        case d if d >= 3:  # noqa: PLR2004
            level_str = "TRACE"
        case 2:
            level_str = "DEBUG"
        case 1:
            level_str = "INFO"
        case 0:
            level_str = "SUCCESS"
        case -1:
            level_str = "WARNING"
        case -2:
            level_str = "ERROR"
        case d if d <= -3:  # noqa: PLR2004
            level_str = "CRITICAL"
    logger.add(sys.stderr, level=level_str)
    logger.debug(f"Logger configured at level: {level_str}")


# ---------------------------- CIGAR UTILITIES ------------------------------ #


class CigarOp(NamedTuple):
    """One CIGAR run: (operation character, run length)."""

    op: str
    length: int


class Cigar(list[CigarOp]):
    """A list of CigarOp with parsing helpers."""

    @classmethod
    def from_string(cls, text: str) -> Cigar:
        """
        Tokenize a SAM CIGAR string. "*" (no alignment) gives an empty Cigar.
        Characters outside <len><op> tokens are skipped.
        """
        if text == "*":
            return cls()
        return cls(CigarOp(m.group(2), int(m.group(1))) for m in CIGAR_TOKEN.finditer(text))

    def mapped_length(self) -> int:
        """Sum of M/=/X run lengths. Insertions, deletions, skips, clips and pads add nothing."""
        return sum(run.length for run in self if run.op in MAPPED_OPS)

    def __str__(self) -> str:
        if not self:
            return "*"
        return "".join(f"{run.length}{run.op}" for run in self)


# ---------------------------- ALIGNMENT RECORD ----------------------------- #


def parse_tags(fields: Sequence[str]) -> dict[str, str]:
    """
    Build a tag-name -> value mapping from TAG:TYPE:VALUE fields.

    Only the name and the text after the second colon are kept. When a tag
    name repeats, the first occurrence wins.
    """
    tags: dict[str, str] = {}
    for field in fields:
        parts = field.split(":", 2)
        value = parts[2] if len(parts) == 3 else ""  # noqa: PLR2004
        tags.setdefault(parts[0], value)
    return tags


def _parse_int(value: str, name: str, line_number: int | None) -> int:
    try:
        return int(value)
    except ValueError:
        where = f" on line {line_number}" if line_number is not None else ""
        msg = f"Non-integer {name} {value!r}{where}"
        raise MalformedRecordError(msg) from None


@dataclass(frozen=True)
class AlignmentRecord:
    """The fields of one alignment line needed for the length/mismatch report."""

    query_name: str
    flag: int
    reference_name: str
    position: int  # 1-based leftmost mapped coordinate
    cigar: Cigar
    tags: dict[str, str]

    @classmethod
    def from_line(cls, line: str, line_number: int | None = None) -> AlignmentRecord:
        """
        Parse one tab-separated SAM line.

        Raises MalformedRecordError when fewer than the 11 mandatory columns
        are present or when FLAG/POS are not integers.
        """
        fields = line.rstrip("\r\n").split("\t")
        if len(fields) < MIN_SAM_FIELDS:
            where = f"Line {line_number}" if line_number is not None else "Line"
            msg = (
                f"{where} has {len(fields)} tab-separated fields, "
                f"at least {MIN_SAM_FIELDS} are required"
            )
            raise MalformedRecordError(msg)

        record = cls(
            query_name=fields[COL_QNAME],
            flag=_parse_int(fields[COL_FLAG], "flag", line_number),
            reference_name=fields[COL_RNAME],
            position=_parse_int(fields[COL_POS], "position", line_number),
            cigar=Cigar.from_string(fields[COL_CIGAR]),
            tags=parse_tags(fields[COL_FIRST_TAG:]),
        )
        logger.trace(
            f"Parsed record '{record.query_name}': flag={record.flag}, "
            f"ref={record.reference_name}, pos={record.position}, cigar={record.cigar}",
        )
        return record

    def mate_role(self, end_type: EndType) -> MateRole:
        """R1 if the first-mate bit is set; single-end reads are always R1."""
        if end_type is EndType.SE:
            return MateRole.R1
        return MateRole.R1 if self.flag & FLAG_FIRST_MATE else MateRole.R2

    @property
    def is_reverse(self) -> bool:
        return bool(self.flag & FLAG_REVERSE)

    @cached_property
    def mapped_length(self) -> int:
        length = self.cigar.mapped_length()
        assert length >= 0, f"Negative mapped length for '{self.query_name}': {length}"
        return length

    @property
    def mismatches(self) -> str:
        """Per-mate mismatch count (NM), empty when the tag is absent."""
        return self.tags.get(MATE_MISMATCH_TAG, "")

    @property
    def pair_mismatches(self) -> str:
        """Per-pair mismatch count (nM), empty when the tag is absent."""
        return self.tags.get(PAIR_MISMATCH_TAG, "")


# --------------------------- OVERLAP CALCULATOR ---------------------------- #


class LengthSummary(NamedTuple):
    """Combined lengths of a read or read pair."""

    raw_length: int
    nonoverlap_length: int
    discordant: bool


def mate_overlap(r1: AlignmentRecord, r2: AlignmentRecord) -> int:
    """
    Reference bases shared by two mates on the same reference, never negative.

    R1 anchors the window unless it is on the reverse strand, in which case
    R2 does: the anchor's end is compared against the other mate's start.
    """
    if r1.is_reverse:
        overlap = r2.position + r2.mapped_length - r1.position
    else:
        overlap = r1.position + r1.mapped_length - r2.position
    return max(overlap, 0)


def reconcile_lengths(
    r1: AlignmentRecord | None,
    r2: AlignmentRecord | None,
    end_type: EndType,
) -> LengthSummary:
    """
    Raw and nonoverlapping mapped length of a read (SE), a pair or an
    orphaned mate (PE). Discordant pairs get DISCORDANT_LENGTH.
    """
    match end_type, r1, r2:
        case EndType.SE, None, _:
            msg = "Single-end reconciliation requires R1"
            raise ValueError(msg)
        case EndType.SE, _, None:
            return LengthSummary(r1.mapped_length, r1.mapped_length, False)
        case EndType.SE, _, _:
            msg = "Single-end reconciliation cannot take R2"
            raise ValueError(msg)
        case EndType.PE, None, None:
            msg = "Paired-end reconciliation requires at least one mate"
            raise ValueError(msg)
        case (EndType.PE, mate, None) | (EndType.PE, None, mate):
            # Orphaned mate
            return LengthSummary(mate.mapped_length, mate.mapped_length, False)

    raw_length = r1.mapped_length + r2.mapped_length
    if r1.reference_name != r2.reference_name:
        logger.trace(
            f"Discordant pair '{r1.query_name}': "
            f"{r1.reference_name} vs {r2.reference_name}",
        )
        return LengthSummary(raw_length, DISCORDANT_LENGTH, True)

    overlap = mate_overlap(r1, r2)
    logger.trace(f"Pair '{r1.query_name}': raw={raw_length}, overlap={overlap}")
    return LengthSummary(raw_length, raw_length - overlap, False)


@dataclass(frozen=True)
class ReconciledGroup:
    """One output row's worth of data: a read, a pair or an orphaned mate."""

    r1: AlignmentRecord | None
    r2: AlignmentRecord | None
    raw_length: int
    nonoverlap_length: int
    mismatches: str
    discordant: bool = False
    paired: bool = False  # built from two records

    @classmethod
    def build(
        cls,
        r1: AlignmentRecord | None,
        r2: AlignmentRecord | None,
        end_type: EndType,
        paired: bool = False,  # noqa: FBT001, FBT002
    ) -> ReconciledGroup:
        summary = reconcile_lengths(r1, r2, end_type)
        # Pair-level mismatches are read from R1 when it is present
        source = r1 if r1 is not None else r2
        return cls(
            r1=r1,
            r2=r2,
            raw_length=summary.raw_length,
            nonoverlap_length=summary.nonoverlap_length,
            mismatches=source.pair_mismatches,
            discordant=summary.discordant,
            paired=paired,
        )

    @property
    def read_id(self) -> str:
        return self.r1.query_name if self.r1 is not None else self.r2.query_name


# ----------------------------- PAIR RECONCILER ----------------------------- #


@dataclass(frozen=True)
class Empty:
    """No record waiting for its mate."""


@dataclass(frozen=True)
class Pending:
    """One record waiting for its mate or for the next query name."""

    record: AlignmentRecord


@dataclass(frozen=True)
class Done:
    """Input exhausted; nothing more can be pushed."""


ReconcilerState = Empty | Pending | Done


class PairReconciler:
    """
    Groups adjacent same-name records of a name-sorted paired-end stream.

    At most one record is held back. A record whose successor has a
    different query name is emitted as an orphan; the held record is also
    emitted as an orphan when the stream ends (see `finish`).
    """

    def __init__(self) -> None:
        self.state: ReconcilerState = Empty()

    def push(self, record: AlignmentRecord) -> ReconciledGroup | None:
        """Feed the next record; returns a group when one is completed."""
        match self.state:
            case Done():
                msg = "Cannot push records into a finished PairReconciler"
                raise RuntimeError(msg)
            case Empty():
                self.state = Pending(record)
                return None
            case Pending(record=prev) if prev.query_name == record.query_name:
                self.state = Empty()
                return self._pair(prev, record)
            case Pending(record=prev):
                self.state = Pending(record)
                return self._orphan(prev)

    def finish(self) -> ReconciledGroup | None:
        """Signal end of input, flushing any held record as an orphan."""
        match self.state:
            case Pending(record=prev):
                self.state = Done()
                return self._orphan(prev)
            case _:
                self.state = Done()
                return None

    @staticmethod
    def _pair(prev: AlignmentRecord, cur: AlignmentRecord) -> ReconciledGroup:
        mates: dict[MateRole, AlignmentRecord] = {prev.mate_role(EndType.PE): prev}
        cur_role = cur.mate_role(EndType.PE)
        if cur_role in mates:
            logger.warning(
                f"Both records of '{cur.query_name}' are {cur_role.value}; "
                "keeping the later one",
            )
        mates[cur_role] = cur
        logger.trace(
            f"Pairing '{cur.query_name}': "
            f"{prev.mate_role(EndType.PE).value} + {cur_role.value}",
        )
        return ReconciledGroup.build(
            mates.get(MateRole.R1),
            mates.get(MateRole.R2),
            EndType.PE,
            paired=True,
        )

    @staticmethod
    def _orphan(prev: AlignmentRecord) -> ReconciledGroup:
        role = prev.mate_role(EndType.PE)
        logger.debug(f"No mate found for '{prev.query_name}' ({role.value})")
        if role is MateRole.R1:
            return ReconciledGroup.build(prev, None, EndType.PE)
        return ReconciledGroup.build(None, prev, EndType.PE)


def reconcile_records(
    records: Iterable[AlignmentRecord],
    end_type: EndType,
) -> Iterator[ReconciledGroup]:
    """
    Yield one group per read (SE) or per read pair/orphan (PE), in input order.
    PE input must already be grouped by query name.
    """
    if end_type is EndType.SE:
        for record in records:
            yield ReconciledGroup.build(record, None, EndType.SE)
        return

    reconciler = PairReconciler()
    for record in records:
        group = reconciler.push(record)
        if group is not None:
            yield group
    last = reconciler.finish()
    if last is not None:
        yield last


# ---------------------------- OUTPUT FORMATTER ----------------------------- #


def format_header() -> str:
    return "\t".join(HEADER_COLUMNS) + "\n"


def format_row(group: ReconciledGroup) -> str:
    """Render a group as one tab-separated, newline-terminated row."""
    r1, r2 = group.r1, group.r2
    columns = (
        group.read_id,
        str(group.raw_length),
        str(group.nonoverlap_length),
        group.mismatches,
        "" if r1 is None else str(r1.mapped_length),
        "" if r2 is None else str(r2.mapped_length),
        "" if r1 is None else r1.mismatches,
        "" if r2 is None else r2.mismatches,
    )
    assert len(columns) == len(HEADER_COLUMNS), (
        f"Row for '{group.read_id}' has {len(columns)} columns, expected {len(HEADER_COLUMNS)}"
    )
    return "\t".join(columns) + "\n"


# ----------------------------- I/O UTILITIES ------------------------------- #


def _io_mode_from_ext(path: str) -> str:
    """Determine pysam read mode from filename extension."""
    lower = path.lower()
    if lower.endswith(".sam"):
        return "r"
    if lower.endswith(".bam"):
        return "rb"
    if lower.endswith(".cram"):
        return "rc"
    msg = "Input must end with .sam, .bam, or .cram"
    logger.error(msg)
    raise ValueError(msg)


def name_sorted_path(path: Path) -> Path:
    """`sample.bam` -> `sample.nameSorted.bam`, next to the input."""
    return path.with_name(f"{path.stem}.nameSorted{path.suffix}")


def name_sort(path: Path, ncores: int = 1, reference: Path | None = None) -> Path:
    """
    Sort an alignment file by query name with samtools (through pysam) so
    that mates become adjacent. Returns the path of the sorted copy.
    """
    assert ncores >= 1, f"ncores must be positive, got {ncores}"

    sorted_path = name_sorted_path(path)
    logger.warning(
        f"{path} is not name sorted. Name sorting it and saving to {sorted_path}...",
    )
    if sorted_path.exists():
        logger.warning(f"{sorted_path} exists already! It will be overwritten.")

    args = ["-n", "-@", str(ncores), "-o", str(sorted_path)]
    if reference is not None:
        args += ["--reference", str(reference)]
    try:
        pysam.sort(*args, str(path))
    except pysam.utils.SamtoolsError as err:
        logger.error(f"Error happened when sorting {path}: {err}")
        raise
    return sorted_path


def iter_alignment_lines(
    path: Path,
    reference: Path | None = None,
) -> Iterator[str]:
    """
    Yield primary alignments of a SAM/BAM/CRAM file as SAM text lines.
    Secondary and supplementary records are dropped.
    """
    mode = _io_mode_from_ext(str(path))
    kwargs = {}
    if mode == "rc" and reference is None:
        logger.warning(
            f"Opening CRAM without explicit reference: {path}. "
            "Decoding may fail unless the reference is resolvable.",
        )
    if mode == "rc" and reference is not None:
        kwargs["reference_filename"] = str(reference)

    logger.info(f"Opening {path} for read (mode={mode})...")
    dropped = 0
    with pysam.AlignmentFile(str(path), mode, check_sq=False, **kwargs) as inp:
        for aln in inp:
            if aln.flag & (FLAG_SECONDARY | FLAG_SUPPLEMENTARY):
                dropped += 1
                continue
            yield aln.to_string()
    logger.info(f"Closed {path}; dropped {dropped} secondary/supplementary records.")


@contextmanager
def open_output(path: Path | None) -> Iterator[TextIO]:
    """
    Text sink for the report: stdout when `path` is None or "-", gzip when it
    ends with .gz, otherwise a plain file.
    """
    if path is None or str(path) == "-":
        logger.info("Writing to STDOUT...")
        try:
            yield sys.stdout
        finally:
            sys.stdout.flush()
        return

    file_opener = gzip.open if str(path).lower().endswith(".gz") else open
    logger.info(f"Opening {path} for write...")
    with file_opener(path, "wt", encoding="utf-8") as handle:
        yield handle
    logger.info(f"Closed {path}.")


# ------------------------------ CORE LOGIC --------------------------------- #


@dataclass(frozen=True)
class StreamStats:
    """Counters reported at the end of a run."""

    records: int = 0
    groups: int = 0
    pairs: int = 0
    singletons: int = 0
    discordant: int = 0


def parse_records(lines: Iterable[str]) -> Iterator[AlignmentRecord]:
    """Parse SAM text lines, skipping '@' header lines."""
    for line_number, line in enumerate(lines, start=1):
        if line.startswith("@"):
            continue
        yield AlignmentRecord.from_line(line, line_number)


def process_stream(
    lines: Iterable[str],
    out: TextIO,
    end_type: EndType,
) -> StreamStats:
    """
    Stream SAM lines -> report rows in a single pass.

    Processing behavior:
    - Writes the header row first
    - SE: one row per record
    - PE: one row per adjacent same-name pair; records without an adjacent
      mate become orphan rows
    - A malformed line raises MalformedRecordError and ends the run

    Returns
    -------
    StreamStats
        Counts of records read and groups written.
    """
    out.write(format_header())

    records = 0
    groups = 0
    pairs = 0
    singletons = 0
    discordant = 0

    def counted(source: Iterable[AlignmentRecord]) -> Iterator[AlignmentRecord]:
        nonlocal records
        for record in source:
            records += 1
            if records % DEBUG_EVERY == 0:
                logger.debug(
                    f"Progress: records={records}, groups={groups}, pairs={pairs}, "
                    f"singletons={singletons}, discordant={discordant}",
                )
            yield record

    for group in reconcile_records(counted(parse_records(lines)), end_type):
        out.write(format_row(group))
        groups += 1
        if group.paired:
            pairs += 1
        else:
            singletons += 1
        if group.discordant:
            discordant += 1

    # Final invariants: every record ends up in exactly one group
    assert groups == pairs + singletons, (
        f"Group count inconsistency: groups={groups}, pairs={pairs}, singletons={singletons}"
    )
    assert records == 2 * pairs + singletons, (
        f"Record count inconsistency: records={records}, pairs={pairs}, singletons={singletons}"
    )

    logger.info(
        f"Process totals: records={records}, groups={groups}, pairs={pairs}, "
        f"singletons={singletons}, discordant={discordant}",
    )
    return StreamStats(records, groups, pairs, singletons, discordant)


# --------------------------------- CLI ------------------------------------- #


def build_parser() -> argparse.ArgumentParser:
    """
    CLI:
      -v / -vv / -vvv : increase verbosity (INFO -> DEBUG -> TRACE)
      -q / -qq / -qqq : decrease verbosity (WARNING -> ERROR -> CRITICAL)
    (Mutually exclusive.)
    """
    p = argparse.ArgumentParser(
        description=(
            "Calculate the nonoverlapping mapped length and the number of mismatches\n"
            "per read pair (PE) or read (SE), and per mate if tag NM is available.\n"
            "Only primary alignments are counted. The output table has the columns:\n"
            "  " + ", ".join(HEADER_COLUMNS) + "\n"
            "Discordant pairs (mates on different references) get NonoverlapLength -1."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # I/O
    p.add_argument(
        "-i",
        "--in",
        dest="in_path",
        required=True,
        help="Input SAM/BAM/CRAM",
    )
    p.add_argument(
        "-o",
        "--out",
        dest="out_path",
        default=None,
        help="Output table (default: STDOUT). A .gz suffix writes gzip-compressed output",
    )
    p.add_argument(
        "--ref",
        dest="reference",
        default=None,
        help="Reference FASTA (required/recommended for CRAM input)",
    )

    # Layout
    p.add_argument(
        "--end-type",
        choices=[e.value for e in EndType],
        default=EndType.PE.value,
        help="PE or SE (default: PE)",
    )
    p.add_argument(
        "--name-sorted",
        action="store_true",
        help=(
            "Input is already sorted by query name. Otherwise PE input is name "
            "sorted into '<input>.nameSorted.<ext>' first. Ignored for SE"
        ),
    )
    p.add_argument(
        "--ncores",
        type=int,
        default=1,
        help="Threads for name sorting (default: 1). Ignored for SE",
    )

    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Verbosity: -v/-vv/-vvv or -q/-qq/-qqq (mutually exclusive)
    g = p.add_mutually_exclusive_group()
    g.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use up to -vvv).",
    )
    g.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease verbosity (use up to -qqq).",
    )

    return p


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        config = RunConfig(
            in_path=Path(args.in_path),
            out_path=None if args.out_path is None else Path(args.out_path),
            end_type=EndType(args.end_type),
            name_sorted=bool(args.name_sorted),
            ncores=args.ncores,
            reference=None if args.reference is None else Path(args.reference),
        )
    except ValidationError as err:
        logger.error(f"Invalid arguments: {err}")
        sys.exit(1)
    logger.info(f"Starting run (version {__version__}): {config}")

    in_path = config.in_path
    if config.needs_sorting:
        in_path = name_sort(in_path, config.ncores, config.reference)
    elif config.end_type is EndType.SE and (config.name_sorted or config.ncores != 1):
        logger.debug("SE input is never sorted; ignoring --name-sorted/--ncores.")

    try:
        with open_output(config.out_path) as out:
            stats = process_stream(
                iter_alignment_lines(in_path, config.reference),
                out,
                config.end_type,
            )
    except MalformedRecordError as err:
        logger.error(f"Malformed alignment record in {in_path}: {err}")
        sys.exit(1)

    logger.success(
        f"Records: {stats.records} | Rows: {stats.groups} | Pairs: {stats.pairs} | "
        f"Singletons: {stats.singletons} | Discordant: {stats.discordant}",
    )
    logger.info("All done.")


if __name__ == "__main__":
    main()
