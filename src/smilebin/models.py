"""Data types passed between the git layer, the resolver and the store."""

from dataclasses import dataclass, field

# git blame reports lines that only exist in the working tree under this id
UNCOMMITTED_REVISION = "0" * 40


@dataclass
class RevisionSpan:
    """A run of consecutive lines attributed to a single revision."""

    revision: str
    start_line: int  # 1-indexed, inclusive
    end_line: int  # 1-indexed, inclusive
    # Where the same lines sit in the file as of `revision`
    orig_start_line: int | None = None
    orig_end_line: int | None = None

    @property
    def is_committed(self) -> bool:
        return self.revision != UNCOMMITTED_REVISION


@dataclass(frozen=True)
class AnnotationAddress:
    """
    One revision-relative slice of an annotation.

    Line numbers are the line numbers the slice had in `revision`, not in
    any later working tree.
    """

    sequence: int
    revision: str
    file_checksum: str
    start_line_number: int
    end_line_number: int
    id: str | None = None
    annotation_id: str | None = None

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.revision, self.file_checksum)


@dataclass
class Annotation:
    """A smile attached to a range of lines, as kept by the annotation store."""

    text: str
    emoticon: str
    start_line_number: int
    end_line_number: int
    code_snippet: str = ""
    repo_id: str | None = None
    user_id: str | None = None
    id: str | None = None
    addresses: list[AnnotationAddress] = field(default_factory=list)

    def ordered_addresses(self) -> list[AnnotationAddress]:
        return sorted(self.addresses, key=lambda a: a.sequence)

    def chain_is_complete(self) -> bool:
        """True when the address sequence runs 0, 1, 2, ... without gaps."""
        sequences = [a.sequence for a in self.ordered_addresses()]
        return bool(sequences) and sequences == list(range(len(sequences)))


@dataclass
class ResolvedAnnotation:
    """An annotation with its position in the current working tree."""

    annotation: Annotation
    start_line: int | None
    end_line: int | None
    error: str | None = None  # 'translation-miss', 'incomplete-chain', ...

    @property
    def is_placed(self) -> bool:
        return self.start_line is not None and self.end_line is not None

    def covers(self, line: int) -> bool:
        return self.is_placed and self.start_line <= line <= self.end_line


@dataclass
class FileAnnotations:
    """Outcome of fetching the annotations for one file."""

    path: str
    annotations: list[ResolvedAnnotation] = field(default_factory=list)
    error: str | None = None  # set when the whole file could not be read

    def placed(self) -> list[ResolvedAnnotation]:
        return [a for a in self.annotations if a.is_placed]


@dataclass
class ToggleResult:
    """What toggling a smile on a line ended up doing."""

    action: str  # 'created' or 'deleted'
    annotation_ids: list[str]


def fingerprint(revision: str, checksum: str) -> str:
    """Key for one file's content as introduced by one revision."""
    return f"{revision}{checksum}"
