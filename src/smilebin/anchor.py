"""
Anchoring smiles to lines of code.

An annotation is tied to the revision(s) that introduced the lines it
covers. Each revision gets one address recording where the lines were in
that revision and the checksum of the file as of that revision. Reading
annotations back walks the other way: find every annotation anchored in
the file's history, then push its stored line numbers forward through a
diff against the working tree.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from pathlib import Path

from git import Repo

from .diff_translator import LineTranslation, translate_diff
from .errors import (
    AmbiguousRangeDeclined,
    IncompleteAnnotation,
    ProcessFailure,
    SmilebinError,
    TranslationMiss,
)
from .git_ops import (
    blame_spans,
    diff_against,
    file_checksum,
    find_repo,
    line_count,
    list_revisions,
    origin_url,
    read_lines,
    relative_path,
    repo_key_from_url,
)
from .models import (
    Annotation,
    AnnotationAddress,
    FileAnnotations,
    ResolvedAnnotation,
    RevisionSpan,
    ToggleResult,
    fingerprint,
)
from .runner import GitRunner, RunnerCache
from .store import AnnotationStore

LOG = logging.getLogger(__name__)


@dataclass
class FileContext:
    """Where a file lives: its repository, runner and repo-relative path."""

    repo: Repo
    root: str
    path: str
    runner: GitRunner


class AnchorResolver:
    """Creates, finds, positions and removes annotations for files in git."""

    def __init__(
        self,
        store: AnnotationStore,
        runners: RunnerCache,
        user_id: str | None = None,
        max_concurrency: int = 8,
    ):
        self.store = store
        self.runners = runners
        self.user_id = user_id
        self.max_concurrency = max_concurrency

    async def locate(self, path: str | Path) -> FileContext:
        repo = await asyncio.to_thread(find_repo, path)
        root = str(Path(repo.working_tree_dir).resolve())
        return FileContext(
            repo=repo,
            root=root,
            path=relative_path(repo, Path(path).resolve()),
            runner=self.runners.get(root),
        )

    async def _gather_bounded(self, calls):
        """Run blocking callables in worker threads, a bounded number at a time."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(call):
            async with semaphore:
                return await asyncio.to_thread(call)

        return await asyncio.gather(*(run(call) for call in calls))

    # -- validation -------------------------------------------------------

    async def validate_range(
        self, ctx: FileContext, start_line: int, end_line: int, check_only: bool = False
    ) -> list[RevisionSpan]:
        """
        Blame a line range and refuse it if any line is uncommitted.

        With check_only the spans are returned as they are and the caller
        decides what to do with uncommitted ones.
        """
        spans = await asyncio.to_thread(
            blame_spans, ctx.runner, ctx.path, start_line, end_line
        )
        if not check_only and any(not span.is_committed for span in spans):
            declined = AmbiguousRangeDeclined(ctx.path, spans)
            LOG.info("%s", declined)
            raise declined
        return spans

    # -- fingerprints -----------------------------------------------------

    async def fingerprints(self, ctx: FileContext) -> list[str]:
        """One revision+checksum key per revision in the file's history."""
        revisions = await asyncio.to_thread(list_revisions, ctx.runner, ctx.path)
        if not revisions:
            return []

        def checksum_or_none(revision: str):
            def call():
                try:
                    return file_checksum(ctx.runner, ctx.path, revision)
                except ProcessFailure:
                    # e.g. the commit that deleted the file; nothing can be anchored there
                    LOG.debug("%s is absent at %s", ctx.path, revision[:7])
                    return None

            return call

        checksums = await self._gather_bounded(checksum_or_none(r) for r in revisions)
        return [
            fingerprint(revision, checksum)
            for revision, checksum in zip(revisions, checksums)
            if checksum is not None
        ]

    # -- translation ------------------------------------------------------

    def _translation(self, ctx: FileContext, revision: str, total_lines: int) -> LineTranslation:
        return translate_diff(diff_against(ctx.runner, ctx.path, revision), total_lines)

    async def build_addresses(
        self, ctx: FileContext, spans: list[RevisionSpan]
    ) -> list[AnnotationAddress]:
        """
        Turn blame spans into addresses, one per span, in line order.

        Each address stores the line numbers blame reports for the span in
        its own revision. Blame and diff pair lines up independently, so the
        span is only accepted when that revision's translation table carries
        those lines back to the selected ones; otherwise reading the
        annotation later would place it elsewhere, and TranslationMiss is
        raised instead.
        """
        total_lines = await asyncio.to_thread(line_count, ctx.root, ctx.path)

        def address_for(sequence: int, span: RevisionSpan):
            def call() -> AnnotationAddress:
                checksum = file_checksum(ctx.runner, ctx.path, span.revision)
                table = self._translation(ctx, span.revision, total_lines)
                start, end = span.orig_start_line, span.orig_end_line
                if start is None or table.forward(start) != span.start_line:
                    raise TranslationMiss(span.revision, span.start_line)
                if end is None or table.forward(end) != span.end_line:
                    raise TranslationMiss(span.revision, span.end_line)
                return AnnotationAddress(
                    sequence=sequence,
                    revision=span.revision,
                    file_checksum=checksum,
                    start_line_number=start,
                    end_line_number=end,
                )

            return call

        return await self._gather_bounded(
            address_for(sequence, span) for sequence, span in enumerate(spans)
        )

    async def resolve_all(
        self, ctx: FileContext, annotations: list[Annotation]
    ) -> list[ResolvedAnnotation]:
        """
        Work out where each annotation sits in the working tree now.

        Only the first address's start and the last address's end are
        pushed forward; addresses in between are not checked.
        """
        total_lines = await asyncio.to_thread(line_count, ctx.root, ctx.path)

        revisions: list[str] = []
        for annotation in annotations:
            if not annotation.chain_is_complete():
                continue
            ordered = annotation.ordered_addresses()
            for revision in (ordered[0].revision, ordered[-1].revision):
                if revision not in revisions:
                    revisions.append(revision)

        def table_or_none(revision: str):
            def call():
                try:
                    return self._translation(ctx, revision, total_lines)
                except SmilebinError as exc:
                    LOG.warning("Cannot translate %s from %s: %s", ctx.path, revision[:7], exc)
                    return None

            return call

        tables = dict(
            zip(revisions, await self._gather_bounded(table_or_none(r) for r in revisions))
        )
        return [resolve(annotation, tables) for annotation in annotations]

    # -- caller-facing operations -----------------------------------------

    async def _fetch(self, ctx: FileContext) -> list[ResolvedAnnotation]:
        hashes = await self.fingerprints(ctx)
        if not hashes:
            return []
        repo_key = repo_key_from_url(origin_url(ctx.repo))
        annotations = await self.store.fetch(repo_key, hashes)
        if not annotations:
            return []
        return await self.resolve_all(ctx, annotations)

    async def fetch_annotations(self, path: str | Path, skip: bool = False) -> FileAnnotations:
        """
        Get the annotations for a file, positioned against the working tree.

        With skip set nothing is run at all and the result is empty. Any
        failure leaves the result empty with `error` describing it.
        """
        result = FileAnnotations(path=str(path))
        if skip:
            return result
        try:
            ctx = await self.locate(path)
            result.annotations = await self._fetch(ctx)
        except (SmilebinError, ValueError, OSError) as exc:
            LOG.warning("Could not fetch annotations for %s: %s", path, exc)
            result.error = str(exc)
        return result

    async def fetch_many(
        self, paths: list[str | Path], skip: bool = False
    ) -> list[FileAnnotations]:
        """Fetch several files at once; a failing file does not stop the others."""
        return list(
            await asyncio.gather(*(self.fetch_annotations(p, skip=skip) for p in paths))
        )

    async def create_annotation(
        self,
        path: str | Path,
        text: str,
        emoticon: str,
        start_line: int,
        end_line: int,
    ) -> str:
        """
        Anchor a new annotation to a committed line range and return its id.

        Raises AmbiguousRangeDeclined when the range contains uncommitted
        lines and TranslationMiss when git cannot trace the range back to the
        revisions that introduced it. Raises IncompleteAnnotation when the annotation was stored but
        one of its addresses was not.
        """
        ctx = await self.locate(path)
        spans = await self.validate_range(ctx, start_line, end_line)
        try:
            addresses = await self.build_addresses(ctx, spans)
        except TranslationMiss as exc:
            LOG.info("%s: %s", ctx.path, exc)
            raise

        repo_key = repo_key_from_url(origin_url(ctx.repo))
        repo_id = await self.store.lookup_or_create_repo(repo_key)
        snippet = await asyncio.to_thread(read_lines, ctx.root, ctx.path, start_line, end_line)

        annotation = Annotation(
            text=text,
            emoticon=emoticon,
            start_line_number=addresses[0].start_line_number,
            end_line_number=addresses[-1].end_line_number,
            code_snippet=snippet,
            repo_id=repo_id,
            user_id=self.user_id,
        )
        # The id is needed before any address can point at it
        annotation_id = await self.store.create(annotation)

        created: list[str] = []
        for address in addresses:
            try:
                created.append(
                    await self.store.create_address(replace(address, annotation_id=annotation_id))
                )
            except Exception as exc:
                raise IncompleteAnnotation(annotation_id, created, exc) from exc

        LOG.info(
            "Anchored annotation %s to %s:%d-%d across %d revision(s)",
            annotation_id,
            ctx.path,
            start_line,
            end_line,
            len(addresses),
        )
        return annotation_id

    async def delete_annotation(self, annotation_id: str) -> bool:
        """Delete an annotation. False when there was nothing to delete."""
        deleted = await self.store.delete(annotation_id)
        if not deleted:
            LOG.info("Annotation %s does not exist; nothing to delete", annotation_id)
        return deleted

    async def toggle_smile(
        self, path: str | Path, line: int, emoticon: str = "smile", text: str = ""
    ) -> ToggleResult:
        """Remove the smiles covering `line`, or add one if there are none."""
        ctx = await self.locate(path)
        covering = [a for a in await self._fetch(ctx) if a.covers(line)]
        if covering:
            ids = [a.annotation.id for a in covering]
            for annotation_id in ids:
                await self.delete_annotation(annotation_id)
            return ToggleResult(action="deleted", annotation_ids=ids)

        annotation_id = await self.create_annotation(path, text, emoticon, line, line)
        return ToggleResult(action="created", annotation_ids=[annotation_id])


def resolve(
    annotation: Annotation, tables: dict[str, LineTranslation | None]
) -> ResolvedAnnotation:
    """Position one annotation using translation tables keyed by revision."""
    ordered = annotation.ordered_addresses()
    if not ordered:
        return ResolvedAnnotation(annotation, None, None, error="no-addresses")
    if not annotation.chain_is_complete():
        LOG.warning(
            "Annotation %s has an incomplete address chain: %s",
            annotation.id,
            [a.sequence for a in ordered],
        )
        return ResolvedAnnotation(annotation, None, None, error="incomplete-chain")

    first, last = ordered[0], ordered[-1]
    first_table = tables.get(first.revision)
    last_table = tables.get(last.revision)
    if first_table is None or last_table is None:
        return ResolvedAnnotation(annotation, None, None, error="diff-failed")

    start = first_table.forward(first.start_line_number)
    end = last_table.forward(last.end_line_number)
    if start is None or end is None:
        return ResolvedAnnotation(annotation, None, None, error="translation-miss")
    return ResolvedAnnotation(annotation, start, end)
