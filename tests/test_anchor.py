"""End-to-end tests for anchoring annotations in real git repositories."""

import pytest

from conftest import numbered_lines, shasum
from smilebin.anchor import AnchorResolver, resolve
from smilebin.diff_translator import LineTranslation
from smilebin.errors import (
    AmbiguousRangeDeclined,
    IncompleteAnnotation,
    TransportFailure,
    TranslationMiss,
)
from smilebin.models import Annotation, AnnotationAddress, fingerprint
from smilebin.runner import RunnerCache
from smilebin.store import MemoryStore

REPO_KEY = "github.com/acme/widgets"


def make_resolver(store=None):
    return AnchorResolver(store or MemoryStore(), RunnerCache())


class NoSpawnRunners(RunnerCache):
    def get(self, working_dir):
        raise AssertionError("no git process should be started")


class FlakyAddressStore(MemoryStore):
    """Accepts the first address and fails on the next."""

    def __init__(self):
        super().__init__()
        self.address_calls = 0

    async def create_address(self, address):
        self.address_calls += 1
        if self.address_calls > 1:
            raise TransportFailure("connection reset")
        return await super().create_address(address)


class UnreachableStore(MemoryStore):
    async def fetch(self, repo_key, fingerprints):
        raise TransportFailure("Annotation store unreachable")


@pytest.mark.asyncio
async def test_created_annotation_reads_back_at_same_lines(git_repo):
    git_repo.commit("app.py", numbered_lines(10))
    path = git_repo.root / "app.py"
    resolver = make_resolver()

    annotation_id = await resolver.create_annotation(path, "nice", "smile", 5, 7)
    result = await resolver.fetch_annotations(path)

    assert result.error is None
    [resolved] = result.annotations
    assert resolved.annotation.id == annotation_id
    assert (resolved.start_line, resolved.end_line) == (5, 7)
    assert resolved.annotation.text == "nice"
    assert resolved.annotation.code_snippet == "line 5\nline 6\nline 7"


@pytest.mark.asyncio
async def test_single_revision_range_gets_one_address(git_repo):
    revision = git_repo.commit("app.py", numbered_lines(10))
    store = MemoryStore()

    annotation_id = await make_resolver(store).create_annotation(
        git_repo.root / "app.py", "", "smile", 2, 4
    )

    [address] = store.addresses.values()
    assert address.annotation_id == annotation_id
    assert address.sequence == 0
    assert address.revision == revision
    assert address.file_checksum == shasum(numbered_lines(10).encode())
    assert (address.start_line_number, address.end_line_number) == (2, 4)
    assert store.repos == {REPO_KEY: store.annotations[annotation_id].repo_id}


@pytest.mark.asyncio
async def test_range_over_several_revisions_gets_ordered_addresses(git_repo):
    first = git_repo.commit("app.py", numbered_lines(5))
    second = git_repo.commit("app.py", "line 1\nline 2\nchanged 3\nline 4\nline 5\n")
    store = MemoryStore()
    resolver = make_resolver(store)
    path = git_repo.root / "app.py"

    annotation_id = await resolver.create_annotation(path, "", "heart", 2, 4)

    addresses = sorted(store.addresses.values(), key=lambda a: a.sequence)
    assert [(a.sequence, a.revision, a.start_line_number, a.end_line_number) for a in addresses] == [
        (0, first, 2, 2),
        (1, second, 3, 3),
        (2, first, 4, 4),
    ]
    annotation = store.annotations[annotation_id]
    assert (annotation.start_line_number, annotation.end_line_number) == (2, 4)

    [resolved] = (await resolver.fetch_annotations(path)).annotations
    assert (resolved.start_line, resolved.end_line) == (2, 4)


@pytest.mark.asyncio
async def test_uncommitted_lines_are_declined(git_repo):
    git_repo.commit("app.py", numbered_lines(5))
    git_repo.write("app.py", "line 1\nline 2\nedited 3\nline 4\nline 5\n")
    store = MemoryStore()
    resolver = make_resolver(store)

    with pytest.raises(AmbiguousRangeDeclined) as excinfo:
        await resolver.create_annotation(git_repo.root / "app.py", "", "smile", 2, 4)

    assert "3-3" in str(excinfo.value)
    assert store.annotations == {}
    assert store.addresses == {}


@pytest.mark.asyncio
async def test_check_only_returns_uncommitted_spans(git_repo):
    git_repo.commit("app.py", numbered_lines(3))
    git_repo.write("app.py", "line 1\nline 2\nline 3\nnew 4\n")
    resolver = make_resolver()
    ctx = await resolver.locate(git_repo.root / "app.py")

    spans = await resolver.validate_range(ctx, 3, 4, check_only=True)

    assert [s.is_committed for s in spans] == [True, False]


@pytest.mark.asyncio
async def test_annotation_follows_lines_inserted_above(git_repo):
    git_repo.commit("app.py", numbered_lines(10))
    path = git_repo.root / "app.py"
    resolver = make_resolver()
    await resolver.create_annotation(path, "", "smile", 10, 10)

    git_repo.write("app.py", "new 1\nnew 2\nnew 3\n" + numbered_lines(10))
    [resolved] = (await resolver.fetch_annotations(path)).annotations
    assert (resolved.start_line, resolved.end_line) == (13, 13)

    git_repo.git("commit", "-am", "insert header")
    [resolved] = (await resolver.fetch_annotations(path)).annotations
    assert (resolved.start_line, resolved.end_line) == (13, 13)


@pytest.mark.asyncio
async def test_addresses_store_historical_line_numbers(git_repo):
    git_repo.commit("app.py", numbered_lines(10))
    git_repo.write("app.py", "new 1\nnew 2\nnew 3\n" + numbered_lines(10))
    store = MemoryStore()
    resolver = make_resolver(store)
    path = git_repo.root / "app.py"

    await resolver.create_annotation(path, "", "smile", 13, 13)

    [address] = store.addresses.values()
    assert (address.start_line_number, address.end_line_number) == (10, 10)
    [resolved] = (await resolver.fetch_annotations(path)).annotations
    assert (resolved.start_line, resolved.end_line) == (13, 13)


@pytest.mark.asyncio
async def test_deleted_lines_leave_annotation_unplaced(git_repo):
    git_repo.commit("app.py", numbered_lines(5))
    path = git_repo.root / "app.py"
    resolver = make_resolver()
    await resolver.create_annotation(path, "", "smile", 3, 3)

    git_repo.write("app.py", "line 1\nline 2\nline 4\nline 5\n")
    result = await resolver.fetch_annotations(path)

    [resolved] = result.annotations
    assert resolved.start_line is None
    assert resolved.error == "translation-miss"
    assert result.placed() == []


@pytest.mark.asyncio
async def test_rewritten_history_drops_annotation(git_repo):
    git_repo.commit("app.py", numbered_lines(5))
    path = git_repo.root / "app.py"
    resolver = make_resolver()
    await resolver.create_annotation(path, "", "smile", 1, 2)

    git_repo.write("app.py", numbered_lines(5, prefix="row"))
    git_repo.git("commit", "--amend", "-am", "rewritten")
    result = await resolver.fetch_annotations(path)

    assert result.error is None
    assert result.annotations == []


@pytest.mark.asyncio
async def test_incomplete_chain_is_reported(git_repo):
    revision = git_repo.commit("app.py", numbered_lines(5))
    checksum = shasum(numbered_lines(5).encode())
    store = MemoryStore()
    repo_id = await store.lookup_or_create_repo(REPO_KEY)
    annotation_id = await store.create(
        Annotation(text="", emoticon="smile", start_line_number=1, end_line_number=3, repo_id=repo_id)
    )
    for sequence, line in ((0, 1), (2, 3)):
        await store.create_address(
            AnnotationAddress(
                sequence=sequence,
                revision=revision,
                file_checksum=checksum,
                start_line_number=line,
                end_line_number=line,
                annotation_id=annotation_id,
            )
        )

    [resolved] = (await make_resolver(store).fetch_annotations(git_repo.root / "app.py")).annotations

    assert resolved.error == "incomplete-chain"
    assert not resolved.is_placed


@pytest.mark.asyncio
async def test_skip_returns_nothing_without_running_git(tmp_path):
    resolver = AnchorResolver(MemoryStore(), NoSpawnRunners())

    result = await resolver.fetch_annotations(tmp_path / "whatever.py", skip=True)

    assert result.annotations == []
    assert result.error is None


@pytest.mark.asyncio
async def test_untracked_file_has_no_annotations(git_repo):
    git_repo.commit("app.py", numbered_lines(2))
    git_repo.write("scratch.py", "x\n")

    result = await make_resolver().fetch_annotations(git_repo.root / "scratch.py")

    assert result.annotations == []
    assert result.error is None


@pytest.mark.asyncio
async def test_fingerprints_are_stable(git_repo):
    first = git_repo.commit("app.py", numbered_lines(2))
    second = git_repo.commit("app.py", numbered_lines(3))
    resolver = make_resolver()
    ctx = await resolver.locate(git_repo.root / "app.py")

    hashes = await resolver.fingerprints(ctx)

    assert hashes == await resolver.fingerprints(ctx)
    assert hashes == [
        fingerprint(second, shasum(numbered_lines(3).encode())),
        fingerprint(first, shasum(numbered_lines(2).encode())),
    ]


@pytest.mark.asyncio
async def test_fingerprints_skip_revisions_without_the_file(git_repo):
    git_repo.commit("app.py", numbered_lines(2))
    git_repo.git("rm", "-q", "app.py")
    git_repo.git("commit", "-m", "remove")
    git_repo.commit("app.py", numbered_lines(3))
    resolver = make_resolver()
    ctx = await resolver.locate(git_repo.root / "app.py")

    hashes = await resolver.fingerprints(ctx)

    assert len(hashes) == 2


@pytest.mark.asyncio
async def test_fetch_many_isolates_failures(git_repo):
    git_repo.commit("app.py", numbered_lines(4))
    good = git_repo.root / "app.py"
    resolver = make_resolver()
    await resolver.create_annotation(good, "", "smile", 1, 1)

    ok, bad = await resolver.fetch_many([good, git_repo.root / "missing.py"])

    assert ok.error is None
    assert len(ok.annotations) == 1
    assert bad.annotations == []
    assert "does not exist" in bad.error


@pytest.mark.asyncio
async def test_store_failure_is_reported_on_result(git_repo):
    git_repo.commit("app.py", numbered_lines(2))

    result = await make_resolver(UnreachableStore()).fetch_annotations(git_repo.root / "app.py")

    assert result.annotations == []
    assert "unreachable" in result.error


@pytest.mark.asyncio
async def test_delete_annotation(git_repo):
    git_repo.commit("app.py", numbered_lines(3))
    path = git_repo.root / "app.py"
    store = MemoryStore()
    resolver = make_resolver(store)
    annotation_id = await resolver.create_annotation(path, "", "smile", 1, 2)

    assert await resolver.delete_annotation(annotation_id) is True
    assert store.addresses == {}
    assert (await resolver.fetch_annotations(path)).annotations == []
    assert await resolver.delete_annotation(annotation_id) is False


@pytest.mark.asyncio
async def test_delete_unknown_annotation_is_not_an_error():
    assert await make_resolver().delete_annotation("404") is False


@pytest.mark.asyncio
async def test_toggle_creates_then_deletes(git_repo):
    git_repo.commit("app.py", numbered_lines(5))
    path = git_repo.root / "app.py"
    resolver = make_resolver()

    created = await resolver.toggle_smile(path, 3)
    assert created.action == "created"
    [resolved] = (await resolver.fetch_annotations(path)).annotations
    assert resolved.covers(3)

    deleted = await resolver.toggle_smile(path, 3)
    assert deleted.action == "deleted"
    assert deleted.annotation_ids == created.annotation_ids
    assert (await resolver.fetch_annotations(path)).annotations == []


@pytest.mark.asyncio
async def test_failed_address_raises_incomplete_annotation(git_repo):
    git_repo.commit("app.py", numbered_lines(5))
    git_repo.commit("app.py", "line 1\nline 2\nchanged 3\nline 4\nline 5\n")
    store = FlakyAddressStore()

    with pytest.raises(IncompleteAnnotation) as excinfo:
        await make_resolver(store).create_annotation(git_repo.root / "app.py", "", "smile", 2, 4)

    assert excinfo.value.annotation_id in store.annotations
    assert len(excinfo.value.created) == 1
    assert isinstance(excinfo.value.cause, TransportFailure)


def _annotation(*addresses):
    return Annotation(
        text="", emoticon="smile", start_line_number=1, end_line_number=1, id="7",
        addresses=list(addresses),
    )


def _address(sequence, revision, start, end):
    return AnnotationAddress(
        sequence=sequence, revision=revision, file_checksum="c",
        start_line_number=start, end_line_number=end,
    )


def test_resolve_uses_first_start_and_last_end():
    annotation = _annotation(_address(1, "b" * 40, 6, 6), _address(0, "a" * 40, 2, 3))
    tables = {
        "a" * 40: LineTranslation({2: 12, 3: 13}),
        "b" * 40: LineTranslation({6: 20}),
    }

    resolved = resolve(annotation, tables)

    assert (resolved.start_line, resolved.end_line) == (12, 20)


def test_resolve_marks_missing_tables_and_addresses():
    assert resolve(_annotation(), {}).error == "no-addresses"
    assert resolve(_annotation(_address(0, "a" * 40, 1, 1)), {"a" * 40: None}).error == (
        "diff-failed"
    )


@pytest.mark.asyncio
async def test_colored_git_output_does_not_freeze_positions(git_repo):
    git_repo.commit("app.py", numbered_lines(12))
    git_repo.git("config", "color.ui", "always")
    path = git_repo.root / "app.py"
    resolver = make_resolver()
    await resolver.create_annotation(path, "", "smile", 10, 10)

    git_repo.write("app.py", "new 1\nnew 2\nnew 3\n" + numbered_lines(12))
    result = await resolver.fetch_annotations(path)

    assert [(a.start_line, a.end_line) for a in result.annotations] == [(13, 13)]


@pytest.mark.asyncio
async def test_moved_lines_are_declined_or_placed_exactly(git_repo):
    git_repo.commit("app.py", "x\ny\n")
    git_repo.commit("app.py", "y\nx\ny\n")
    git_repo.commit("app.py", "y\nx\n")
    path = git_repo.root / "app.py"
    store = MemoryStore()
    resolver = make_resolver(store)

    try:
        await resolver.create_annotation(path, "", "smile", 1, 2)
    except TranslationMiss:
        assert store.annotations == {}
        assert store.addresses == {}
    else:
        [resolved] = (await resolver.fetch_annotations(path)).annotations
        assert (resolved.start_line, resolved.end_line) == (1, 2)


@pytest.mark.asyncio
async def test_addresses_use_blame_line_numbers(git_repo):
    revision = git_repo.commit("app.py", numbered_lines(6))
    git_repo.write("app.py", "line 1\nline 4\nline 5\nline 6\n")
    store = MemoryStore()

    await make_resolver(store).create_annotation(git_repo.root / "app.py", "", "smile", 2, 3)

    [address] = store.addresses.values()
    assert address.revision == revision
    assert (address.start_line_number, address.end_line_number) == (4, 5)
