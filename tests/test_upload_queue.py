"""Tests for the sequential upload queue."""

import asyncio

import pytest

from inventory_media.domain.media import (
    MediaCategory,
    MediaKind,
    UploadStatus,
    UploadSummary,
)
from inventory_media.services.previews import InMemoryPreviewStore
from inventory_media.services.uploads import (
    MediaUploader,
    UploadInProgressError,
    UploadQueue,
)
from tests.conftest import FakeUploader, make_file


def test_add_creates_pending_general_entry(
    upload_queue: UploadQueue, preview_store: InMemoryPreviewStore
) -> None:
    entry = upload_queue.add(make_file("walkaround.webm", "video/webm"))

    assert entry.status is UploadStatus.PENDING
    assert entry.category is MediaCategory.GENERAL
    assert entry.media_kind is MediaKind.VIDEO
    assert entry.progress == 0
    assert preview_store.get(entry.preview_handle) is entry.source_file
    assert upload_queue.entries == (entry,)


def test_add_and_remove_keep_insertion_order(
    upload_queue: UploadQueue, preview_store: InMemoryPreviewStore
) -> None:
    first = upload_queue.add(make_file("a.jpg"))
    second = upload_queue.add(make_file("b.jpg"))
    third = upload_queue.add(make_file("c.jpg"))

    assert upload_queue.remove(second.id) is True
    fourth = upload_queue.add(make_file("d.jpg"))

    assert [entry.file_name for entry in upload_queue.entries] == [
        "a.jpg",
        "c.jpg",
        "d.jpg",
    ]
    assert [entry.id for entry in upload_queue.entries] == [
        first.id,
        third.id,
        fourth.id,
    ]
    assert preview_store.get(second.preview_handle) is None
    assert len(preview_store) == 3


def test_remove_unknown_entry_is_rejected(upload_queue: UploadQueue) -> None:
    upload_queue.add(make_file())
    other = UploadQueue(uploader=FakeUploader(), previews=InMemoryPreviewStore())
    foreign = other.add(make_file())

    assert upload_queue.remove(foreign.id) is False
    assert len(upload_queue) == 1


def test_set_category_only_while_pending(upload_queue: UploadQueue) -> None:
    entry = upload_queue.add(make_file())

    assert upload_queue.set_category(entry.id, MediaCategory.DAMAGE) is True
    asyncio.run(upload_queue.run_upload("car-1"))

    assert entry.status is UploadStatus.SUCCESS
    assert upload_queue.set_category(entry.id, MediaCategory.ENGINE) is False
    assert entry.category is MediaCategory.DAMAGE


def test_run_upload_isolates_failures(
    upload_queue: UploadQueue, uploader: FakeUploader
) -> None:
    uploader.failures = {"2.jpg"}
    for name in ("1.jpg", "2.jpg", "3.jpg"):
        upload_queue.add(make_file(name))

    summary = asyncio.run(upload_queue.run_upload("car-42"))

    assert [entry.status for entry in upload_queue.entries] == [
        UploadStatus.SUCCESS,
        UploadStatus.ERROR,
        UploadStatus.SUCCESS,
    ]
    assert summary == UploadSummary(success_count=2, error_count=1, total=3)
    assert summary.succeeded
    assert upload_queue.last_summary == summary
    assert [entry.progress for entry in upload_queue.entries] == [100, 0, 100]
    assert upload_queue.entries[0].record is not None
    assert upload_queue.entries[1].record is None


def test_run_upload_is_sequential_and_in_order(
    upload_queue: UploadQueue, uploader: FakeUploader
) -> None:
    upload_queue.add(make_file("front.jpg"))
    interior = upload_queue.add(make_file("cabin.mp4", "video/mp4"))
    upload_queue.add(make_file("rear.jpg"))
    upload_queue.set_category(interior.id, MediaCategory.INTERIOR)

    asyncio.run(upload_queue.run_upload("car-7"))

    assert uploader.max_in_flight == 1
    assert uploader.calls == [
        ("front.jpg", "car-7", MediaKind.IMAGE, MediaCategory.GENERAL),
        ("cabin.mp4", "car-7", MediaKind.VIDEO, MediaCategory.INTERIOR),
        ("rear.jpg", "car-7", MediaKind.IMAGE, MediaCategory.GENERAL),
    ]
    # Each transfer starts only after the previous entry reached a final state.
    assert uploader.statuses_seen == [
        ["uploading", "pending", "pending"],
        ["success", "uploading", "pending"],
        ["success", "success", "uploading"],
    ]


def test_all_failures_report_total_failure(
    upload_queue: UploadQueue, uploader: FakeUploader
) -> None:
    uploader.failures = {"a.jpg", "b.jpg"}
    upload_queue.add(make_file("a.jpg"))
    upload_queue.add(make_file("b.jpg"))

    summary = asyncio.run(upload_queue.run_upload("car-1"))

    assert summary == UploadSummary(success_count=0, error_count=2, total=2)
    assert not summary.succeeded


def test_empty_queue_completes_immediately(
    upload_queue: UploadQueue, uploader: FakeUploader
) -> None:
    summary = asyncio.run(upload_queue.run_upload("car-1"))

    assert summary == UploadSummary(success_count=0, error_count=0, total=0)
    assert not summary.succeeded
    assert uploader.calls == []


def test_unexpected_uploader_error_marks_entry_failed(
    preview_store: InMemoryPreviewStore,
) -> None:
    class BrokenUploader(MediaUploader):
        async def upload(self, file, owner_id, media_kind, category):  # type: ignore[no-untyped-def]
            raise RuntimeError("boom")

    queue = UploadQueue(uploader=BrokenUploader(), previews=preview_store)
    queue.add(make_file("a.jpg"))
    queue.add(make_file("b.jpg"))

    summary = asyncio.run(queue.run_upload("car-1"))

    assert summary.error_count == 2
    assert not queue.is_uploading


def test_mutators_rejected_during_upload(preview_store: InMemoryPreviewStore) -> None:
    queue: UploadQueue
    observed: dict[str, object] = {}

    class InspectingUploader(MediaUploader):
        async def upload(self, file, owner_id, media_kind, category):  # type: ignore[no-untyped-def]
            if file.name == "first.jpg":
                uploading, waiting = queue.entries
                observed["remove_uploading"] = queue.remove(uploading.id)
                observed["remove_waiting"] = queue.remove(waiting.id)
                observed["recategorize"] = queue.set_category(
                    waiting.id, MediaCategory.ENGINE
                )
                observed["cleared"] = queue.clear_finished()
                try:
                    await queue.run_upload(owner_id)
                except UploadInProgressError:
                    observed["second_pass"] = "rejected"
            return await FakeUploader().upload(file, owner_id, media_kind, category)

    queue = UploadQueue(uploader=InspectingUploader(), previews=preview_store)
    queue.add(make_file("first.jpg"))
    queue.add(make_file("second.jpg"))

    summary = asyncio.run(queue.run_upload("car-1"))

    assert observed == {
        "remove_uploading": False,
        "remove_waiting": False,
        "recategorize": False,
        "cleared": 0,
        "second_pass": "rejected",
    }
    assert len(queue) == 2
    assert queue.entries[1].category is MediaCategory.GENERAL
    assert summary.total == 2


def test_second_pass_only_uploads_new_entries(
    upload_queue: UploadQueue, uploader: FakeUploader
) -> None:
    uploader.failures = {"bad.jpg"}
    upload_queue.add(make_file("good.jpg"))
    upload_queue.add(make_file("bad.jpg"))
    asyncio.run(upload_queue.run_upload("car-1"))

    upload_queue.add(make_file("late.jpg"))
    summary = asyncio.run(upload_queue.run_upload("car-1"))

    assert summary == UploadSummary(success_count=1, error_count=0, total=1)
    assert [call[0] for call in uploader.calls] == ["good.jpg", "bad.jpg", "late.jpg"]


def test_clear_finished_drops_terminal_entries(
    upload_queue: UploadQueue,
    uploader: FakeUploader,
    preview_store: InMemoryPreviewStore,
) -> None:
    uploader.failures = {"bad.jpg"}
    upload_queue.add(make_file("good.jpg"))
    failed = upload_queue.add(make_file("bad.jpg"))
    asyncio.run(upload_queue.run_upload("car-1"))
    waiting = upload_queue.add(make_file("new.jpg"))

    assert upload_queue.remove(failed.id) is False
    assert upload_queue.clear_finished() == 2

    assert upload_queue.entries == (waiting,)
    assert len(preview_store) == 1


@pytest.mark.parametrize(
    ("mime_type", "kind"),
    [
        ("image/png", MediaKind.IMAGE),
        ("image/jpeg", MediaKind.IMAGE),
        ("video/webm", MediaKind.VIDEO),
        ("video/quicktime", MediaKind.VIDEO),
    ],
)
def test_media_kind_derived_from_mime(
    upload_queue: UploadQueue, mime_type: str, kind: MediaKind
) -> None:
    entry = upload_queue.add(make_file("file", mime_type))

    assert entry.media_kind is kind
