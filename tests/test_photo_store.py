"""Subject/photo store: consistency, queries and persistence."""

from __future__ import annotations

from datetime import datetime, timedelta
import threading
import uuid

import pytest

from core.errors import PhotoIOError
from core.models import AppSnapshot, Photo, Subject
from core.services.photo_store import PhotoStore
from infrastructure.snapshot_repository import JsonSnapshotRepository

T0 = datetime(2024, 1, 1, 9, 0)


class MemorySnapshots:
    def __init__(self, fail: bool = False):
        self.saved: list[AppSnapshot] = []
        self.fail = fail

    def load(self):
        return None

    def save(self, snapshot: AppSnapshot) -> None:
        if self.fail:
            raise PhotoIOError("disk full")
        self.saved.append(snapshot)


class RecordingFiles:
    def __init__(self, broken=()):
        self.deleted: list[str] = []
        self.broken = set(broken)

    def save(self, image_bytes: bytes) -> str:
        raise NotImplementedError

    def load(self, file_name: str) -> bytes:
        raise NotImplementedError

    def delete(self, file_name: str) -> None:
        if file_name in self.broken:
            raise PhotoIOError("locked")
        self.deleted.append(file_name)


class RecordingCache:
    def __init__(self):
        self.invalidated: list[str] = []

    def get(self, file_name):
        return None

    def invalidate(self, file_name: str) -> None:
        self.invalidated.append(file_name)


@pytest.fixture
def mem_store():
    files, cache = RecordingFiles(), RecordingCache()
    s = PhotoStore(MemorySnapshots(), files, cache)
    s.load()
    yield s, files, cache
    s.close()


def add_subject_with_photos(store: PhotoStore, n: int, name: str = "Fern"):
    subject = Subject(name=name, created_at=T0)
    store.add_subject(subject)
    photos = []
    for i in range(n):
        p = Photo(
            file_name=f"{name}{i}.jpg", subject_id=subject.id, taken_at=T0 + timedelta(days=i)
        )
        store.add_photo(p)
        photos.append(p)
    return subject, photos


def test_load_empty_when_no_snapshot(mem_store):
    store, _, _ = mem_store
    assert store.is_loading is False
    assert store.subjects == []
    assert store.photos == []


def test_add_and_query(mem_store):
    store, _, _ = mem_store
    subject, photos = add_subject_with_photos(store, 3)

    assert [s.id for s in store.subjects] == [subject.id]
    assert store.photo_count(subject.id) == 3
    assert [p.id for p in store.photos_for_subject(subject.id)] == [
        photos[2].id,
        photos[1].id,
        photos[0].id,
    ]
    assert store.latest_photo(subject.id).id == photos[2].id
    assert store.first_photo(subject.id).id == photos[0].id


def test_duplicate_ids_are_rejected(mem_store):
    store, _, _ = mem_store
    subject = Subject(name="A")
    assert store.add_subject(subject) is True
    assert store.add_subject(subject) is False
    photo = Photo(file_name="x.jpg", subject_id=subject.id)
    assert store.add_photo(photo) is True
    assert store.add_photo(photo) is False
    assert len(store.photos) == 1


def test_reads_return_copies(mem_store):
    store, _, _ = mem_store
    subject, _ = add_subject_with_photos(store, 1)
    store.get_subject(subject.id).name = "changed"
    assert store.get_subject(subject.id).name == "Fern"


def test_caller_mutation_after_add_does_not_leak(mem_store):
    store, _, _ = mem_store
    subject = Subject(name="A")
    store.add_subject(subject)
    subject.name = "B"
    assert store.get_subject(subject.id).name == "A"


def test_cascading_delete(mem_store):
    store, files, cache = mem_store
    keep, keep_photos = add_subject_with_photos(store, 2, "Keep")
    gone, gone_photos = add_subject_with_photos(store, 5, "Gone")

    result = store.delete_subject(gone.id)

    assert result.found
    assert sorted(result.removed_photo_ids, key=str) == sorted(
        (p.id for p in gone_photos), key=str
    )
    assert sorted(files.deleted) == sorted(p.file_name for p in gone_photos)
    assert sorted(cache.invalidated) == sorted(p.file_name for p in gone_photos)
    assert store.get_subject(gone.id) is None
    assert all(p.subject_id == keep.id for p in store.photos)
    assert store.photo_count(keep.id) == 2
    assert store.photo_count(gone.id) == 0


def test_failed_file_delete_still_removes_rows(mem_store):
    store, files, _ = mem_store
    subject, photos = add_subject_with_photos(store, 2)
    files.broken.add(photos[0].file_name)

    result = store.delete_subject(subject.id)

    assert [name for name, _ in result.failed] == [photos[0].file_name]
    assert result.deleted_files == [photos[1].file_name]
    assert store.photos == []


def test_delete_photo_clears_cover_first(mem_store):
    store, files, _ = mem_store
    subject, photos = add_subject_with_photos(store, 3)
    assert store.update_subject_cover(subject.id, photos[0].id)
    assert store.cover_photo(subject.id).id == photos[0].id

    result = store.delete_photo(photos[0].id)

    assert result.found
    assert files.deleted == [photos[0].file_name]
    assert store.get_subject(subject.id).cover_photo_id is None
    # Falls back to the latest remaining photo
    assert store.cover_photo(subject.id).id == photos[2].id


def test_cover_must_belong_to_subject(mem_store):
    store, _, _ = mem_store
    a, a_photos = add_subject_with_photos(store, 1, "A")
    b, _ = add_subject_with_photos(store, 1, "B")
    assert store.update_subject_cover(b.id, a_photos[0].id) is False
    assert store.get_subject(b.id).cover_photo_id is None
    assert store.update_subject_cover(a.id, uuid.uuid4()) is False


def test_cover_none_restores_latest(mem_store):
    store, _, _ = mem_store
    subject, photos = add_subject_with_photos(store, 2)
    store.update_subject_cover(subject.id, photos[0].id)
    store.update_subject_cover(subject.id, None)
    assert store.cover_photo(subject.id).id == photos[1].id


def test_cover_of_empty_subject_is_none(mem_store):
    store, _, _ = mem_store
    subject, _ = add_subject_with_photos(store, 0)
    assert store.cover_photo(subject.id) is None
    assert store.latest_photo(subject.id) is None
    assert store.first_photo(subject.id) is None


def test_unknown_ids_are_no_ops(mem_store):
    store, files, _ = mem_store
    add_subject_with_photos(store, 1)
    before = store.snapshot()
    missing = uuid.uuid4()

    assert store.update_subject_name(missing, "x") is False
    assert store.update_photo_note(missing, "x") is False
    assert store.update_subject_cover(missing, None) is False
    assert store.delete_subject(missing).found is False
    assert store.delete_photo(missing).found is False

    assert store.snapshot() == before
    assert files.deleted == []


def test_updates(mem_store):
    store, _, _ = mem_store
    subject, photos = add_subject_with_photos(store, 1)
    assert store.update_subject_name(subject.id, "Monstera")
    assert store.update_photo_note(photos[0].id, "new leaf")
    assert store.get_subject(subject.id).name == "Monstera"
    assert store.get_photo(photos[0].id).note == "new leaf"


def test_sorted_subjects_newest_first(mem_store):
    store, _, _ = mem_store
    old = Subject(name="old", created_at=T0)
    new = Subject(name="new", created_at=T0 + timedelta(days=1))
    store.add_subject(old)
    store.add_subject(new)
    assert [s.name for s in store.sorted_subjects()] == ["new", "old"]


def test_every_mutation_queues_a_write():
    snaps = MemorySnapshots()
    store = PhotoStore(snaps)
    store.load()
    subject = Subject(name="A")
    store.add_subject(subject)
    store.update_subject_name(subject.id, "B")
    assert store.flush(timeout=5)
    store.close()
    assert len(snaps.saved) == 2
    assert snaps.saved[-1].subjects[0].name == "B"


def test_save_failure_keeps_memory_state():
    store = PhotoStore(MemorySnapshots(fail=True))
    store.load()
    store.add_subject(Subject(name="A"))
    assert store.flush(timeout=5)
    assert isinstance(store.last_save_error, PhotoIOError)
    assert [s.name for s in store.subjects] == ["A"]
    store.close()


def test_writes_after_close_are_dropped():
    snaps = MemorySnapshots()
    store = PhotoStore(snaps)
    store.load()
    store.close()
    store.add_subject(Subject(name="late"))
    assert snaps.saved == []
    assert store.flush(timeout=1)


def test_state_survives_restart(snapshot_path, files, cache):
    first = PhotoStore(JsonSnapshotRepository(snapshot_path), files, cache)
    first.load()
    subject, photos = add_subject_with_photos(first, 2)
    first.update_subject_cover(subject.id, photos[0].id)
    first.update_photo_note(photos[1].id, "héllo")
    first.close()

    second = PhotoStore(JsonSnapshotRepository(snapshot_path), files, cache)
    second.load()
    try:
        assert second.get_subject(subject.id) == first.get_subject(subject.id)
        assert second.get_photo(photos[1].id).note == "héllo"
        assert second.cover_photo(subject.id).id == photos[0].id
        assert {p.id for p in second.photos} == {p.id for p in photos}
    finally:
        second.close()


def test_corrupt_snapshot_starts_empty(snapshot_path):
    snapshot_path.write_text("{not json", encoding="utf-8")
    store = PhotoStore(JsonSnapshotRepository(snapshot_path))
    store.load()
    assert store.subjects == []
    assert store.is_loading is False
    store.close()


def test_non_utf8_snapshot_starts_empty(snapshot_path):
    snapshot_path.write_bytes(b'{"subjects": [], "photos": [\xff\xfe]}')
    store = PhotoStore(JsonSnapshotRepository(snapshot_path))
    store.load()
    assert store.subjects == []
    assert store.photos == []
    store.close()


class ReadingFiles(RecordingFiles):
    """Reads the store from another thread while a payload delete is running."""

    def __init__(self):
        super().__init__()
        self.store: PhotoStore | None = None
        self.blocked = False
        self.seen: list[list[str]] = []

    def delete(self, file_name: str) -> None:
        reader = threading.Thread(
            target=lambda: self.seen.append([p.file_name for p in self.store.photos])
        )
        reader.start()
        reader.join(timeout=2)
        if reader.is_alive():
            self.blocked = True
            reader.join()
        super().delete(file_name)


def test_payload_deletes_do_not_block_readers():
    files = ReadingFiles()
    store = PhotoStore(MemorySnapshots(), files)
    files.store = store
    store.load()
    try:
        subject, photos = add_subject_with_photos(store, 2)
        keep = Photo(file_name="keep.jpg")
        store.add_photo(keep)

        store.delete_subject(subject.id)
        store.delete_photo(keep.id)
    finally:
        store.close()

    assert files.blocked is False
    assert files.seen == [["keep.jpg"], ["keep.jpg"], []]
    assert files.deleted == [photos[0].file_name, photos[1].file_name, "keep.jpg"]


def test_reader_never_sees_orphaned_photos_during_delete(mem_store):
    store, _, _ = mem_store
    subjects = [add_subject_with_photos(store, 3, f"S{i}")[0] for i in range(40)]
    violations: list[uuid.UUID] = []
    done = threading.Event()

    def reader():
        while not done.is_set():
            for subject in subjects:
                # Deletes are one-way, so a later read may only show less
                if store.get_subject(subject.id) is None:
                    if store.photos_for_subject(subject.id):
                        violations.append(subject.id)
                elif not store.photos_for_subject(subject.id):
                    if store.get_subject(subject.id) is not None:
                        violations.append(subject.id)

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for subject in subjects:
            store.delete_subject(subject.id)
    finally:
        done.set()
        thread.join(timeout=10)

    assert not thread.is_alive()
    assert violations == []
    assert store.subjects == []
    assert store.photos == []
