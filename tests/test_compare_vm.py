"""Comparison screen state, gestures and export."""

from __future__ import annotations

from datetime import datetime
import threading

from PIL import Image
import pytest

from app.viewmodels.compare_vm import MSG_LOAD_FAILED, MSG_SAVED, CompareVM, Side
from core.errors import (
    CompositionError,
    ExportTimeoutError,
    InvalidTransformError,
    PermissionDeniedError,
    PhotoIOError,
    PhotosUnavailableError,
)
from core.models import Photo, TransformParams
from core.services.compositor import CompareCompositor


class DictCache:
    def __init__(self, images: dict[str, Image.Image]):
        self.images = images

    def get(self, file_name):
        return self.images.get(file_name)

    def invalidate(self, file_name):
        self.images.pop(file_name, None)


class FakeExporter:
    def __init__(self, error: Exception | None = None):
        self.saved: list[Image.Image] = []
        self.error = error

    def save_image(self, image):
        if self.error is not None:
            raise self.error
        self.saved.append(image)


class BlockingCompositor(CompareCompositor):
    def __init__(self):
        super().__init__(render_scale=0.1)
        self.release = threading.Event()

    def composite(self, *args, **kwargs):
        self.release.wait(5)
        return super().composite(*args, **kwargs)


A = Photo(file_name="a.jpg", taken_at=datetime(2024, 1, 5))
B = Photo(file_name="b.jpg", taken_at=datetime(2024, 6, 1))


@pytest.fixture
def images():
    return {
        "a.jpg": Image.new("RGB", (30, 40), (255, 0, 0)),
        "b.jpg": Image.new("RGB", (40, 30), (0, 0, 255)),
    }


@pytest.fixture
def exporter():
    return FakeExporter()


@pytest.fixture
def vm(images, exporter):
    model = CompareVM(DictCache(images), CompareCompositor(render_scale=0.1), exporter)
    yield model
    model.close()


@pytest.fixture
def ready(vm):
    vm.select_photo(A)
    vm.select_photo(B)
    return vm


def test_select_fills_left_then_right(vm):
    vm.select_photo(A)
    assert vm.left.photo == A and vm.right.photo is None
    vm.select_photo(B)
    assert vm.right.photo == B
    assert vm.left.label == "2024/1/5"
    assert vm.right.label == "2024/6/1"
    # Both sides taken: nothing changes
    vm.select_photo(Photo(file_name="c.jpg"))
    assert (vm.left.photo, vm.right.photo) == (A, B)


def test_select_for_side_resets_transform(ready):
    ready.apply_zoom(Side.RIGHT, 2)
    ready.begin_selecting(Side.RIGHT)
    c = Photo(file_name="c.jpg", taken_at=datetime(2025, 2, 3))
    ready.select_photo(c)
    assert ready.right.photo == c
    assert ready.right.params == TransformParams()
    assert ready.right.label == "2025/2/3"
    assert ready.selecting_for is None


def test_swap_exchanges_everything(ready):
    ready.apply_zoom(Side.LEFT, 2)
    ready.set_label(Side.LEFT, "before")
    ready.swap()
    assert ready.right.photo == A
    assert ready.right.params.scale == 2
    assert ready.right.label == "before"
    assert ready.left.photo == B


def test_zoom_is_clamped(vm):
    assert vm.apply_zoom(Side.LEFT, 100) == 5.0
    assert vm.apply_zoom(Side.LEFT, 0.0001) == 0.3
    assert vm.left.params.scale == 0.3


def test_rotation_accumulates(vm):
    vm.apply_rotation(Side.LEFT, 30)
    assert vm.apply_rotation(Side.LEFT, 15) == 45
    vm.reset(Side.LEFT)
    assert vm.left.params == TransformParams()


def test_long_drag_at_rest_swaps(ready):
    assert ready.apply_drag(Side.LEFT, (120, 5), cell_width=200) is True
    assert ready.left.photo == B
    assert ready.right.params.offset == (0.0, 0.0)


def test_short_drag_at_rest_does_nothing(ready):
    assert ready.apply_drag(Side.LEFT, (80, 0), cell_width=200) is False
    assert ready.left.photo == A
    assert ready.left.params.offset == (0.0, 0.0)


def test_drag_when_zoomed_pans(ready):
    ready.apply_zoom(Side.LEFT, 2)
    assert ready.apply_drag(Side.LEFT, (150, -10), cell_width=200) is False
    ready.apply_drag(Side.LEFT, (5, 5), cell_width=200)
    assert ready.left.params.offset == (155, -5)
    assert ready.left.photo == A


def test_invalid_zoom_bounds():
    with pytest.raises(ValueError):
        CompareVM(DictCache({}), CompareCompositor(), min_scale=2, max_scale=1)


def test_preview_requires_two_photos(vm):
    vm.select_photo(A)
    assert vm.can_export is False
    result = vm.generate_preview()
    assert result.success is False
    assert result.message == CompositionError.user_message
    assert vm.preview_image is None


def test_preview_with_unloadable_photo(ready, images):
    del images["b.jpg"]
    result = ready.generate_preview()
    assert (result.success, result.message) == (False, MSG_LOAD_FAILED)


def test_render_reports_unloadable_photo_by_type(ready, images):
    del images["a.jpg"]
    with pytest.raises(PhotosUnavailableError) as info:
        ready.render()
    assert isinstance(info.value, CompositionError)
    assert info.value.user_message == MSG_LOAD_FAILED
    assert str(info.value) != MSG_LOAD_FAILED


def test_preview_and_save(ready, exporter):
    result = ready.generate_preview()
    assert result.success
    assert ready.preview_image.size == ready._compositor.layout(True).canvas_size

    saved = ready.save_preview_to_library()
    assert (saved.success, saved.message) == (True, MSG_SAVED)
    assert len(exporter.saved) == 1
    assert ready.preview_image is None


def test_preview_without_labels(ready):
    ready.show_labels = False
    ready.generate_preview()
    assert ready.preview_image.size == ready._compositor.layout(False).canvas_size


def test_preview_with_empty_labels_has_no_strip(ready):
    ready.set_label(Side.LEFT, "")
    ready.set_label(Side.RIGHT, "")
    ready.generate_preview()
    assert ready.preview_image.size == ready._compositor.layout(False).canvas_size


def test_invalid_scale_gives_single_message(ready):
    ready.left.params = TransformParams(scale=0)
    with pytest.raises(InvalidTransformError):
        ready.render()
    result = ready.generate_preview()
    assert (result.success, result.message) == (False, InvalidTransformError.user_message)


@pytest.mark.parametrize(
    "error, message",
    [
        (PermissionDeniedError("denied"), PermissionDeniedError.user_message),
        (PhotoIOError("disk full"), PhotoIOError.user_message),
    ],
)
def test_save_failure_is_reported_once(ready, error, message):
    ready._exporter = FakeExporter(error)
    ready.generate_preview()
    result = ready.save_preview_to_library()
    assert (result.success, result.message) == (False, message)
    assert ready.preview_image is None


def test_save_without_preview(ready, exporter):
    result = ready.save_preview_to_library()
    assert result.success is False
    assert exporter.saved == []


def test_save_without_exporter(images):
    vm = CompareVM(DictCache(images), CompareCompositor(render_scale=0.1))
    vm.select_photo(A)
    vm.select_photo(B)
    vm.generate_preview()
    assert vm.save_preview_to_library().success is False
    vm.close()


def test_render_timeout(images):
    compositor = BlockingCompositor()
    vm = CompareVM(DictCache(images), compositor, export_timeout=0.05)
    vm.select_photo(A)
    vm.select_photo(B)
    try:
        with pytest.raises(ExportTimeoutError):
            vm.render()
        result = vm.generate_preview()
        assert (result.success, result.message) == (False, ExportTimeoutError.user_message)
    finally:
        compositor.release.set()
        vm.close()


def test_discard_preview(ready):
    ready.generate_preview()
    ready.discard_preview()
    assert ready.preview_image is None
