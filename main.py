"""Composition root: builds the store, repositories, cache and view-models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import sys

from loguru import logger

from app.image_tasks import ImageTaskRunner
from app.viewmodels.compare_vm import CompareVM
from app.viewmodels.main_vm import MainVM
from core.services.compositor import CompareCompositor, FitMode
from core.services.photo_store import PhotoStore
from infrastructure.image_service import ImageCache
from infrastructure.library_exporter import DirectoryLibraryExporter
from infrastructure.logging import get_log_directory, init_logging
from infrastructure.photo_repository import PhotoFileRepository
from infrastructure.settings import JsonSettings
from infrastructure.snapshot_repository import SNAPSHOT_FILE_NAME, JsonSnapshotRepository

BASE_DIR = Path(__file__).parent


@dataclass
class AppContext:
    """Every long-lived service, constructed once and passed by reference."""

    settings: JsonSettings
    files: PhotoFileRepository
    cache: ImageCache
    store: PhotoStore
    compositor: CompareCompositor
    main_vm: MainVM
    compare_vm: CompareVM
    tasks: ImageTaskRunner

    def close(self) -> None:
        self.tasks.wait()
        self.compare_vm.close()
        self.store.close()


def build_app(settings: JsonSettings, data_dir: str | Path | None = None) -> AppContext:
    """Wire up the application services from ``settings``."""
    root = Path(data_dir or settings.get("storage.data_dir")).expanduser()
    root.mkdir(parents=True, exist_ok=True)

    files = PhotoFileRepository.from_settings(root / "Photos", settings)
    cache = ImageCache.from_settings(files, settings)
    store = PhotoStore(JsonSnapshotRepository(root / SNAPSHOT_FILE_NAME), files, cache)
    store.load()

    compositor = CompareCompositor(
        fit_mode=FitMode.parse(settings.get("compare.fit_mode", "clip")),
        render_scale=float(settings.get("compare.render_scale", 2)),
    )
    exporter = DirectoryLibraryExporter(settings.get("compare.export_dir"))
    compare_vm = CompareVM(
        cache,
        compositor,
        exporter,
        min_scale=float(settings.get("compare.min_scale", 0.3)),
        max_scale=float(settings.get("compare.max_scale", 5.0)),
        export_timeout=float(settings.get("compare.export_timeout_seconds", 30)),
    )
    return AppContext(
        settings=settings,
        files=files,
        cache=cache,
        store=store,
        compositor=compositor,
        main_vm=MainVM(store, files, cache),
        compare_vm=compare_vm,
        tasks=ImageTaskRunner(cache=cache, compositor=compositor),
    )


def main() -> int:
    settings = JsonSettings(BASE_DIR / "settings.json", required=False)
    data_dir = settings.get("storage.data_dir")
    init_logging(
        settings.get("logging.dir") or get_log_directory(data_dir),
        level=str(settings.get("logging.level", "INFO")),
    )
    ctx = build_app(settings)
    try:
        for row in ctx.main_vm.subject_rows():
            logger.info("{}: {}", row.title, row.subtitle)
    finally:
        ctx.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
