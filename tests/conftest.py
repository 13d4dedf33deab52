import os
import sys
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication

from everlook.events.bus import EventBus
from everlook.explorer.builder import ExplorerBuilder
from everlook.package.group import PackageGroup
from everlook.settings.manager import SettingsManager


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Qt application instance shared by the whole session."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def settings(tmp_path: Path) -> SettingsManager:
    manager = SettingsManager(path=tmp_path / "settings.json")
    manager.load()
    return manager


class GroupFactory:
    """Create package directories on disk backed by in-memory listfiles."""

    def __init__(self, root: Path):
        self._root = root
        self.listfiles: Dict[str, Dict[str, Optional[Sequence[str]]]] = {}
        self.load_calls: List[Path] = []
        self.gate: Optional[threading.Event] = None
        self.group_type: Callable[..., PackageGroup] = PackageGroup

    def add(self, name: str, packages: Dict[str, Optional[Sequence[str]]]) -> str:
        directory = self._root / name
        directory.mkdir(parents=True, exist_ok=True)
        self.listfiles[name] = packages
        return str(directory)

    def load(self, path: Path, separator: str) -> PackageGroup:
        self.load_calls.append(path)
        if self.gate is not None:
            self.gate.wait(5)
        return self.group_type(path.name, path, self.listfiles[path.name])


@pytest.fixture
def groups(tmp_path: Path) -> GroupFactory:
    return GroupFactory(tmp_path / "packages")


@pytest.fixture
def make_builder(settings: SettingsManager, groups: GroupFactory):
    created: List[ExplorerBuilder] = []

    def _make(directories: Sequence[str] = (), *, max_workers: int = 4, **kwargs) -> ExplorerBuilder:
        settings.set("package_directories", list(directories))
        builder = ExplorerBuilder(
            settings,
            event_bus=kwargs.pop("event_bus", None) or EventBus(),
            group_loader=groups.load,
            max_workers=max_workers,
            **kwargs,
        )
        created.append(builder)
        return builder

    yield _make

    for builder in created:
        builder.dispose()
