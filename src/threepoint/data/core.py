"""
DataCore - locating, loading, validating and saving the project file.

A project lives in a ``.tpe`` directory in the working directory (or wherever
TPE_PROJECT_DIR points) as a single ``project.yml`` holding the whole state.
"""
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from threepoint.logs import get_logger
from threepoint.models import ProjectState
from threepoint.recovery import CorruptionError, FileOperationError
from threepoint.store import ProjectStore
from .browser import is_browser_state, from_browser_state
from .io import read_data_file, save_state
from .validate import validate_state_data

log = get_logger("data")

class DataCore:
    PROJECT_DATA_DIR = Path(".tpe")
    PROJECT_FILE = "project.yml"

    @classmethod
    def project_dir(cls) -> Path:
        override = os.getenv('TPE_PROJECT_DIR', '')
        return Path(override) if override else cls.PROJECT_DATA_DIR

    @classmethod
    def project_file(cls) -> Path:
        return cls.project_dir() / cls.PROJECT_FILE

    @classmethod
    def is_initialized(cls) -> bool:
        return cls.project_file().exists()

    @classmethod
    def init_project(cls, state: Optional[ProjectState] = None) -> Path:
        """Create the project directory and an initial project file."""
        if cls.is_initialized():
            raise FileOperationError(f"Project already initialized ({cls.project_file()} exists)")
        state = state if state is not None else ProjectState()
        save_state(state, cls.project_file(), create_dirs=True)
        log.info(f"Initialized project at {cls.project_file()}")
        return cls.project_file()

    @classmethod
    def load(cls) -> ProjectState:
        """
        Load and validate the project file.

        Raises:
            FileOperationError: There is no project here.
            MigrationNeededError: The file uses another schema version.
            CorruptionError: The file cannot be parsed or fails validation.
        """
        data = read_data_file(cls.project_file())
        if data is None:
            raise FileOperationError(f"No project found at {cls.project_file()}; run 'tpe init' first")
        validate_state_data(data)
        try:
            return ProjectState.model_validate(data)
        except ValidationError as e:
            raise CorruptionError(f"Invalid project data in {cls.project_file()}: {e}") from e

    @classmethod
    def save(cls, state: ProjectState):
        save_state(state, cls.project_file(), create_dirs=True)

    @classmethod
    def import_file(cls, file_path: Path) -> ProjectState:
        """Read a state file written by threepoint or exported by the browser tool."""
        data = read_data_file(file_path)
        if data is None:
            raise FileOperationError(f"File not found: {file_path}")
        if is_browser_state(data):
            log.info(f"Importing browser state from {file_path}")
            return from_browser_state(data)
        validate_state_data(data)
        try:
            return ProjectState.model_validate(data)
        except ValidationError as e:
            raise CorruptionError(f"Invalid project data in {file_path}: {e}") from e

    @classmethod
    def get_context(cls) -> 'ProjectContext':
        return ProjectContext()


class ProjectContext:
    """Loads the project into a store; saves it back when the block exits cleanly."""

    def __init__(self):
        self.store = ProjectStore(DataCore.load())

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - save all changes unless the block failed."""
        if exc_type is None:
            self.save_all()

    @property
    def state(self) -> ProjectState:
        return self.store.snapshot()

    def save_all(self):
        DataCore.save(self.store.snapshot())
