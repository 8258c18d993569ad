import tempfile, yaml, json, os
from typing import Union, Dict, Any, Optional, TextIO, BinaryIO
from pathlib import Path
from pydantic import ValidationError
from threepoint.recovery import FileOperationError, FatalError, CorruptionError
from threepoint.logs import get_logger
from threepoint.models import ProjectState

log = get_logger("data.io")

DATA_YAML = 0
DATA_JSON = 1
DATA_TEXT = 2
DATA_BYTES = 3

Payload = Union[Dict[str, Any], str, bytes]

def _dump_yaml(data: Payload, stream: TextIO):
    yaml.safe_dump(data, stream, default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)

def _dump_json(data: Payload, stream: TextIO):
    json.dump(data, stream, indent=2, ensure_ascii=False)
    stream.write("\n")

def _dump_text(data: Payload, stream: TextIO):
    if not isinstance(data, str):
        raise TypeError(f"Text output needs a string, got {type(data).__name__}")
    stream.write(data)

def _dump_bytes(data: Payload, stream: BinaryIO):
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"Binary output needs bytes, got {type(data).__name__}")
    stream.write(data)

_WRITERS = {
    DATA_YAML: _dump_yaml,
    DATA_JSON: _dump_json,
    DATA_TEXT: _dump_text,
    DATA_BYTES: _dump_bytes,
}

def data_type_for(file_path: Union[Path, str]) -> int:
    """State files are JSON when named *.json, YAML otherwise."""
    return DATA_JSON if Path(file_path).suffix.lower() == '.json' else DATA_YAML

def _discard(temp_path: Optional[str]):
    if temp_path is None or not os.path.exists(temp_path):
        return
    try:
        os.unlink(temp_path)
        log.debug(f"Removed temporary file: {temp_path}")
    except OSError as cleanup_error:
        log.warning(f"Could not remove temporary file {temp_path}: {cleanup_error}")

def _ensure_parent(file_path: Path):
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        error_msg = f"Cannot create directory {file_path.parent}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def atomic_write(data_type: int, file_path: Union[Path, str], data: Payload, create_dirs: bool = False):
    """
    Serialize data into file_path, replacing the file in one step.

    The content goes to a temporary file next to the target, is flushed to
    disk and then moved over the target, so readers see either the old or the
    new file and never a partial one.

    Args:
        data_type: DATA_YAML or DATA_JSON for a mapping, DATA_TEXT for a string,
            DATA_BYTES for bytes.
        file_path: Target file.
        data: What to write.
        create_dirs: Create missing parent directories first.

    Raises:
        FatalError: Unknown data type, or data that cannot be serialized.
        FileOperationError: The file system refused the write.
    """
    file_path = Path(file_path)
    writer = _WRITERS.get(data_type)
    if writer is None:
        raise FatalError(f"Unsupported data format: {data_type}")
    if create_dirs:
        _ensure_parent(file_path)

    temp_path = None
    try:
        if data_type == DATA_BYTES:
            open_args = {'mode': 'wb'}
        else:
            # newline='' keeps CSV row endings as the csv module wrote them
            open_args = {'mode': 'w', 'encoding': 'utf-8', 'newline': ''}
        with tempfile.NamedTemporaryFile(dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp',
                                         delete=False, **open_args) as temp_file:
            temp_path = temp_file.name
            writer(data, temp_file)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_path, file_path)

    except (yaml.YAMLError, TypeError, ValueError) as e:
        _discard(temp_path)
        error_msg = f"Could not serialize data for {file_path}: {e}"
        log.critical(error_msg)
        raise FatalError(error_msg) from e

    except OSError as e:
        _discard(temp_path)
        error_msg = f"I/O error writing {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

    log.debug(f"Wrote {file_path}")
    return True

def save_state(state: ProjectState, file_path: Union[Path, str], create_dirs: bool = False):
    """Write a project state as YAML, or as JSON when the file name ends in .json."""
    return atomic_write(data_type_for(file_path), file_path, state.model_dump(mode='json'), create_dirs=create_dirs)

def read_data_file(file_path: Union[Path, str]) -> Optional[Dict[str, Any]]:
    """
    Parse a YAML or JSON data file, chosen by suffix.

    Returns:
        The parsed mapping, {} for an empty file, or None if the file doesn't exist.

    Raises:
        CorruptionError: Syntax errors, or a top level that is not a mapping.
        FileOperationError: The file exists but cannot be read.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            if data_type_for(file_path) == DATA_JSON:
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CorruptionError(f"Syntax error in {file_path}: {e}") from e
    except OSError as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} does not hold a mapping at the top level")
    return data

def load_state(file_path: Union[Path, str]) -> Optional[ProjectState]:
    """Load a project state file; None if it doesn't exist."""
    data = read_data_file(file_path)
    if data is None:
        return None

    try:
        return ProjectState.model_validate(data)
    except ValidationError as e:
        raise CorruptionError(f"Invalid project data in {file_path}: {e}") from e
