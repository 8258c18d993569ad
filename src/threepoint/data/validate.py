from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Union

from jsonschema import validate, ValidationError, SchemaError

from threepoint.logs import get_logger
from threepoint.models import ProjectState
from threepoint.recovery import CorruptionError, MigrationNeededError, ThreePointError
from threepoint.version import APP_SCHEMA_VERSION
from .io import read_data_file

log = get_logger("data.validate")

@lru_cache(maxsize=1)
def state_schema() -> dict:
    """JSON Schema of a project file, derived from the ProjectState model."""
    schema = ProjectState.model_json_schema()
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

def validate_state_data(data: Dict[str, Any]) -> bool:
    """
    Validate raw project data before it is turned into models.

    Args:
        data: The parsed content of a project file.

    Returns:
        True if the data is valid for the current schema version.

    Raises:
        MigrationNeededError: The data was written with another schema version.
        CorruptionError: The data does not match the schema.
    """
    version = data.get("schema_version", APP_SCHEMA_VERSION)
    if version != APP_SCHEMA_VERSION:
        raise MigrationNeededError(
            f"Project data uses schema {version}, this version of threepoint reads {APP_SCHEMA_VERSION}"
        )

    try:
        validate(instance=data, schema=state_schema())
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise CorruptionError(f"Project data failed validation at {location}: {e.message}") from e
    except SchemaError as e:
        raise CorruptionError(f"The project schema itself is invalid: {e.message}") from e
    return True

def validate_state_file(file_path: Union[Path, str]) -> bool:
    """
    Validate a project file, logging instead of raising.

    Returns:
        True if the file exists and is valid, False otherwise.
    """
    file_path = Path(file_path)
    try:
        data = read_data_file(file_path)
        if data is None:
            log.error(f"File not found: {file_path}")
            return False
        validate_state_data(data)
    except ThreePointError as e:
        log.error(f"File '{file_path}' FAILED validation: {e}")
        return False

    log.info(f"File '{file_path}' is VALID for schema version '{APP_SCHEMA_VERSION}'.")
    return True
