"""
Data management submodule: project files, validation, browser-format conversion and share links.
"""

from .core import DataCore, ProjectContext
from .io import atomic_write, save_state, load_state, DATA_YAML, DATA_JSON, DATA_TEXT, DATA_BYTES
from .share import encode_state, decode_state, share_url
from .browser import from_browser_state, to_browser_state

# Define what gets imported with `from threepoint.data import *`
__all__ = [
    'DataCore',
    'ProjectContext',
    'atomic_write',
    'save_state',
    'load_state',
    'DATA_YAML',
    'DATA_JSON',
    'DATA_TEXT',
    'DATA_BYTES',
    'encode_state',
    'decode_state',
    'share_url',
    'from_browser_state',
    'to_browser_state',
]
