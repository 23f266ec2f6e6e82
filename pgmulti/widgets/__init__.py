"""Widget library for the Textual UI."""

from __future__ import annotations

from .folder_picker import FolderPickerScreen, TextualFolderPicker
from .profile_form import ConfirmScreen, ProfileFormScreen
from .results import ExecutionStatusTable, OutcomeList, ResultTable, describe_outcome

__all__ = [
    "ConfirmScreen",
    "ExecutionStatusTable",
    "FolderPickerScreen",
    "OutcomeList",
    "ProfileFormScreen",
    "ResultTable",
    "TextualFolderPicker",
    "describe_outcome",
]
