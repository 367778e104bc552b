"""
Checks applied to names before they become paths in the recovery directory
"""
import re
from typing import Tuple

ValidationResult = Tuple[bool, str]


class PathValidator:
    """Rejects names that could escape the recovery directory"""

    MAX_NAME_LENGTH = 255
    SESSION_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')

    @staticmethod
    def validate_filename(filename: str) -> ValidationResult:
        """
        Returns:
            (True, "") for a plain file name, otherwise (False, reason)
        """
        if not filename:
            return False, "Name is empty"
        if any(sep in filename for sep in ('/', '\\')) or '..' in filename:
            return False, "Name must not contain path separators or '..'"
        if re.match(r'^[A-Za-z]:', filename):
            return False, "Name must not start with a drive letter"
        if len(filename) > PathValidator.MAX_NAME_LENGTH:
            return False, f"Name longer than {PathValidator.MAX_NAME_LENGTH} characters"
        return True, ""

    @staticmethod
    def validate_session_id(session_id: str) -> ValidationResult:
        """
        Ids become ``<id>.json`` inside the recovery directory, so only
        letters, digits, underscores and hyphens are accepted.
        """
        if not isinstance(session_id, str):
            return False, "Session id must be a string"

        ok, reason = PathValidator.validate_filename(session_id)
        if ok and not PathValidator.SESSION_ID_PATTERN.match(session_id):
            ok, reason = False, "Session id may only contain letters, digits, '_' and '-'"
        return ok, reason
