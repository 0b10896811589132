"""Classification of push failures into actionable categories."""

import logging
from typing import Tuple

from .error_types import PushErrorCategory
from .error_strategies import build_error_resolutions, build_error_patterns


class PushErrorClassifier:
    """
    Maps git push diagnostics to a closed set of causes.

    The classifier only looks at stderr text. GitPython runs git under the
    C locale, so the English patterns hold regardless of the user's locale.
    """

    def __init__(self):
        self.logger = logging.getLogger('vaultsync.git_sync.error_classifier')
        self._patterns = build_error_patterns()
        self._resolutions = build_error_resolutions()

    def categorize(self, stderr: str) -> PushErrorCategory:
        """Return the category of a push failure."""
        stderr = stderr or ""
        for needles, category in self._patterns:
            if all(needle in stderr for needle in needles):
                self.logger.debug(f"Categorized push error as {category.value}: {needles}")
                return category
        return PushErrorCategory.UNKNOWN

    def describe(self, stderr: str) -> Tuple[PushErrorCategory, str]:
        """Return the category and the user-facing message for a push failure."""
        category = self.categorize(stderr)

        if category == PushErrorCategory.FATAL:
            fatal_line = next(line for line in stderr.splitlines() if "fatal:" in line)
            message = fatal_line.split("fatal:", 1)[1].strip()
            if message:
                return category, message
            category = PushErrorCategory.UNKNOWN

        return category, self._resolutions[category].user_message

    def resolution_steps(self, category: PushErrorCategory) -> list:
        """Steps the user can take for a category, empty for FATAL."""
        resolution = self._resolutions.get(category)
        return list(resolution.resolution_steps) if resolution else []
