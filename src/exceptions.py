"""Custom exception hierarchy for Taskminder."""


class TaskminderError(Exception):
    """Base exception for all Taskminder errors."""


class GoogleAuthError(TaskminderError):
    """Raised when Google API credentials are missing or cannot be refreshed."""


class SheetReadError(TaskminderError):
    """Raised when reading task sheets from the spreadsheet fails."""


class SheetWriteError(TaskminderError):
    """Raised when writing back to the spreadsheet fails."""


class DocumentRenderError(TaskminderError):
    """Raised when a reminder document cannot be rewritten."""


class NotificationError(TaskminderError):
    """Raised when sending a reminder email fails."""


class ReminderConfigError(TaskminderError):
    """Raised when the stored reminder configuration cannot be saved."""


class InvalidDocumentUrlError(ReminderConfigError):
    """Raised when one or more document URLs are invalid or duplicated."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid or duplicate URLs detected: " + ", ".join(problems))
