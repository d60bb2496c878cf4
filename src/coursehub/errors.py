"""
src/coursehub/errors.py
=======================
Exception types raised by the importers and the admin surface.
"""


class CoursehubError(Exception):
    """Base class for every error raised on purpose by coursehub."""


class WorkbookStructureError(CoursehubError, ValueError):
    """The workbook does not follow the expected layout (fatal for the import)."""


class ValidationError(CoursehubError, ValueError):
    pass


class NotFoundError(CoursehubError, LookupError):
    pass


class ConflictError(CoursehubError):
    pass
