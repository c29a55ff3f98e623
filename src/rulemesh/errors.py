"""Custom exception hierarchy for rulemesh."""


class RulemeshError(Exception):
    """Base exception for all rulemesh errors."""


class ParseError(RulemeshError):
    """Raised when YAML parsing or schema deserialization fails."""


class ValidationError(RulemeshError):
    """Raised when a rule graph or one of its parts is malformed."""


class AssemblyError(RulemeshError):
    """Raised when mesh assembly fails."""


class UnknownShape(AssemblyError):
    """Raised when an instance references a shape the provider does not know."""

    def __init__(self, shape_id: str, path: tuple[str, ...] = ()) -> None:
        self.shape_id = shape_id
        self.path = tuple(path)
        message = f"Unknown shape: {shape_id!r}"
        if self.path:
            message += f" (rule path: {' -> '.join(self.path)})"
        super().__init__(message)


class ExportError(RulemeshError):
    """Raised when GLB/OBJ export fails."""
