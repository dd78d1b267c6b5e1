# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   RagChatError
#   ├── IngestionError          — aborts the whole ingestion batch
#   │   ├── SourceUnavailable   — source cannot be opened
#   │   ├── ParseError          — content cannot be decoded
#   │   └── StoreWriteError     — store write failed (contents restored)
#   ├── EmbeddingFailure        — texts could not be vectorized
#   ├── DispatchError           — tool dispatch
#   │   ├── InvalidArguments    — unknown function or argument shape mismatch
#   │   ├── ToolTimeout         — handler exceeded its time budget
#   │   └── ToolExecutionError  — handler raised
#   └── NotFound                — dataset lookup for an unknown key
#
# Retrieval with zero results is not an error. Model backend errors are not
# wrapped: they propagate from the provider SDK as-is.
# =============================================================================


class RagChatError(Exception):
    """Base class for every error raised by ragchat."""


class IngestionError(RagChatError):
    """An ingestion batch failed; the store was left untouched."""


class SourceUnavailable(IngestionError):
    """The source could not be opened or read."""


class ParseError(IngestionError):
    """The source was readable but its content could not be decoded."""


class StoreWriteError(IngestionError):
    """Writing to the embedding store failed after its contents were restored."""


class EmbeddingFailure(RagChatError):
    """The embedding function could not vectorize the given texts."""


class DispatchError(RagChatError):
    """Base class for tool dispatch failures."""


class InvalidArguments(DispatchError):
    """A function call named an unknown function or had mismatched arguments."""

    def __init__(self, function_name: str, reason: str) -> None:
        super().__init__(f"Invalid call to '{function_name}': {reason}")
        self.function_name = function_name
        self.reason = reason


class ToolTimeout(DispatchError):
    """A tool handler did not finish within its timeout."""

    def __init__(self, function_name: str, timeout: float) -> None:
        super().__init__(
            f"Function '{function_name}' timed out after {timeout:g}s"
        )
        self.function_name = function_name
        self.timeout = timeout


class ToolExecutionError(DispatchError):
    """A tool handler raised an unexpected exception."""


class NotFound(RagChatError):
    """A dataset lookup found no value for the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No record found for key '{key}'")
        self.key = key
