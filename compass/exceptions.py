class CompassError(Exception):
    """Base exception for all errors raised by the consolidation and matching engine."""
    pass

class DataLoadError(CompassError):
    """
    Exception raised when a required input file or dataset cannot be read.

    Attributes:
        path -- The path that failed to load
    """
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"{message}: {path}")

class MalformedDefinitionError(CompassError):
    """
    Exception raised when a consolidation definition violates its invariants.

    Attributes:
        definition_id -- The id of the offending definition
    """
    def __init__(self, definition_id, reason):
        self.definition_id = definition_id
        self.reason = reason
        super().__init__(f"Malformed consolidation definition '{definition_id}': {reason}")

class IndexIntegrityError(CompassError):
    """Exception raised when an embedding entry points at a parent that is not a consolidated career."""
    pass

class EmbeddingDimensionError(CompassError, ValueError):
    """Exception raised when query vectors do not match the index dimensionality."""
    pass

class ModelLoadingError(CompassError):
    """Exception raised when the embedding model fails to load."""
    pass

class ConfigurationError(CompassError):
    """Exception raised for errors related to application configuration."""
    pass

class EmbeddingError(CompassError):
    """Exception raised when the embedding model fails to encode a batch of texts."""
    pass

class IndexQueryError(CompassError):
    """Exception raised when the vector store fails to answer a similarity query."""
    pass
