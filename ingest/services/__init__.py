from .writer import BatchResult, MAX_BATCH_SIZE, validate_batch, write_batch, write_event

__all__ = ["BatchResult", "MAX_BATCH_SIZE", "validate_batch", "write_batch", "write_event"]
