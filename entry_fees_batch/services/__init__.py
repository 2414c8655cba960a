from entry_fees_batch.services.runner import BatchOperationRunner

__all__ = ["BatchOperationRunner"]
