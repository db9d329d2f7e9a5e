from .batch_writer import BatchWriter

__all__ = ["BatchWriter"]
