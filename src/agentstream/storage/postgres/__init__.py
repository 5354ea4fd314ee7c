from .backend import PostgresMessageStore

__all__ = ["PostgresMessageStore"]
