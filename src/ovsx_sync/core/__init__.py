"""Core business logic of the ovsx-sync application.

- sync: classification, resolution, publishing and orchestration
"""

__all__: list[str] = []
