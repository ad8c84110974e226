"""Application layer: use cases for cloud colorization."""

from .use_case import ColorizeCloudsUseCase

__all__ = ["ColorizeCloudsUseCase"]
