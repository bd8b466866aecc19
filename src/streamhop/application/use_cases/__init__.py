from .extract_stream import ExtractStreamUseCase, validate_request

__all__ = ["ExtractStreamUseCase", "validate_request"]
