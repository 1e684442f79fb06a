from mealdispatch.api.main import app

__all__ = ["app"]
