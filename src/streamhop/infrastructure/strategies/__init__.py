from .fetch import FetchStrategy
from .render import RenderSettings, RenderStrategy

__all__ = ["FetchStrategy", "RenderSettings", "RenderStrategy"]
