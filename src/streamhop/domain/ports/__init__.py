from .render_pool import RenderPoolPort
from .strategy import ResolutionStrategyPort

__all__ = [
    "RenderPoolPort",
    "ResolutionStrategyPort",
]
