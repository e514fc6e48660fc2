from .score import build_score, render_score
from .terraform import fragment_names, render

__all__ = ["build_score", "fragment_names", "render", "render_score"]
