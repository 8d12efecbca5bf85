"""
transform package

Pan/zoom composition and selection-aware gesture routing.
"""

from transform.engine import PinchTarget, TransformEngine, TransformState
from transform.router import DragScope, route_gesture

__all__ = ["DragScope", "PinchTarget", "TransformEngine", "TransformState", "route_gesture"]
