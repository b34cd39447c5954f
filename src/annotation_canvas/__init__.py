"""
Annotation Canvas - an interactive image annotation surface.

Built with PyQt6: zoomable/pannable image view, rectangle and polygon
editing with undo/redo, and point-prompted segmentation masks composited
over the image.
"""

__version__ = "0.1.0"
