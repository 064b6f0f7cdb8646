"""
Menu scan backend: photographed menus in, structured and translated menus
and dish images out.
"""

__version__ = "1.0.0"
