"""
GoldSphere Package

Order lifecycle and custody position service for the GoldSphere
precious-metals platform.
"""

__version__ = "0.1.0"
