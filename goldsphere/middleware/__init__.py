"""
HTTP middleware for the GoldSphere order service.
"""
