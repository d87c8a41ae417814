"""
Business services for the GoldSphere order service.
"""
