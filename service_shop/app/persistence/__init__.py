"""
Persistence package for Shop Service.
"""
