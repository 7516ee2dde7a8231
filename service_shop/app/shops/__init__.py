"""
Shop domain: models and the cached query service.
"""
