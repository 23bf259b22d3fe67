"""
Request schemas for the catalog API.
"""
