"""
Core Modules - class catalog, inference providers and local storage.
"""
