"""
subfetch - subtitle retrieval, parsing and merging
"""
__version__ = "1.0.0"
