"""
Study Uploader - packages completed assessment results into upload archives.
"""
__version__ = "1.0.0"
