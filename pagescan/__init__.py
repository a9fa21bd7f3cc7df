"""
Document page scanner package.

This package turns a photographed document into a clean black-and-white page:
orientation normalization, interactive corner and crop editing, grayscale
conversion, adaptive binarization and page assembly.
"""

__version__ = "0.1.0"
