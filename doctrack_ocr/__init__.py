"""Document Scan OCR Pipeline.

Turns a photographed identity or expiry-tracked document into structured
fields: quality gating, pixel-level preprocessing, a multi-provider
recognition fallback chain (Microblink BlinkID, Google Cloud Vision,
Tesseract) and language-aware field extraction.
"""

__version__ = "1.0.0"
