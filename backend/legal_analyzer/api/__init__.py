"""
API package for the Legal Document Analyzer fallback service.
"""
