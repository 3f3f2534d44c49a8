"""
DocuWare helper.

Command-line and programmatic client for the DocuWare platform API:
authenticate, locate a file cabinet, and get, query, update, upload or
download its documents.
"""

__version__ = "0.1.0"
