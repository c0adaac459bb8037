"""
Farm Exports

Asynchronous report exports (PDF, Excel, CSV) for farm records.
"""

__version__ = "1.0.0"
