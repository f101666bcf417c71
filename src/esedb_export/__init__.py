"""
ESE Database Export - typed record export for Extensible Storage Engine files

Opens a private copy of an ESE database (for example the Windows Search
Windows.edb), repairs it once if it cannot be attached cleanly, and exports
every table's rows as delimited, human-readable records.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
