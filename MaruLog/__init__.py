"""
MaruLog: personal activity time log.

This package holds the activity-log store, its persistence adapters and a
small command line front end. Applications embedding the package should
configure their own logging.
"""
import logging

# Prevents "No handler found" warnings when used without logging configured.
logging.getLogger(__name__).addHandler(logging.NullHandler())

VERSION = "0.1.0"
