"""
sitecrawl

A distributed site crawler that coordinates any number of workers through a
shared Redis store.
"""

__version__ = "1.0.0"
__description__ = "A distributed site crawler with crash-recoverable URL state in Redis"
