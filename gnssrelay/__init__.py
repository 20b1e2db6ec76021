"""
gnssrelay: relay one GNSS data stream to many sinks, optionally converting
its protocol on the way.
"""

__version__ = "0.3.0"
