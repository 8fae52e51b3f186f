"""Levelled logging, retry strategies, property trees and retrying HTTP clients."""

__version__ = "0.1.0"