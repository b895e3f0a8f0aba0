"""Push hook continuous deployment server"""

__version__ = "1.0.0"
