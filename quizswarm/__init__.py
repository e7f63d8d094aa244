"""
quizswarm - headless quiz hub clients and concurrent PIN discovery
"""

__version__ = "1.0.0"
