"""
E2E harness for React Native (and other) mobile apps driven through Appium.
"""

__version__ = "0.1.0"
