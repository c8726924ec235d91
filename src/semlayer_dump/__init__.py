"""
semlayer-dump: export and import semantic layer dumps through the
service's long-running operation API.
"""
__version__ = "0.1.0"
