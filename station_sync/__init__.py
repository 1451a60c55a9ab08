"""
Laundry Station Sync
Offline-first RFID item cache and sync engine for laundry stations
"""

__version__ = "1.0.0"
