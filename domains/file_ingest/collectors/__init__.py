"""
File Ingestion Collectors

- scanner.py - Inbox listing and skip rules
- inbox_watcher.py - Change subscription, settle delay and periodic timers
"""
