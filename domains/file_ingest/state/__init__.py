"""
File Ingestion State

- records.py - FileRecord and InstallerEntry types
- registry.py - Idempotency ledger keyed by source path
- installers.py - Installer lifecycle tracker
- activity_log.py - Activity history
"""
