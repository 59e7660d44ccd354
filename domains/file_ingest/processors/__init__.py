"""
File Ingestion Processors

Shared processing utilities for file ingestion:
- router.py - Extension-based category routing
- naming.py - Collision-free destination names
- mover.py - Moves, reverts and the confirmation gate
"""
