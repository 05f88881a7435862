"""
File Ingestion Domain

Keeps a watched folder mirrored into the remote ingestion service:
- collectors/ - Folder scan and filesystem watcher producing candidate files
- processors/ - Upload-and-ingest transfers and progress polling
- classifier.py - Ingest/skip heuristics applied to every candidate
- pipeline.py - Orchestrator wiring collectors to processors
"""

__all__ = ["collectors", "processors"]
