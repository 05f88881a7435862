"""
File Ingestion Processors

Remote side of the pipeline:
- uploader.py - Presigned upload, object-store PUT and ingest trigger
- progress.py - Polling of triggered ingestion jobs
"""
