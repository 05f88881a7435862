"""
File Ingestion Collectors

Sources of candidate files for the pipeline:
- scanner.py - One-shot bounded walk of the watched folder
- filesystem.py - Debounced watchdog-based change detection
"""
