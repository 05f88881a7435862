"""
Knowledge Query Domain

Read and write access to the data the ingestion pipeline has stored:
- client.py - Natural-language query, follow-up chat, index search and mutation calls
"""
