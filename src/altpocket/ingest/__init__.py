"""Bookmark ingestion pipeline.

Turns submitted URLs into stored, searchable article text.

Sub-modules:
- ``config``            : constants: user agent, tracking params, selectors
- ``canonical``         : URL canonicalization and dedup hashing
- ``text``              : whitespace normalisation and UTF-8 byte truncation
- ``content_extractor`` : BeautifulSoup readability extraction
- ``http_fetcher``      : bounded async httpx fetcher
- ``job_queue``         : claim-based job queue (``FOR UPDATE SKIP LOCKED``)
- ``tasks``             : fetch cycle and Celery task (``fetch_pending_jobs``)
"""
