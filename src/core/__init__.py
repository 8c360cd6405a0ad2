"""Core domain package for vacuumer.

Core contains filtering, deduplication, scheduling and orchestration logic
without any Telethon-specific code, keeping the business logic portable.
"""
