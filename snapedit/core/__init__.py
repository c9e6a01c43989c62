"""
Core Editing Logic and Orchestration
====================================

This package contains the foundational logic for snapedit: image
normalisation, the content cache, the cache-first edit client, the retry
controller and the offline queue manager.
"""
