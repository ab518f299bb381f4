"""
Tests package - Test suite for the Dex operator.

Contains:
- unit/: Unit tests for individual components
- fixtures/: In-memory fakes for the resource store and the Dex API
"""
