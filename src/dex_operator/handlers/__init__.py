"""
Handlers package - Contains all Kopf event handlers for Dex resources.

This package organizes handlers by resource type:
- server.py: DexServer child resource convergence
- client.py: DexClient registration lifecycle
"""
