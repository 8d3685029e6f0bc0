"""otcflow_server - FastAPI REST API for the OTC Flow SDK.

Exposes verified rule packs, pathway evaluation and transcript parsing as a
stateless HTTP API.
"""
