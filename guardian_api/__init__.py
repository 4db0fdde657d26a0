"""
Trade Risk Guardian - HTTP API.

FastAPI application exposing challenge setup, trade validation,
order authorization, symbol mapping and the execution-agent
endpoints.
"""
