"""Agent framework integrations.

Available integrations:
- querygate.integrations.mcp - MCP (Model Context Protocol) server
"""
