"""Tool Adapters.

Available adapters:
- protocol: JSON-RPC tool servers over stdio or HTTP
- rest: schema-described REST APIs
"""

__all__ = ["protocol", "rest"]
