"""
White Duck - SQL gateway over DuckDB.

Serves a REST API for people and an MCP tool endpoint for agents, both
behind the same API key / session-token authorization.
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

__version__ = "0.1.0"
