"""MCPShelf command line interface."""
